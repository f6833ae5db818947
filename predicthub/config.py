"""Constants and configuration for the PredictHub market aggregator."""

# --- Loop timing ---
REFRESH_SECONDS = 60            # How often to re-poll every platform and rebuild groups/opportunities

# --- Event grouping ---
DEFAULT_GROUPING_THRESHOLD = 0.5   # Library default for group_markets_by_event()
GROUPING_THRESHOLD = 0.4           # Threshold the dashboard actually groups with
GROUP_NAME_MAX_TERMS = 5           # Top-N common terms used for a group's display name
GROUP_NAME_MIN_SHARE = 0.5         # Term must appear in >= ceil(members * share) questions

# --- Arbitrage detection ---
# Matching uses a fixed similarity cutoff; the caller-supplied minimum only gates
# the price spread.
SAME_EVENT_SIMILARITY = 0.6        # Strictly greater-than
ARBITRAGE_MIN_DIFFERENCE = 3.0     # Percentage points between cheapest and dearest leg
ARBITRAGE_DEDUPE_ENABLED = True    # Drop opportunities whose markets are covered by a wider one

# --- Term extraction ---
MIN_TERM_LENGTH = 3                # Tokens of length <= 2 are dropped

# --- Polymarket APIs ---
GAMMA_API_URL = "https://gamma-api.polymarket.com"
CLOB_API_URL = "https://clob.polymarket.com"
POLY_PAGE_LIMIT = 100
POLY_MARKET_URL = "https://polymarket.com/event/{slug}"
POLY_TOKEN_ID_MIN_LENGTH = 41      # Anything longer than 40 chars is treated as a CLOB token id
POLY_HISTORY_FIDELITY = 60         # Minutes per CLOB history point
POLY_DATA_API_URL = "https://data-api.polymarket.com"
POLY_MIN_POSITION_SIZE = 0.01     # Dust below this many shares is ignored

# --- Kalshi API ---
KALSHI_BASE_URL = "https://api.elections.kalshi.com/trade-api/v2"
KALSHI_EVENT_LIMIT = 200
KALSHI_MARKET_URL = "https://kalshi.com/markets/{ticker}"

# --- Manifold API ---
MANIFOLD_API_URL = "https://api.manifold.markets/v0"
MANIFOLD_PAGE_LIMIT = 100
MANIFOLD_BETS_LIMIT = 1000
MANIFOLD_MARKET_URL = "https://manifold.markets/{username}/{slug}"

# --- Metaculus API ---
METACULUS_API_URL = "https://www.metaculus.com/api2"
METACULUS_QUESTION_API_URL = "https://www.metaculus.com/api"
METACULUS_PAGE_LIMIT = 100
METACULUS_QUESTION_URL = "https://www.metaculus.com/questions/{id}/{slug}"

# --- HTTP ---
HTTP_TIMEOUT = 15.0             # Seconds for httpx requests
FETCH_WORKERS = 20              # Max parallel threads for per-event / per-platform fetches
USER_AGENT = "PredictHub/1.0"

# --- Embed widget ---
EMBED_CACHE_TTL_SECONDS = 60.0
EMBED_CACHE_MAXSIZE = 500       # Entries kept by the lookup cache before LRU-style eviction

# --- Portfolio ---
PORTFOLIO_MAX_POSITIONS = 50   # Manifold positions kept after sorting by absolute P&L

# --- Price history ---
ESTIMATED_HISTORY_STEP = 5.0    # Max random-walk move (percentage points) between estimated points
METACULUS_ESTIMATED_STEP = 3.0  # Community forecasts drift less than traded prices
HISTORY_ALL_LOOKBACK_DAYS = 365 # "all" range for venues whose history endpoint needs a start time
HISTORY_DEDUPE_SECONDS = 3600   # Manifold bets collapse to one point per hour

# --- Default filter bounds ---
DEFAULT_VOLUME_RANGE = (0.0, 10_000_000.0)
DEFAULT_PROBABILITY_RANGE = (0.0, 100.0)
SIMILAR_MARKETS_LIMIT = 5

# --- Output files ---
LOG_FILE = "predicthub.log"
OPPS_LOG_FILE = "opportunities.log"   # Filtered: refreshes, groups, opportunities, alerts
OPPS_JSON_FILE = "opportunities.json" # NDJSON: one object per refresh with opportunities
ALERTS_FILE = "price_alerts.json"
WATCHLIST_FILE = "predicthub_watchlist.json"
DEFAULT_DATA_DIR = "."

# --- Environment variable names ---
ENV_GROUPING_THRESHOLD = "PREDICTHUB_GROUPING_THRESHOLD"
ENV_MIN_DIFFERENCE = "PREDICTHUB_MIN_DIFFERENCE"
ENV_REFRESH_SECONDS = "PREDICTHUB_REFRESH_SECONDS"
ENV_DATA_DIR = "PREDICTHUB_DATA_DIR"
