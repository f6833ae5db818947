"""Tests for PolyClient normalization, market listing, and CLOB history with its Gamma fallback."""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from predicthub.models import Category, Platform
from predicthub.poly_client import (
    PolyClient,
    _event_slug,
    _normalize_gamma_market,
    _parse_clob_history,
)


# --- Fixtures ---

def _make_gamma(
    id="12345",
    question="Will Bitcoin hit $100k?",
    prices=("0.62", "0.38"),
    tokens=("YES_TOKEN", "NO_TOKEN"),
    volume_num=5000.0,
    closed=False,
    slug="btc-100k-market",
    events=None,
):
    """Create a Gamma market dict with stringified JSON fields, as the API returns them."""
    gm = {
        "id": id,
        "question": question,
        "outcomePrices": json.dumps(list(prices)),
        "clobTokenIds": json.dumps(list(tokens)),
        "volumeNum": volume_num,
        "closed": closed,
        "slug": slug,
        "endDateIso": "2025-12-31",
        "image": "https://example.com/btc.png",
    }
    if events is not None:
        gm["events"] = events
    return gm


def _resp(data):
    mock_resp = MagicMock()
    mock_resp.raise_for_status = MagicMock()
    mock_resp.json.return_value = data
    return mock_resp


def _error_resp(status):
    mock_resp = MagicMock()
    mock_resp.raise_for_status.side_effect = httpx.HTTPStatusError(
        f"HTTP {status}", request=MagicMock(), response=MagicMock(status_code=status),
    )
    return mock_resp


def _client():
    return PolyClient(http=MagicMock())


LONG_TOKEN = "7" * 77


# --- Normalization ---

class TestNormalizeGammaMarket:
    def test_full_market(self):
        m = _normalize_gamma_market(_make_gamma(events=[{"slug": "bitcoin-100k"}]))
        assert m.id == "polymarket-12345"
        assert m.question == "Will Bitcoin hit $100k?"
        assert m.platform == Platform.POLYMARKET
        assert m.probability == 62
        assert m.volume == 5000.0
        assert m.volume_label == "USDC"
        assert m.category == Category.CRYPTO
        assert m.end_date == "2025-12-31"
        assert m.url == "https://polymarket.com/event/bitcoin-100k"
        assert m.image_url == "https://example.com/btc.png"
        assert m.history_id == "YES_TOKEN"
        assert m.is_play_money is False

    def test_closed_skipped(self):
        assert _normalize_gamma_market(_make_gamma(closed=True)) is None

    def test_missing_question_skipped(self):
        assert _normalize_gamma_market(_make_gamma(question="  ")) is None

    def test_zero_volume_skipped_in_listings(self):
        assert _normalize_gamma_market(_make_gamma(volume_num=0)) is None

    def test_zero_volume_allowed_for_lookup(self):
        m = _normalize_gamma_market(_make_gamma(volume_num=0), require_volume=False)
        assert m is not None
        assert m.volume == 0.0

    def test_volume_string_fallback(self):
        gm = _make_gamma()
        del gm["volumeNum"]
        gm["volume"] = "1234.5"
        assert _normalize_gamma_market(gm).volume == 1234.5

    def test_missing_prices_default_to_50(self):
        gm = _make_gamma()
        gm["outcomePrices"] = None
        assert _normalize_gamma_market(gm).probability == 50


class TestEventSlug:
    def test_prefers_event_slug(self):
        assert _event_slug({"slug": "market", "events": [{"slug": "event"}]}) == "event"

    def test_event_ticker_when_no_slug(self):
        assert _event_slug({"slug": "market", "events": [{"ticker": "evt-ticker"}]}) == "evt-ticker"

    def test_market_slug_fallback(self):
        assert _event_slug({"slug": "market"}) == "market"
        assert _event_slug({}) == ""


class TestParseClobHistory:
    def test_history_dict(self):
        data = {"history": [{"t": 1700000100, "p": 0.62}, {"t": 1700000000, "p": 0.5}]}
        points = _parse_clob_history(data)
        assert [p.time for p in points] == [1700000000, 1700000100]
        assert points[0].value == pytest.approx(50.0)
        assert points[1].value == pytest.approx(62.0)

    def test_bare_list_and_bad_points(self):
        data = [{"t": 1700000000, "p": 0.4}, {"t": 1700000060}, {"p": 0.3}]
        points = _parse_clob_history(data)
        assert len(points) == 1
        assert points[0].value == pytest.approx(40.0)

    def test_unexpected_shape(self):
        assert _parse_clob_history({"error": "nope"}) == []


# --- Fetching ---

class TestFetchMarkets:
    def test_parses_listing(self):
        client = _client()
        client._http.get.return_value = _resp([
            _make_gamma(id="1"),
            _make_gamma(id="2", closed=True),
            {"question": "no id"},
        ])

        result = client.fetch_markets()

        assert result.error is None
        assert result.platform == Platform.POLYMARKET
        assert [m.id for m in result.markets] == ["polymarket-1"]
        params = client._http.get.call_args.kwargs["params"]
        assert params["order"] == "volume"
        assert params["closed"] == "false"

    def test_non_list_response_is_empty(self):
        client = _client()
        client._http.get.return_value = _resp({"error": "unexpected"})
        result = client.fetch_markets()
        assert result.error is None
        assert result.markets == []

    def test_http_status_error(self):
        client = _client()
        client._http.get.return_value = _error_resp(503)
        result = client.fetch_markets()
        assert result.markets == []
        assert result.error == "Polymarket API returned 503"

    def test_transport_error(self):
        client = _client()
        client._http.get.side_effect = httpx.ConnectError("connection refused")
        result = client.fetch_markets()
        assert result.markets == []
        assert result.error == "connection refused"

    def test_undecodable_body(self):
        client = _client()
        client._http.get.return_value.json.side_effect = ValueError("Expecting value")
        result = client.fetch_markets()
        assert result.markets == []
        assert result.error == "Expecting value"


class TestFetchMarket:
    def test_found(self):
        client = _client()
        client._http.get.return_value = _resp(_make_gamma(id="42"))
        assert client.fetch_market("42").id == "polymarket-42"

    def test_not_found(self):
        client = _client()
        client._http.get.return_value = _error_resp(404)
        assert client.fetch_market("42") is None


class TestFetchHistory:
    def test_token_id_goes_straight_to_clob(self):
        client = _client()
        client._http.get.return_value = _resp({"history": [{"t": 1700000000, "p": 0.55}]})

        result = client.fetch_history(LONG_TOKEN, "24h")

        assert result.source == "clob"
        assert result.error is None
        assert result.points[0].value == pytest.approx(55.0)
        url = client._http.get.call_args.args[0]
        params = client._http.get.call_args.kwargs["params"]
        assert url == "https://clob.polymarket.com/prices-history"
        assert params["market"] == LONG_TOKEN
        assert params["fidelity"] == 60
        assert params["endTs"] - params["startTs"] == 86400

    def test_gamma_id_resolves_to_token(self):
        client = _client()
        client._http.get.side_effect = [
            _resp(_make_gamma(id="12345", tokens=("RESOLVED_TOKEN", "NO"))),
            _resp({"history": []}),
        ]

        result = client.fetch_history("12345")

        assert result.source == "clob"
        assert result.points == []
        assert client._http.get.call_args.kwargs["params"]["market"] == "RESOLVED_TOKEN"

    def test_slug_lookup_after_gamma_miss(self):
        client = _client()
        client._http.get.side_effect = [
            _error_resp(404),
            _resp([_make_gamma(tokens=("SLUG_TOKEN", "NO"))]),
            _resp({"history": []}),
        ]

        result = client.fetch_history("btc-100k")

        assert result.source == "clob"
        slug_call = client._http.get.call_args_list[1]
        assert slug_call.kwargs["params"] == {"slug": "btc-100k", "limit": 1}

    def test_unresolvable_identifier(self):
        client = _client()
        client._http.get.side_effect = [_error_resp(404), _resp([])]
        result = client.fetch_history("nothing")
        assert result.error == "Unable to resolve Polymarket market identifier"

    def test_clob_failure_falls_back_to_estimate(self):
        client = _client()
        client._http.get.side_effect = [
            _resp(_make_gamma(id="12345", prices=("0.25", "0.75"))),
            _error_resp(404),
            _resp(_make_gamma(id="12345", prices=("0.25", "0.75"))),
        ]

        result = client.fetch_history("12345", "30d")

        assert result.source == "gamma-estimated"
        assert len(result.points) == 31
        assert result.points[-1].value == pytest.approx(25.0)

    def test_clob_and_gamma_failure(self):
        client = _client()
        client._http.get.side_effect = [_error_resp(404), _error_resp(404)]
        result = client.fetch_history(LONG_TOKEN)
        assert result.error == "History not available for this market"

    def test_empty_id(self):
        assert _client().fetch_history("").error == "Market ID is required"

    def test_transport_error(self):
        client = _client()
        client._http.get.side_effect = httpx.ConnectError("down")
        assert client.fetch_history(LONG_TOKEN).error == "Failed to fetch history"
