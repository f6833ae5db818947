"""Tests for the polling runner: settings, CLI, log filtering, one refresh cycle."""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from predicthub.aggregator import PlatformStatus, Snapshot
from predicthub.alerts import AlertCondition, AlertStore, new_alert
from predicthub.config import (
    ALERTS_FILE,
    ENV_DATA_DIR,
    ENV_GROUPING_THRESHOLD,
    ENV_MIN_DIFFERENCE,
    OPPS_JSON_FILE,
    WATCHLIST_FILE,
)
from predicthub.filters import FilterState
from predicthub.kalshi_client import KalshiClient
from predicthub.manifold_client import ManifoldClient
from predicthub.models import Category, Platform, PortfolioResult, UnifiedMarket
from predicthub.runner import (
    Settings,
    _OppsFilter,
    _parse_args,
    build_clients,
    build_filter_state,
    embed_market,
    fetch_portfolios,
    load_settings,
    main,
    run_cycle,
)
from predicthub.watchlist import Watchlist


def _make_market(id, question, platform, probability, category=Category.POLITICS) -> UnifiedMarket:
    return UnifiedMarket(
        id=id,
        question=question,
        platform=platform,
        probability=probability,
        volume=100.0,
        volume_label="USD",
        category=category,
        end_date=None,
        url=f"https://example.com/{id}",
    )


def _scenario_snapshot(error=None) -> Snapshot:
    markets = [
        _make_market("polymarket-1", "Will Trump win the election?", Platform.POLYMARKET, 62.0),
        _make_market("kalshi-TRUMP", "Will Trump win the 2024 election?", Platform.KALSHI, 58.0),
        _make_market("manifold-rain", "Will it rain tomorrow?", Platform.MANIFOLD, 40.0, Category.OTHER),
    ]
    statuses = [
        PlatformStatus(Platform.POLYMARKET, 1),
        PlatformStatus(Platform.KALSHI, 1),
        PlatformStatus(Platform.MANIFOLD, 1),
        PlatformStatus(Platform.METACULUS, 0, error),
    ]
    return Snapshot(markets=markets, statuses=statuses)


def _record(msg: str) -> logging.LogRecord:
    return logging.LogRecord("predicthub", logging.INFO, __file__, 1, msg, None, None)


class TestOppsFilter:
    @pytest.mark.parametrize("msg,expected", [
        ("ARB OPPORTUNITY | diff=4.0 pts | Trump", True),
        ("GROUPS | 3 groups | 1 multi-market | 1 cross-platform", True),
        ("=== REFRESH #3 starting ===", True),
        ("ALERT | kalshi-A | above 60%", True),
        ("Kalshi: parsed 120 markets", False),
    ])
    def test_keywords(self, msg, expected):
        assert _OppsFilter().filter(_record(msg)) is expected


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in (ENV_GROUPING_THRESHOLD, ENV_MIN_DIFFERENCE, ENV_DATA_DIR):
            monkeypatch.delenv(name, raising=False)
        settings = load_settings()
        assert settings.grouping_threshold == 0.4
        assert settings.min_difference == 3.0

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv(ENV_GROUPING_THRESHOLD, "0.55")
        monkeypatch.setenv(ENV_MIN_DIFFERENCE, "5")
        monkeypatch.setenv(ENV_DATA_DIR, "/tmp/predicthub")
        settings = load_settings()
        assert settings.grouping_threshold == 0.55
        assert settings.min_difference == 5.0
        assert settings.data_dir == "/tmp/predicthub"

    def test_bad_env_value_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv(ENV_MIN_DIFFERENCE, "lots")
        with caplog.at_level(logging.WARNING, logger="predicthub.runner"):
            assert load_settings().min_difference == 3.0
        assert "not a number" in caplog.text

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv(ENV_GROUPING_THRESHOLD, "0.55")
        args = _parse_args(["--threshold", "0.7", "--min-diff", "1.5"])
        settings = load_settings(args)
        assert settings.grouping_threshold == 0.7
        assert settings.min_difference == 1.5


class TestArgs:
    def test_defaults(self):
        args = _parse_args([])
        assert args.once is False
        assert args.platform is None
        assert args.category is None
        assert args.search == ""
        assert args.watchlist is False
        assert args.embed is None
        assert args.portfolio_polymarket is None
        assert args.portfolio_manifold is None

    def test_repeatable_platform(self):
        args = _parse_args(["--platform", "kalshi", "--platform", "manifold", "--once"])
        assert args.platform == ["kalshi", "manifold"]
        assert args.once is True

    def test_unknown_platform_rejected(self):
        with pytest.raises(SystemExit):
            _parse_args(["--platform", "predictit"])

    def test_filter_state(self):
        state = build_filter_state(_parse_args(["--category", "crypto", "--search", "bitcoin"]))
        assert state.category == Category.CRYPTO
        assert state.search == "bitcoin"


class TestBuildClients:
    def test_all_by_default(self):
        clients = build_clients()
        try:
            assert [c.platform for c in clients] == list(Platform)
        finally:
            for c in clients:
                c.close()

    def test_selected_and_deduped(self):
        clients = build_clients(["manifold", "kalshi", "manifold"])
        try:
            assert [type(c) for c in clients] == [ManifoldClient, KalshiClient]
        finally:
            for c in clients:
                c.close()


class TestRunCycle:
    def _aggregator(self, snapshot):
        aggregator = MagicMock()
        aggregator.refresh.return_value = snapshot
        return aggregator

    def test_scenario(self, tmp_path, caplog):
        settings = Settings(data_dir=str(tmp_path))
        with caplog.at_level(logging.INFO, logger="predicthub.runner"):
            result = run_cycle(self._aggregator(_scenario_snapshot()), FilterState(), settings)

        assert len(result.groups) == 2
        assert [o.id for o in result.opportunities] == ["arb-polymarket-1"]
        assert "ARB OPPORTUNITY | diff=4.0 pts" in caplog.text
        assert "GROUPS | 2 groups | 1 multi-market | 1 cross-platform" in caplog.text

        lines = (tmp_path / OPPS_JSON_FILE).read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["opportunity_count"] == 1
        opp = record["opportunities"][0]
        assert opp["price_difference"] == 4.0
        assert [m["platform"] for m in opp["markets"]] == ["polymarket", "kalshi"]

    def test_arbitrage_ignores_filters(self, tmp_path):
        settings = Settings(data_dir=str(tmp_path))
        state = FilterState(platforms={Platform.MANIFOLD})
        result = run_cycle(self._aggregator(_scenario_snapshot()), state, settings)
        assert [g.id for g in result.groups] == ["single-manifold-rain"]
        assert len(result.opportunities) == 1

    def test_no_opportunities_no_output(self, tmp_path):
        settings = Settings(min_difference=50.0, data_dir=str(tmp_path))
        result = run_cycle(self._aggregator(_scenario_snapshot()), FilterState(), settings)
        assert result.opportunities == []
        assert not (tmp_path / OPPS_JSON_FILE).exists()

    def test_platform_error_logged(self, tmp_path, caplog):
        settings = Settings(data_dir=str(tmp_path))
        with caplog.at_level(logging.WARNING, logger="predicthub.runner"):
            run_cycle(self._aggregator(_scenario_snapshot("timeout")), FilterState(), settings)
        assert "REFRESH | metaculus unavailable: timeout" in caplog.text

    def test_alerts_fired_and_saved(self, tmp_path):
        settings = Settings(data_dir=str(tmp_path))
        snapshot = _scenario_snapshot()
        store = AlertStore(str(tmp_path / ALERTS_FILE))
        store.add(new_alert(snapshot.markets[0], AlertCondition.ABOVE, threshold=60))
        store.add(new_alert(snapshot.markets[1], AlertCondition.BELOW, threshold=10))

        run_cycle(self._aggregator(snapshot), FilterState(), settings, store)

        assert [a.triggered for a in store.load()] == [True, False]

    def test_watchlist_restricts_grouping_only(self, tmp_path):
        settings = Settings(data_dir=str(tmp_path))
        watchlist = Watchlist(str(tmp_path / WATCHLIST_FILE))
        watchlist.add("manifold-rain")
        result = run_cycle(self._aggregator(_scenario_snapshot()), FilterState(), settings, None, watchlist)
        assert [g.id for g in result.groups] == ["single-manifold-rain"]
        assert len(result.opportunities) == 1


class TestEmbedMarket:
    def _clients(self, market=None):
        client = MagicMock()
        client.platform = Platform.KALSHI
        client.fetch_market.return_value = market
        return [client]

    def test_payload(self):
        market = _make_market("kalshi-KXFED-25DEC", "Fed cut?", Platform.KALSHI, 43.0)
        clients = self._clients(market)
        payload = embed_market("kalshi-KXFED-25DEC", clients)
        assert payload["market"]["id"] == "kalshi-KXFED-25DEC"
        assert payload["market"]["probability"] == 43.0
        clients[0].fetch_market.assert_called_once_with("KXFED-25DEC")

    def test_not_found(self):
        assert embed_market("kalshi-NOPE", self._clients()) == {"error": "Market not found"}

    def test_malformed_id(self):
        clients = self._clients()
        assert "Unknown platform" in embed_market("predictit-1", clients)["error"]
        clients[0].fetch_market.assert_not_called()


class TestFetchPortfolios:
    def test_only_requested_accounts(self):
        client = MagicMock()
        client.manifold_positions.return_value = PortfolioResult(error="User not found")
        report = fetch_portfolios(client, manifold_username="nobody")
        assert report == {
            "manifold": {"positions": [], "totalValue": 0.0, "totalPnl": 0.0, "error": "User not found"},
        }
        client.polymarket_positions.assert_not_called()

    def test_both(self):
        client = MagicMock()
        client.polymarket_positions.return_value = PortfolioResult()
        client.manifold_positions.return_value = PortfolioResult()
        report = fetch_portfolios(client, "0xabc", "someone")
        assert list(report) == ["polymarket", "manifold"]
        client.polymarket_positions.assert_called_once_with("0xabc")


class TestMain:
    def test_once_closes_clients_after_failed_cycle(self, tmp_path, monkeypatch, caplog):
        monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
        client = MagicMock()
        with patch("predicthub.runner._setup_logging"), \
             patch("predicthub.runner.build_clients", return_value=[client]), \
             patch("predicthub.runner.run_cycle", side_effect=RuntimeError("boom")), \
             caplog.at_level(logging.ERROR, logger="predicthub.runner"):
            main(["--once"])

        assert "Refresh 1 failed" in caplog.text
        client.close.assert_called_once()

    def test_watchlist_flag_passed_to_cycle(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
        with patch("predicthub.runner._setup_logging"), \
             patch("predicthub.runner.build_clients", return_value=[]), \
             patch("predicthub.runner.run_cycle") as run_cycle_mock:
            main(["--once", "--watchlist"])

        watchlist = run_cycle_mock.call_args.args[4]
        assert isinstance(watchlist, Watchlist)

    def test_embed_mode_prints_payload(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
        client = MagicMock()
        client.platform = Platform.MANIFOLD
        client.fetch_market.return_value = _make_market("manifold-abc", "Rain?", Platform.MANIFOLD, 40.0)
        with patch("predicthub.runner._setup_logging"), \
             patch("predicthub.runner.build_clients", return_value=[client]), \
             patch("predicthub.runner.run_cycle") as run_cycle_mock:
            main(["--embed", "manifold-abc"])

        assert json.loads(capsys.readouterr().out)["market"]["question"] == "Rain?"
        run_cycle_mock.assert_not_called()
        client.close.assert_called_once()

    def test_portfolio_mode_prints_report(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
        portfolio_client = MagicMock()
        portfolio_client.polymarket_positions.return_value = PortfolioResult(total_value=12.5)
        with patch("predicthub.runner._setup_logging"), \
             patch("predicthub.runner.PortfolioClient", return_value=portfolio_client):
            main(["--portfolio-polymarket", "0xABC"])

        report = json.loads(capsys.readouterr().out)
        assert report["polymarket"]["totalValue"] == 12.5
        portfolio_client.polymarket_positions.assert_called_once_with("0xABC")
        portfolio_client.close.assert_called_once()
