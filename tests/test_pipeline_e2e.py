"""End-to-end tests: discovery, price updates, evaluation and execution wired together."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from arb_scanner.bot import ScannerBot
from arb_scanner.config import Config
from arb_scanner.errors import ExchangeError, FailureKind, FatalStartupError

from conftest import FakeExchange, gamma_market

PRIVATE_KEY = "0x" + "1" * 64


def _config(dry_run=False, use_websocket=False) -> Config:
    config = Config(private_key=PRIVATE_KEY, funder_address="0x" + "2" * 40)
    config.trading.dry_run = dry_run
    config.trading.cooldown_ms = 0
    config.trading.order_size = Decimal("10")
    config.scan.use_websocket = use_websocket
    config.scan.poll_interval_ms = 20
    config.scan.crypto_only = False
    return config


async def _run_until(bot: ScannerBot, condition, timeout: float = 2.0) -> None:
    runner = asyncio.create_task(bot.start())
    try:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition() and loop.time() < deadline:
            await asyncio.sleep(0.01)
    finally:
        bot.stop()
        await asyncio.wait_for(runner, timeout=timeout)


class TestPollingPipeline:

    @pytest.mark.asyncio
    async def test_opportunity_is_executed_on_both_legs(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1")],
            asks={"y1": ("0.45", "20"), "n1": ("0.50", "15")},
        )
        logger = MagicMock()
        bot = ScannerBot(_config(), client=client, logger=logger)

        await _run_until(bot, lambda: bot.metrics.get_session_metrics()["executions_confirmed"] >= 1)

        first_two = client.orders[:2]
        assert {o["token_id"] for o in first_two} == {"y1", "n1"}
        assert all(o["size"] == Decimal("10") and o["side"] == "BUY" for o in first_two)

        detected = logger.opportunity_detected.call_args_list[0].kwargs
        assert detected["market_id"] == "m1"
        assert detected["profit_per_share"] == "0.05"
        assert detected["size"] == "10"

        metrics = bot.metrics.get_session_metrics()
        assert Decimal(metrics["expected_profit"]) >= Decimal("0.50")
        assert client.closed

    @pytest.mark.asyncio
    async def test_dry_run_logs_but_never_submits(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1")],
            asks={"y1": ("0.45", "20"), "n1": ("0.50", "15")},
        )
        bot = ScannerBot(_config(dry_run=True), client=client, logger=MagicMock())

        await _run_until(bot, lambda: bot.metrics.get_session_metrics()["dry_run_skips"] >= 1)

        assert client.orders == []

    @pytest.mark.asyncio
    async def test_no_opportunity_no_orders(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1")],
            asks={"y1": ("0.49", "20"), "n1": ("0.50", "15")},
        )
        bot = ScannerBot(_config(), client=client, logger=MagicMock())

        await _run_until(bot, lambda: bot.metrics.get_session_metrics()["scans_completed"] >= 3)

        assert client.orders == []
        assert bot.metrics.get_session_metrics()["opportunities_found"] == 0

    @pytest.mark.asyncio
    async def test_fetch_failures_are_counted_and_scanning_continues(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1"), gamma_market("m2", "y2", "n2")],
            asks={"y1": ("0.45", "20"), "n1": ("0.50", "15"), "n2": ("0.40", "5")},
        )
        client.errors["y2"] = ExchangeError(FailureKind.TRANSPORT, "HTTP 503")
        bot = ScannerBot(_config(), client=client, logger=MagicMock())

        await _run_until(bot, lambda: bot.metrics.get_session_metrics()["executions_confirmed"] >= 1)

        metrics = bot.metrics.get_session_metrics()
        assert metrics["fetch_failures"] >= 1
        # m2 never had a fresh pair
        assert {o["token_id"] for o in client.orders} <= {"y1", "n1"}

    @pytest.mark.asyncio
    async def test_in_flight_market_is_not_redispatched(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1")],
            asks={"y1": ("0.45", "20"), "n1": ("0.50", "15")},
        )
        client.order_delay = 0.2
        bot = ScannerBot(_config(), client=client, logger=MagicMock())

        # Several poll cycles pass while the first execution is still open
        await _run_until(bot, lambda: bot.metrics.get_session_metrics()["scans_completed"] >= 4)

        assert len(client.orders) == 2

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_execution(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1")],
            asks={"y1": ("0.45", "20"), "n1": ("0.50", "15")},
        )
        client.order_delay = 0.2
        bot = ScannerBot(_config(), client=client, logger=MagicMock())

        # Stop as soon as both legs are submitted but before either returns
        await _run_until(bot, lambda: len(client.orders) >= 2)

        metrics = bot.metrics.get_session_metrics()
        assert len(client.orders) == 2
        assert metrics["executions_confirmed"] == 1
        assert client.closed


class TestStartup:

    @pytest.mark.asyncio
    async def test_zero_markets_exits_cleanly(self):
        client = FakeExchange(markets=[])
        logger = MagicMock()
        bot = ScannerBot(_config(), client=client, logger=logger)

        await asyncio.wait_for(bot.start(), timeout=1.0)

        assert logger.error.call_args.args[0] == "no_markets"
        assert client.closed

    @pytest.mark.asyncio
    async def test_initial_discovery_failure_is_fatal(self):
        client = FakeExchange()
        client.list_error = ExchangeError(FailureKind.TRANSPORT, "down")
        bot = ScannerBot(_config(), client=client, logger=MagicMock())

        with pytest.raises(FatalStartupError):
            await bot.start()
        assert client.closed

    def test_invalid_config_is_fatal(self):
        config = _config()
        config.private_key = ""
        with pytest.raises(FatalStartupError):
            ScannerBot(config, client=FakeExchange(), logger=MagicMock())

    def test_malformed_private_key_is_fatal(self):
        config = _config()
        config.private_key = "not-a-key"
        with pytest.raises(FatalStartupError):
            ScannerBot(config, logger=MagicMock())

    @pytest.mark.asyncio
    async def test_later_catalog_failure_keeps_running(self):
        client = FakeExchange(markets=[gamma_market("m1", "y1", "n1")])
        bot = ScannerBot(_config(), client=client, logger=MagicMock())
        await bot.catalog.refresh()

        client.list_error = ExchangeError(FailureKind.TIMEOUT, "slow")
        assert await bot.refresh_catalog() is False

        assert len(bot.catalog) == 1
        assert bot.metrics.get_session_metrics()["catalog_refresh_failures"] == 1


class TestCooldown:

    @pytest.mark.asyncio
    async def test_cooldown_blocks_immediate_retry(self):
        client = FakeExchange(
            markets=[gamma_market("m1", "y1", "n1")],
            asks={"y1": ("0.45", "20"), "n1": ("0.50", "15")},
        )
        config = _config()
        config.trading.cooldown_ms = 60_000
        bot = ScannerBot(config, client=client, logger=MagicMock())

        await _run_until(bot, lambda: bot.metrics.get_session_metrics()["scans_completed"] >= 5)

        assert len(client.orders) == 2
