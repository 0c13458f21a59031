"""
Main scanner orchestration.
Coordinates catalog, price updates, evaluation, and paired execution.
"""

import asyncio
import signal
import time
from typing import Callable, Optional

from .cache import PriceCache
from .catalog import MarketCatalog
from .config import Config, load_config_from_env
from .connector import ApiCredentials, AuthManager, PolymarketRestClient, PolymarketWebSocketClient
from .errors import ExchangeError, FatalStartupError, FetchError
from .exec import ExecutionCoordinator, ExecutionResult
from .feed import build_update_source, wait_for_stop
from .fetcher import BookFetcher
from .monitor import Logger, MetricsCollector
from .signals import OpportunityCandidate, ParityScanner


class ScannerBot:
    """
    Price-sum arbitrage scanner for binary markets.

    Pipeline:
    1. Discover binary markets (refreshed periodically)
    2. Keep best asks current via polling or the WebSocket feed
    3. Evaluate YES_ask + NO_ask for every market whose prices changed
    4. Dispatch paired buys (or log-only in dry-run mode)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client=None,
        feed_factory: Optional[Callable[[], object]] = None,
        logger: Optional[Logger] = None,
    ):
        self.config = config or load_config_from_env()

        errors = self.config.validate()
        if errors:
            raise FatalStartupError(f"Configuration errors: {errors}")

        self.logger = logger or Logger(
            name="arb_scanner",
            level=self.config.log_level,
            log_file=self.config.log_file,
        )

        conn = self.config.connection
        if client is None:
            client = self._build_client()
        self.client = client
        self.feed_factory = feed_factory or (
            lambda: PolymarketWebSocketClient(
                ws_url=conn.clob_ws_url,
                ping_interval=conn.ws_ping_interval_seconds,
                logger=self.logger,
            )
        )

        scan = self.config.scan
        self.metrics = MetricsCollector()
        self.catalog = MarketCatalog(
            client,
            max_markets=scan.max_markets,
            categories=scan.categories,
            crypto_only=scan.crypto_only,
            page_size=conn.markets_page_size,
        )
        self.cache = PriceCache(max_age_seconds=scan.staleness_seconds)
        self.fetcher = BookFetcher(
            client,
            max_concurrency=scan.max_concurrent_fetches,
            timeout_seconds=scan.fetch_timeout_seconds,
        )
        self.scanner = ParityScanner(self.cache, self.config.trading)
        self.executor = ExecutionCoordinator(client, self.config.trading, logger=self.logger)
        self.source = build_update_source(
            self.config,
            self.catalog,
            self.cache,
            self.fetcher,
            self.feed_factory,
            listener=self.on_prices_updated,
            logger=self.logger,
            metrics=self.metrics,
        )

        # State
        self._stop_event = asyncio.Event()
        self._executing: set[str] = set()  # market ids with a dispatch in flight
        self._last_attempt: dict[str, float] = {}
        self._dispatches: set[asyncio.Task] = set()

    def _build_client(self) -> PolymarketRestClient:
        config = self.config
        credentials = None
        if config.api_key and config.api_secret and config.api_passphrase:
            credentials = ApiCredentials(config.api_key, config.api_secret, config.api_passphrase)

        try:
            auth = AuthManager(
                private_key=config.private_key,
                credentials=credentials,
                chain_id=config.connection.chain_id,
            )
        except ValueError as e:
            raise FatalStartupError(f"Invalid POLYMARKET_PRIVATE_KEY: {e}") from e

        conn = config.connection
        return PolymarketRestClient(
            auth_manager=auth,
            base_url=conn.clob_rest_url,
            gamma_url=conn.gamma_api_url,
            timeout_seconds=conn.rest_timeout_seconds,
            max_retries=conn.max_retries,
            retry_backoff_base=conn.retry_backoff_base,
            funder=config.funder_address or None,
            signature_type=config.signature_type,
        )

    async def authenticate(self) -> None:
        """Derive API credentials when live trading needs them."""
        if self.config.trading.dry_run:
            return
        auth = getattr(self.client, "auth", None)
        if auth is None or auth.has_l2_credentials():
            return

        self.logger.info("deriving_api_credentials")
        try:
            await self.client.derive_api_key()
        except ExchangeError as e:
            raise FatalStartupError(f"Authentication failed: {e}") from e

    async def start(self) -> None:
        """Run until stop() is called. Raises FatalStartupError if startup fails."""
        self.logger.startup(self.config.summary())
        if self.config.trading.dry_run:
            self.logger.warning("dry_run_mode", message="No orders will be submitted")

        try:
            await self.authenticate()

            try:
                await self.catalog.refresh()
            except FetchError as e:
                raise FatalStartupError(f"Initial market discovery failed: {e}") from e
            self.logger.catalog_refreshed(len(self.catalog), self.catalog.last_discovered)

            if len(self.catalog) == 0:
                self.logger.error("no_markets", message="No markets found to monitor")
                return

            self.logger.info("scanner_running", mode=self.source.mode, markets=len(self.catalog))
            await asyncio.gather(
                self.source.run(self._stop_event),
                self._catalog_loop(),
                self._stats_loop(),
            )
        finally:
            await self._cleanup()

    def stop(self) -> None:
        """Request a graceful shutdown: no new cycles, in-flight orders finish."""
        if not self._stop_event.is_set():
            self.logger.info("scanner_stopping")
            self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    # === Evaluation ===

    async def on_prices_updated(self, token_ids: set[str]) -> None:
        """Listener for the update source: evaluate every market touched by token_ids."""
        started = time.time()
        markets = [
            market for market in self.catalog.list_active()
            if market.yes_token_id in token_ids or market.no_token_id in token_ids
        ]
        report = self.scanner.scan(markets, now=started)

        fetch_failures = 0
        last_batch = getattr(self.source, "last_batch", None)
        if self.source.mode == "poll" and last_batch is not None:
            fetch_failures = len(last_batch.failures)
        self.metrics.record_scan(len(report.candidates), fetch_failures)

        duration_ms = (time.time() - started) * 1000
        # Streaming evaluates on every event, so quiet passes stay at debug
        if self.source.mode == "poll" or report.candidates:
            self.logger.scan_cycle(
                mode=self.source.mode,
                markets=report.markets,
                evaluated=report.evaluated,
                opportunities=len(report.candidates),
                fetch_failures=fetch_failures,
                duration_ms=duration_ms,
            )
        else:
            self.logger.debug(
                "scan_cycle",
                mode=self.source.mode,
                markets=report.markets,
                evaluated=report.evaluated,
                opportunities=len(report.candidates),
            )

        for candidate in report.candidates:
            self._dispatch(candidate)

    def _dispatch(self, candidate: OpportunityCandidate) -> None:
        self.logger.opportunity_detected(
            market_id=candidate.market_id,
            yes_ask=str(candidate.yes_snapshot.best_ask_price),
            no_ask=str(candidate.no_snapshot.best_ask_price),
            combined=str(candidate.combined_price),
            profit_per_share=str(candidate.implied_profit_per_share),
            size=str(candidate.order_size),
        )

        if self.stopping:
            return
        if candidate.market_id in self._executing:
            self.logger.debug("dispatch_skipped", market_id=candidate.market_id, reason="in_flight")
            return
        cooldown = self.config.trading.cooldown_ms / 1000
        last = self._last_attempt.get(candidate.market_id)
        if last is not None and time.time() - last < cooldown:
            self.logger.debug("dispatch_skipped", market_id=candidate.market_id, reason="cooldown")
            return

        self._executing.add(candidate.market_id)
        task = asyncio.create_task(self._execute(candidate))
        self._dispatches.add(task)
        task.add_done_callback(self._dispatches.discard)

    async def _execute(self, candidate: OpportunityCandidate) -> Optional[ExecutionResult]:
        try:
            result = await self.executor.execute(candidate, dry_run=self.config.trading.dry_run)
            self.metrics.record_execution(result.status.value, result.expected_profit)
            return result
        except Exception as e:
            self.logger.error("execution_error", market_id=candidate.market_id, error=str(e))
            return None
        finally:
            self._executing.discard(candidate.market_id)
            self._last_attempt[candidate.market_id] = time.time()

    # === Background loops ===

    async def refresh_catalog(self) -> bool:
        """Refresh markets; on failure the previous catalog stays in effect."""
        try:
            await self.catalog.refresh()
        except FetchError as e:
            self.metrics.record_catalog_failure()
            self.logger.warning("catalog_refresh_failed", error=str(e), markets=len(self.catalog))
            return False

        self.logger.catalog_refreshed(len(self.catalog), self.catalog.last_discovered)
        self.cache.prune(set(self.catalog.token_ids()))
        await self.source.resubscribe()
        return True

    async def _catalog_loop(self) -> None:
        interval = self.config.scan.catalog_refresh_seconds
        while not await wait_for_stop(self._stop_event, interval):
            try:
                await self.refresh_catalog()
            except Exception as e:
                self.logger.error("catalog_loop_error", error=str(e))

    async def _stats_loop(self) -> None:
        interval = self.config.scan.stats_interval_seconds
        while not await wait_for_stop(self._stop_event, interval):
            self.logger.info(
                "stats",
                cached_tokens=len(self.cache),
                in_flight=self.executor.in_flight,
                **self.metrics.get_session_metrics(),
            )

    async def _cleanup(self) -> None:
        """Let in-flight orders finish, then release connections."""
        self._stop_event.set()
        if self._dispatches:
            await asyncio.gather(*list(self._dispatches), return_exceptions=True)
        await self.executor.wait_idle()
        await self.client.close()
        self.logger.info("final_stats", **self.metrics.get_session_metrics())
        self.logger.shutdown()


async def run_bot(config: Optional[Config] = None) -> None:
    """Run the scanner with SIGINT/SIGTERM triggering a graceful stop."""
    bot = ScannerBot(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.stop)
        except NotImplementedError:
            # Windows event loops; KeyboardInterrupt still ends the run
            pass

    await bot.start()
