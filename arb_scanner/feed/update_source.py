"""
Price update strategies feeding the price cache.

PollingSource fetches every catalog token on a fixed delay; StreamingSource
follows the WebSocket market channel. Both upsert into the same PriceCache
and report changed token ids to a listener.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from ..cache import PriceCache, TokenSnapshot
from ..connector.ws_client import BookUpdate, FeedEvent, PriceChange
from ..orderbook import TokenBook

if TYPE_CHECKING:
    from ..catalog import MarketCatalog
    from ..config import Config
    from ..fetcher import BookFetcher, FetchBatch
    from ..monitor import Logger, MetricsCollector

Listener = Callable[[set[str]], Awaitable[None]]

# Held books stop being re-stamped after this many staleness windows without an event
QUIET_BOOK_FACTOR = 12


async def wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to timeout; returns True if stop_event was set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    return stop_event.is_set()


class UpdateSource(ABC):
    """Common sink handling for both update strategies."""

    mode = ""

    def __init__(
        self,
        catalog: "MarketCatalog",
        cache: PriceCache,
        listener: Optional[Listener] = None,
        logger: Optional["Logger"] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.catalog = catalog
        self.cache = cache
        self.listener = listener
        self.logger = logger
        self.metrics = metrics

    @abstractmethod
    async def run(self, stop_event: asyncio.Event) -> None:
        """Feed the cache until stop_event is set."""

    async def resubscribe(self) -> None:
        """Follow a catalog refresh. Polling reads the catalog every cycle, so nothing to do."""

    async def _notify(self, token_ids: set[str]) -> None:
        """Call the listener; a failing listener is logged and never stops the source."""
        if not self.listener or not token_ids:
            return
        try:
            await self.listener(token_ids)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.logger:
                self.logger.error("listener_error", mode=self.mode, error=f"{type(e).__name__}: {e}")


class PollingSource(UpdateSource):
    """
    Fetches all catalog tokens, then waits interval_seconds measured from the
    end of the batch. A slow batch delays the next one; cycles never overlap.
    """

    mode = "poll"

    def __init__(
        self,
        catalog: "MarketCatalog",
        cache: PriceCache,
        fetcher: "BookFetcher",
        interval_seconds: float,
        listener: Optional[Listener] = None,
        logger: Optional["Logger"] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        super().__init__(catalog, cache, listener, logger, metrics)
        self.fetcher = fetcher
        self.interval_seconds = interval_seconds
        self.last_batch: Optional["FetchBatch"] = None

    async def poll_once(self) -> "FetchBatch":
        token_ids = self.catalog.token_ids()
        batch = await self.fetcher.fetch_snapshots(token_ids)

        for snapshot in batch.snapshots.values():
            self.cache.upsert(snapshot)
        for token_id in batch.empty:
            self.cache.evict(token_id)
        # Failed tokens keep their previous snapshot until it goes stale

        if batch.failures and self.logger:
            sample = sorted(batch.failures)[:3]
            self.logger.warning(
                "book_fetch_failures",
                failed=len(batch.failures),
                requested=batch.requested,
                sample={t: str(batch.failures[t]) for t in sample},
            )

        self.last_batch = batch
        await self._notify(set(token_ids))
        return batch

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self.logger:
                    self.logger.error("poll_cycle_error", error=f"{type(e).__name__}: {e}")

            if await wait_for_stop(stop_event, self.interval_seconds):
                break


class StreamingSource(UpdateSource):
    """
    Keeps a local ask ladder per token from WebSocket book snapshots and
    price_change deltas, and upserts the best ask after every change.

    While the connection is open the held books are re-stamped every
    touch_interval seconds (and re-evaluated), since the feed only sends
    changes. A book with no event for max_quiet_seconds is no longer
    re-stamped, so a feed that answers pings but has stopped sending data
    cannot keep old quotes fresh. After a disconnect nothing is re-stamped.
    """

    mode = "stream"

    def __init__(
        self,
        catalog: "MarketCatalog",
        cache: PriceCache,
        feed_factory: Callable[[], object],
        listener: Optional[Listener] = None,
        logger: Optional["Logger"] = None,
        metrics: Optional["MetricsCollector"] = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 60.0,
        touch_interval: Optional[float] = None,
        max_quiet_seconds: Optional[float] = None,
    ):
        super().__init__(catalog, cache, listener, logger, metrics)
        self.feed_factory = feed_factory
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.touch_interval = touch_interval or max(cache.max_age_seconds / 2, 0.1)
        self.max_quiet_seconds = max_quiet_seconds or cache.max_age_seconds * QUIET_BOOK_FACTOR

        self._books: dict[str, TokenBook] = {}
        self._feed = None

    # === Event handling ===

    def _publish(self, book: TokenBook, now: Optional[float] = None) -> None:
        best = book.best_ask
        if best is None:
            self.cache.evict(book.token_id)
            return
        self.cache.upsert(TokenSnapshot.from_level(
            book.token_id, best, timestamp=now, source_timestamp=book.source_timestamp
        ))

    def apply_event(self, event: FeedEvent) -> Optional[str]:
        """Apply one feed event. Returns the token id whose book changed, if any."""
        token_id = event.asset_id
        if self.catalog.market_for_token(token_id) is None:
            return None

        if isinstance(event, BookUpdate):
            book = self._books.setdefault(token_id, TokenBook(token_id))
            book.set_snapshot(event.asks, source_timestamp=event.timestamp)
        elif isinstance(event, PriceChange):
            book = self._books.get(token_id)
            if book is None or event.side not in ("BUY", "SELL"):
                # No snapshot yet, so deeper levels are unknown
                return None
            if not book.update_level(event.side, event.price, event.size, source_timestamp=event.timestamp):
                return None
        else:
            return None

        self._publish(book)
        return token_id

    def touch(self, now: Optional[float] = None) -> set[str]:
        """Re-stamp recently updated books as current. Returns the touched token ids."""
        now = time.time() if now is None else now
        touched = set()
        for book in self._books.values():
            if now - book.last_update > self.max_quiet_seconds:
                continue
            self._publish(book, now=now)
            touched.add(book.token_id)
        return touched

    # === Connection management ===

    async def _consume(self, feed) -> None:
        async for event in feed.events():
            token_id = self.apply_event(event)
            if token_id is not None:
                await self._notify({token_id})

    async def _touch_loop(self, feed) -> None:
        while True:
            await asyncio.sleep(self.touch_interval)
            if feed.is_connected:
                await self._notify(self.touch())

    async def _session(self, feed, stop_event: asyncio.Event) -> None:
        """Run one connection until it drops or stop_event is set."""
        consumer = asyncio.create_task(self._consume(feed))
        toucher = asyncio.create_task(self._touch_loop(feed))
        stopper = asyncio.create_task(stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {consumer, toucher, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in (consumer, toucher):
                if task in done:
                    task.result()
        finally:
            for task in (consumer, toucher, stopper):
                task.cancel()
            await asyncio.gather(consumer, toucher, stopper, return_exceptions=True)

    async def run(self, stop_event: asyncio.Event) -> None:
        delay = self.initial_backoff

        while not stop_event.is_set():
            token_ids = self.catalog.token_ids()
            feed = self.feed_factory()
            self._feed = feed
            self._books.clear()
            reason = "closed by server"

            try:
                await feed.connect(token_ids)
                delay = self.initial_backoff
                if self.logger:
                    self.logger.ws_connected(getattr(feed, "ws_url", ""), tokens=len(token_ids))
                await self._session(feed, stop_event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
            finally:
                self._feed = None
                try:
                    await feed.disconnect()
                except Exception as e:
                    if self.logger:
                        self.logger.debug("ws_close_error", error=str(e))

            if stop_event.is_set():
                break

            if self.logger:
                self.logger.ws_disconnected(reason=reason, retry_in=delay)
            if self.metrics:
                self.metrics.record_ws_reconnect()

            if await wait_for_stop(stop_event, delay):
                break
            delay = min(delay * 2, self.max_backoff)

    async def resubscribe(self) -> None:
        """Align the live subscription with the refreshed catalog."""
        feed = self._feed
        wanted = set(self.catalog.token_ids())
        for token_id in set(self._books) - wanted:
            del self._books[token_id]
        if feed is None or not feed.is_connected:
            return

        current = feed.subscribed_assets
        removed = current - wanted
        added = wanted - current
        if removed:
            await feed.unsubscribe(sorted(removed))
        if added:
            await feed.subscribe(sorted(added))


def build_update_source(
    config: "Config",
    catalog: "MarketCatalog",
    cache: PriceCache,
    fetcher: "BookFetcher",
    feed_factory: Callable[[], object],
    listener: Optional[Listener] = None,
    logger: Optional["Logger"] = None,
    metrics: Optional["MetricsCollector"] = None,
) -> UpdateSource:
    """Pick the update strategy once, from config.scan.use_websocket."""
    if config.scan.use_websocket:
        return StreamingSource(
            catalog,
            cache,
            feed_factory,
            listener=listener,
            logger=logger,
            metrics=metrics,
            initial_backoff=config.connection.ws_reconnect_initial_seconds,
            max_backoff=config.connection.ws_reconnect_max_seconds,
        )
    return PollingSource(
        catalog,
        cache,
        fetcher,
        interval_seconds=config.scan.poll_interval_ms / 1000,
        listener=listener,
        logger=logger,
        metrics=metrics,
    )
