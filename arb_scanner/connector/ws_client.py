"""
WebSocket client for the Polymarket CLOB market channel.
Yields parsed book snapshots and price-level changes for subscribed tokens.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional, Union

import websockets
from websockets.protocol import State

from ..orderbook import parse_levels, to_decimal

if TYPE_CHECKING:
    from ..monitor import Logger


@dataclass
class BookUpdate:
    """Full ask ladder from a WebSocket book snapshot (bids are not kept)."""
    asset_id: str
    market: str
    asks: list[tuple[Decimal, Decimal]]  # (price, size)
    timestamp: int


@dataclass
class PriceChange:
    """Single price level change. side is BUY (bids) or SELL (asks); size 0 removes the level."""
    asset_id: str
    market: str
    price: Decimal
    size: Decimal
    side: str
    timestamp: int


FeedEvent = Union[BookUpdate, PriceChange]


_PARSE_ERRORS = (KeyError, ValueError, TypeError, AttributeError)


def _parse_change(change: dict, market: str, timestamp: int) -> PriceChange:
    return PriceChange(
        asset_id=change.get("asset_id", ""),
        market=market,
        price=to_decimal(change["price"]),
        size=to_decimal(change.get("size", "0")),
        side=change.get("side", "").upper(),
        timestamp=timestamp,
    )


def parse_message(data: Any, logger: Optional["Logger"] = None) -> list[FeedEvent]:
    """
    Parse one decoded WebSocket payload into feed events.
    The server sends either a single event object or a batch array.
    Unknown event types are ignored. A malformed item (or a single malformed
    change inside a price_change) is skipped; the rest of the batch is kept.
    """
    items = data if isinstance(data, list) else [data]
    events: list[FeedEvent] = []

    for item in items:
        if not isinstance(item, dict):
            continue
        event_type = item.get("event_type", "")
        market = item.get("market", "")

        try:
            timestamp = int(item.get("timestamp") or 0)

            if event_type == "book":
                events.append(BookUpdate(
                    asset_id=item.get("asset_id", ""),
                    market=market,
                    asks=parse_levels(item.get("asks") or item.get("sells")),
                    timestamp=timestamp,
                ))
                continue

            if event_type != "price_change":
                continue

            # Current schema: price_changes[] each carrying its asset_id.
            # Older schema: top-level asset_id with changes[].
            changes = item.get("price_changes")
            if changes is None:
                changes = [
                    {**change, "asset_id": item.get("asset_id", "")}
                    for change in item.get("changes", [])
                ]
            if not isinstance(changes, list):
                raise TypeError(f"price changes must be a list, got {type(changes).__name__}")
        except _PARSE_ERRORS as e:
            if logger:
                logger.debug("ws_message_skipped", event_type=event_type, error=repr(e))
            continue

        for change in changes:
            try:
                events.append(_parse_change(change, market, timestamp))
            except _PARSE_ERRORS as e:
                if logger:
                    logger.debug("ws_change_skipped", market=market, error=repr(e))

    return events


class PolymarketWebSocketClient:
    """WebSocket client for real-time market data. One connection per connect() call."""

    def __init__(
        self,
        ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market",
        ping_interval: int = 30,
        logger: Optional["Logger"] = None,
    ):
        self.ws_url = ws_url
        self.ping_interval = ping_interval
        self.logger = logger

        self._ws = None
        self._subscribed_assets: set[str] = set()

    async def connect(self, asset_ids: list[str]) -> None:
        """Open the connection and subscribe to the given tokens."""
        if not asset_ids:
            raise ValueError("No token ids to subscribe to")

        self._subscribed_assets = set(asset_ids)
        self._ws = await websockets.connect(
            self.ws_url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_interval * 2,
        )

        subscribe_msg = {
            "type": "market",
            "assets_ids": sorted(self._subscribed_assets),
        }
        await self._ws.send(json.dumps(subscribe_msg))

    async def events(self) -> AsyncIterator[FeedEvent]:
        """
        Yield events until the server closes the connection.
        Raises websockets.ConnectionClosedError on abnormal closure.
        """
        if self._ws is None:
            raise RuntimeError("connect() must be called first")

        async for message in self._ws:
            try:
                data = json.loads(message)
            except json.JSONDecodeError:
                # Keepalive "PONG" and other non-JSON frames
                continue

            for event in parse_message(data, self.logger):
                yield event

    async def subscribe(self, asset_ids: list[str]) -> None:
        """Subscribe to additional assets."""
        new_assets = set(asset_ids) - self._subscribed_assets
        self._subscribed_assets.update(new_assets)
        if not new_assets or not self.is_connected:
            return

        msg = {
            "assets_ids": sorted(new_assets),
            "operation": "subscribe",
        }
        await self._ws.send(json.dumps(msg))

    async def unsubscribe(self, asset_ids: list[str]) -> None:
        """Unsubscribe from assets."""
        to_remove = set(asset_ids) & self._subscribed_assets
        self._subscribed_assets -= to_remove
        if not to_remove or not self.is_connected:
            return

        msg = {
            "assets_ids": sorted(to_remove),
            "operation": "unsubscribe",
        }
        await self._ws.send(json.dumps(msg))

    async def disconnect(self) -> None:
        """Close the connection."""
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    @property
    def subscribed_assets(self) -> set[str]:
        return set(self._subscribed_assets)

    @property
    def is_connected(self) -> bool:
        """Check if WebSocket is connected."""
        return self._ws is not None and self._ws.state is State.OPEN
