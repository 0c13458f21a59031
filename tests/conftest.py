"""Shared fixtures and fakes for scanner tests."""

import asyncio
import time
from decimal import Decimal
from typing import Optional

import pytest

from arb_scanner.cache import TokenSnapshot
from arb_scanner.catalog import Market
from arb_scanner.config import TradingConfig
from arb_scanner.connector import BookTop, OrderAck
from arb_scanner.orderbook import PriceLevel


def snap(token_id: str, price: str, size: str = "100", timestamp: Optional[float] = None) -> TokenSnapshot:
    return TokenSnapshot(
        token_id=token_id,
        best_ask_price=Decimal(price),
        best_ask_size=Decimal(size),
        timestamp=time.time() if timestamp is None else timestamp,
    )


def gamma_market(
    condition_id: str,
    yes: str,
    no: str,
    volume: float = 1000,
    liquidity: float = 500,
    question: str = "Will Bitcoin close above 100k?",
    outcomes: str = '["Yes", "No"]',
    **extra,
) -> dict:
    """A Gamma /markets entry with list fields JSON-encoded as the API sends them."""
    raw = {
        "conditionId": condition_id,
        "question": question,
        "clobTokenIds": f'["{yes}", "{no}"]',
        "outcomes": outcomes,
        "active": True,
        "closed": False,
        "acceptingOrders": True,
        "enableOrderBook": True,
        "volumeNum": volume,
        "liquidityNum": liquidity,
    }
    raw.update(extra)
    return raw


class FakeExchange:
    """
    In-memory stand-in for PolymarketRestClient.

    asks maps token_id -> (price, size) or None for an empty book; errors maps
    token_id -> exception raised by get_best_ask; order_errors maps token_id
    -> exception raised by submit_order.
    """

    def __init__(self, markets=None, asks=None):
        self.markets = list(markets or [])
        self.asks: dict = dict(asks or {})
        self.errors: dict = {}
        self.order_errors: dict = {}
        self.book_delay = 0.0
        self.order_delay = 0.0
        self.list_error: Optional[Exception] = None

        self.book_calls: list[str] = []
        self.orders: list[dict] = []
        self.active_fetches = 0
        self.peak_fetches = 0
        self.closed = False

    async def list_markets(self, page_size: int = 500, max_pages: int = 20):
        if self.list_error is not None:
            raise self.list_error
        return list(self.markets)

    async def get_best_ask(self, token_id: str) -> BookTop:
        self.book_calls.append(token_id)
        self.active_fetches += 1
        self.peak_fetches = max(self.peak_fetches, self.active_fetches)
        try:
            if self.book_delay:
                await asyncio.sleep(self.book_delay)
            if token_id in self.errors:
                raise self.errors[token_id]
            level = self.asks.get(token_id)
            best = PriceLevel(Decimal(level[0]), Decimal(level[1])) if level else None
            return BookTop(token_id=token_id, best_ask=best, timestamp=1700000000000)
        finally:
            self.active_fetches -= 1

    async def submit_order(self, token_id, side, price, size, order_type="FOK") -> OrderAck:
        self.orders.append({"token_id": token_id, "side": side, "price": price, "size": size})
        if self.order_delay:
            await asyncio.sleep(self.order_delay)
        if token_id in self.order_errors:
            raise self.order_errors[token_id]
        return OrderAck(
            order_id=f"order-{token_id}",
            token_id=token_id,
            side=side,
            price=price,
            size=size,
            status="matched",
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def trading_config():
    return TradingConfig(
        max_combined_price=Decimal("0.99"),
        min_profit_threshold=Decimal("0.005"),
        order_size=Decimal("10"),
        min_order_size=Decimal("1"),
        order_timeout_seconds=1.0,
        cooldown_ms=0,
        dry_run=False,
    )


@pytest.fixture
def market():
    return Market(market_id="m1", yes_token_id="y1", no_token_id="n1", question="Bitcoin up?")
