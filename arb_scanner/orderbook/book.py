"""
In-memory order book ladders with snapshot and delta updates.
Used to turn raw REST books and WebSocket events into a token's best ask.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from sortedcontainers import SortedDict


def to_decimal(value: Any) -> Decimal:
    """
    Convert an API value to Decimal without binary-float rounding.
    Floats are routed through str() so 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a price: {value!r}")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a decimal: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite decimal: {value!r}")
    return result


@dataclass(frozen=True)
class PriceLevel:
    """Single price level with size."""
    price: Decimal
    size: Decimal


@dataclass
class BookSide:
    """One side of an orderbook (bids or asks)."""
    is_bid: bool
    levels: SortedDict = field(default_factory=SortedDict)

    def __post_init__(self):
        # Bids sorted descending (highest first), asks ascending (lowest first)
        if self.is_bid:
            self.levels = SortedDict(lambda x: -x)
        else:
            self.levels = SortedDict()

    def update(self, price: Decimal, size: Decimal) -> None:
        """Update a price level. Size of 0 removes the level."""
        if size <= 0:
            self.levels.pop(price, None)
        else:
            self.levels[price] = size

    def set_snapshot(self, levels: Iterable[tuple[Decimal, Decimal]]) -> None:
        """Replace all levels with a snapshot."""
        self.levels.clear()
        for price, size in levels:
            if size > 0:
                self.levels[price] = size

    @property
    def best(self) -> Optional[PriceLevel]:
        if not self.levels:
            return None
        price = self.levels.keys()[0]
        return PriceLevel(price, self.levels[price])

    def __len__(self) -> int:
        return len(self.levels)


@dataclass
class TokenBook:
    """
    Ask ladder for a single outcome token.
    Only the ask side feeds the scanner; bid-side deltas are ignored.
    """
    token_id: str
    asks: BookSide = field(default_factory=lambda: BookSide(is_bid=False))
    last_update: float = 0
    source_timestamp: int = 0

    def update_level(self, side: str, price: Decimal, size: Decimal, source_timestamp: int = 0) -> bool:
        """
        Apply a single level delta. SELL updates asks; BUY is a bid change and
        is ignored. Returns True if the ask ladder changed.
        """
        side = side.upper()
        if side == "BUY":
            return False
        if side != "SELL":
            raise ValueError(f"Unknown book side: {side!r}")
        self.asks.update(price, size)
        self.last_update = time.time()
        if source_timestamp:
            self.source_timestamp = source_timestamp
        return True

    def set_snapshot(
        self,
        asks: Iterable[tuple[Decimal, Decimal]],
        source_timestamp: int = 0,
    ) -> None:
        """Replace the ask ladder."""
        self.asks.set_snapshot(asks)
        self.last_update = time.time()
        self.source_timestamp = source_timestamp

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks.best


def parse_levels(raw_levels: Optional[list[dict]]) -> list[tuple[Decimal, Decimal]]:
    """Parse [{"price": "0.52", "size": "100"}, ...] into (price, size) pairs."""
    return [
        (to_decimal(level["price"]), to_decimal(level["size"]))
        for level in raw_levels or []
    ]


def best_ask_from_levels(raw_asks: Optional[list[dict]]) -> Optional[PriceLevel]:
    """
    Lowest ask from an unsorted list of raw levels.
    The CLOB returns asks from worst to best, so never trust list order.
    """
    side = BookSide(is_bid=False)
    side.set_snapshot(parse_levels(raw_asks))
    return side.best
