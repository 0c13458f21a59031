"""
Latest best-ask snapshot per token.
Sharded so that writers for unrelated tokens never contend on one lock.
"""

import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..orderbook import PriceLevel


@dataclass(frozen=True)
class TokenSnapshot:
    """
    Best ask for one outcome token.

    timestamp is local receipt time (epoch seconds) and drives staleness;
    source_timestamp is the exchange's own millisecond stamp, kept for logs.
    """
    token_id: str
    best_ask_price: Decimal
    best_ask_size: Decimal
    timestamp: float
    source_timestamp: int = 0

    @classmethod
    def from_level(
        cls,
        token_id: str,
        level: PriceLevel,
        timestamp: Optional[float] = None,
        source_timestamp: int = 0,
    ) -> "TokenSnapshot":
        return cls(
            token_id=token_id,
            best_ask_price=level.price,
            best_ask_size=level.size,
            timestamp=time.time() if timestamp is None else timestamp,
            source_timestamp=source_timestamp,
        )

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.timestamp


class _Shard:
    __slots__ = ("lock", "slots")

    def __init__(self):
        self.lock = threading.Lock()
        self.slots: dict[str, TokenSnapshot] = {}


class PriceCache:
    """
    Concurrent map token_id -> TokenSnapshot.

    Snapshots are immutable and replaced whole, so a reader either sees the
    previous snapshot or the new one. Each shard has its own lock and the
    critical section is a single dict operation.
    """

    def __init__(self, max_age_seconds: float = 5.0, shard_count: int = 16):
        if shard_count <= 0:
            raise ValueError("shard_count must be positive")
        self.max_age_seconds = max_age_seconds
        self._shards = [_Shard() for _ in range(shard_count)]

    def _shard(self, token_id: str) -> _Shard:
        return self._shards[hash(token_id) % len(self._shards)]

    def upsert(self, snapshot: TokenSnapshot) -> None:
        """Replace the snapshot for snapshot.token_id."""
        shard = self._shard(snapshot.token_id)
        with shard.lock:
            shard.slots[snapshot.token_id] = snapshot

    def evict(self, token_id: str) -> None:
        """Drop a token, e.g. when its book no longer has any asks."""
        shard = self._shard(token_id)
        with shard.lock:
            shard.slots.pop(token_id, None)

    def get(self, token_id: str) -> Optional[TokenSnapshot]:
        """Latest snapshot regardless of age."""
        shard = self._shard(token_id)
        with shard.lock:
            return shard.slots.get(token_id)

    def is_fresh(self, snapshot: TokenSnapshot, now: Optional[float] = None) -> bool:
        return snapshot.age_seconds(now) <= self.max_age_seconds

    def get_pair(
        self,
        yes_id: str,
        no_id: str,
        now: Optional[float] = None,
    ) -> Optional[tuple[TokenSnapshot, TokenSnapshot]]:
        """
        Return (yes, no) snapshots, or None if either is missing or stale.
        """
        now = time.time() if now is None else now
        yes = self.get(yes_id)
        no = self.get(no_id)
        if yes is None or no is None:
            return None
        if not self.is_fresh(yes, now) or not self.is_fresh(no, now):
            return None
        return yes, no

    def prune(self, keep: set[str]) -> int:
        """Drop tokens no longer in the catalog. Returns number removed."""
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [token_id for token_id in shard.slots if token_id not in keep]
                for token_id in stale:
                    del shard.slots[token_id]
                removed += len(stale)
        return removed

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.slots)
        return total
