"""Tests for the sharded price cache."""

import threading
import time
from decimal import Decimal

import pytest

from arb_scanner.cache import PriceCache, TokenSnapshot
from arb_scanner.orderbook import PriceLevel

from conftest import snap


class TestSnapshots:

    def test_from_level(self):
        level = PriceLevel(Decimal("0.42"), Decimal("7"))
        s = TokenSnapshot.from_level("tok", level, timestamp=100.0, source_timestamp=5)

        assert s.best_ask_price == Decimal("0.42")
        assert s.best_ask_size == Decimal("7")
        assert s.timestamp == 100.0
        assert s.source_timestamp == 5
        assert s.age_seconds(now=103.0) == pytest.approx(3.0)

    def test_snapshot_is_immutable(self):
        s = snap("tok", "0.5")
        with pytest.raises(AttributeError):
            s.best_ask_price = Decimal("0.1")


class TestPriceCache:

    def test_upsert_replaces(self):
        cache = PriceCache()
        cache.upsert(snap("a", "0.40"))
        cache.upsert(snap("a", "0.41"))

        assert cache.get("a").best_ask_price == Decimal("0.41")
        assert len(cache) == 1

    def test_evict(self):
        cache = PriceCache()
        cache.upsert(snap("a", "0.40"))
        cache.evict("a")
        cache.evict("missing")

        assert cache.get("a") is None

    def test_staleness_boundary(self):
        cache = PriceCache(max_age_seconds=5.0)
        now = 1000.0
        cache.upsert(snap("y", "0.4", timestamp=now - 5.0))
        cache.upsert(snap("n", "0.4", timestamp=now - 5.0))

        assert cache.get_pair("y", "n", now=now) is not None
        assert cache.get_pair("y", "n", now=now + 0.01) is None

    def test_get_pair_requires_both(self):
        cache = PriceCache()
        cache.upsert(snap("y", "0.4"))
        assert cache.get_pair("y", "n") is None

    def test_stale_entry_still_readable_by_get(self):
        cache = PriceCache(max_age_seconds=1.0)
        cache.upsert(snap("y", "0.4", timestamp=time.time() - 60))
        assert cache.get("y") is not None

    def test_prune(self):
        cache = PriceCache(shard_count=4)
        for token in ("a", "b", "c", "d"):
            cache.upsert(snap(token, "0.5"))

        removed = cache.prune({"a", "c"})

        assert removed == 2
        assert len(cache) == 2
        assert cache.get("b") is None

    def test_invalid_shard_count(self):
        with pytest.raises(ValueError):
            PriceCache(shard_count=0)

    def test_concurrent_writers_on_distinct_tokens(self):
        cache = PriceCache(shard_count=8)
        errors = []

        def writer(worker: int):
            try:
                for i in range(500):
                    cache.upsert(snap(f"w{worker}-{i % 50}", f"0.{i % 9 + 1}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(cache) == 8 * 50

    def test_reader_sees_whole_snapshots(self):
        cache = PriceCache()
        stop = threading.Event()
        seen = []

        def writer():
            i = 0
            while not stop.is_set():
                price = Decimal(i % 2) / 2 + Decimal("0.1")
                cache.upsert(TokenSnapshot("t", price, price * 100, time.time()))
                i += 1

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            for _ in range(2000):
                s = cache.get("t")
                if s is not None:
                    seen.append(s)
        finally:
            stop.set()
            thread.join()

        # Size always matches the price it was written with
        assert all(s.best_ask_size == s.best_ask_price * 100 for s in seen)
