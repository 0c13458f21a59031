"""
Concurrent best-ask acquisition for a batch of tokens.
One request per token, bounded fan-out, per-request timeout.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Iterable

from ..cache import TokenSnapshot
from ..errors import ExchangeError, FailureKind, FetchError


@dataclass
class FetchBatch:
    """
    Result of one fetch_snapshots() call.

    Every requested token lands in exactly one of snapshots, empty, failures.
    """
    snapshots: dict[str, TokenSnapshot] = field(default_factory=dict)
    empty: set[str] = field(default_factory=set)  # Book has no asks
    failures: dict[str, FetchError] = field(default_factory=dict)

    @property
    def requested(self) -> int:
        return len(self.snapshots) + len(self.empty) + len(self.failures)


class BookFetcher:
    """Fetches best asks through the exchange client's get_best_ask()."""

    def __init__(self, client, max_concurrency: int = 20, timeout_seconds: float = 5.0):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.client = client
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds

    async def _fetch_one(self, token_id: str, semaphore: asyncio.Semaphore):
        async with semaphore:
            try:
                top = await asyncio.wait_for(
                    self.client.get_best_ask(token_id), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                raise FetchError(
                    f"Book fetch timed out after {self.timeout_seconds}s",
                    token_id=token_id,
                    kind=FailureKind.TIMEOUT,
                )
            except ExchangeError as e:
                raise FetchError(str(e), token_id=token_id, kind=e.kind) from e

        if top.best_ask is None:
            return None
        return TokenSnapshot.from_level(
            token_id, top.best_ask, timestamp=time.time(), source_timestamp=top.timestamp
        )

    async def fetch_snapshots(self, token_ids: Iterable[str]) -> FetchBatch:
        """Fetch all tokens concurrently. A failing token never aborts the batch."""
        tokens = list(dict.fromkeys(token_ids))
        batch = FetchBatch()
        if not tokens:
            return batch

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._fetch_one(token_id, semaphore) for token_id in tokens),
            return_exceptions=True,
        )

        for token_id, result in zip(tokens, results):
            if isinstance(result, FetchError):
                batch.failures[token_id] = result
            elif isinstance(result, asyncio.CancelledError):
                raise result
            elif isinstance(result, BaseException):
                batch.failures[token_id] = FetchError(
                    f"{type(result).__name__}: {result}", token_id=token_id
                )
            elif result is None:
                batch.empty.add(token_id)
            else:
                batch.snapshots[token_id] = result

        return batch
