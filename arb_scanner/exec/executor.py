"""
Dual-leg execution for parity arbitrage.
Places the YES and NO buys concurrently and classifies the combined outcome.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..errors import ExchangeError, FailureKind

if TYPE_CHECKING:
    from ..config import TradingConfig
    from ..monitor import Logger
    from ..signals import OpportunityCandidate


class LegStatus(Enum):
    """Status of a single leg."""
    PENDING = "pending"
    SUBMITTED = "submitted"  # Accepted by the exchange
    SKIPPED = "skipped"
    FAILED = "failed"


class ExecutionStatus(Enum):
    """
    Terminal status of a paired execution.

    DRY_RUN_SKIP and SKIPPED never reach the exchange. PARTIAL_FAILURE means
    exactly one leg was accepted and the position is one-sided.
    """
    DRY_RUN_SKIP = "dry_run_skip"
    SKIPPED = "skipped"
    CONFIRMED = "confirmed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


@dataclass
class LegOutcome:
    """Single leg of a paired trade."""
    side: str  # YES or NO
    token_id: str
    price: Decimal
    size: Decimal
    status: LegStatus = LegStatus.PENDING
    order_id: Optional[str] = None
    reason: Optional[str] = None
    error_kind: Optional[FailureKind] = None
    submitted_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def accepted(self) -> bool:
        return self.status == LegStatus.SUBMITTED

    def to_dict(self) -> dict:
        return {
            "side": self.side,
            "token_id": self.token_id,
            "price": str(self.price),
            "size": str(self.size),
            "status": self.status.value,
            "order_id": self.order_id,
            "reason": self.reason,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


@dataclass
class ExecutionResult:
    """Result of a paired execution attempt."""
    execution_id: str
    market_id: str
    status: ExecutionStatus
    yes_leg: LegOutcome
    no_leg: LegOutcome
    dry_run: bool
    size: Decimal
    expected_profit: Decimal = Decimal("0")
    created_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def has_exposure(self) -> bool:
        """Exactly one leg accepted: unmatched directional position."""
        return self.status == ExecutionStatus.PARTIAL_FAILURE

    @property
    def duration_ms(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.created_at) * 1000


class ExecutionCoordinator:
    """
    Executes paired YES+NO buys for parity arbitrage.

    Key principles:
    1. Both legs are sized equally and never above visible liquidity
    2. Both legs are always attempted; one failing never cancels the other
    3. No retries and no automatic hedging: a partial failure is surfaced
       and left for a fresh evaluation or manual review
    """

    def __init__(
        self,
        client,
        trading_config: "TradingConfig",
        logger: Optional["Logger"] = None,
    ):
        self.client = client
        self.trading = trading_config
        self.logger = logger

        self._in_flight: set[asyncio.Task] = set()

    def _capped_size(self, candidate: "OpportunityCandidate") -> Decimal:
        return min(
            candidate.order_size,
            self.trading.order_size,
            candidate.yes_snapshot.best_ask_size,
            candidate.no_snapshot.best_ask_size,
        )

    async def execute(self, candidate: "OpportunityCandidate", dry_run: bool) -> ExecutionResult:
        """
        Execute a candidate and return the classified result.

        The paired submission runs in its own task and is shielded: if the
        caller is cancelled the legs still complete and are logged.
        """
        size = self._capped_size(candidate)
        execution_id = str(uuid.uuid4())

        yes_leg = LegOutcome(
            side="YES",
            token_id=candidate.yes_token_id,
            price=candidate.yes_snapshot.best_ask_price,
            size=size,
        )
        no_leg = LegOutcome(
            side="NO",
            token_id=candidate.no_token_id,
            price=candidate.no_snapshot.best_ask_price,
            size=size,
        )
        result = ExecutionResult(
            execution_id=execution_id,
            market_id=candidate.market_id,
            status=ExecutionStatus.SKIPPED,
            yes_leg=yes_leg,
            no_leg=no_leg,
            dry_run=dry_run,
            size=size,
            expected_profit=candidate.expected_profit(size),
        )

        if dry_run:
            self._skip(result, ExecutionStatus.DRY_RUN_SKIP, "dry_run")
            return result

        if size <= 0 or size < self.trading.min_order_size:
            self._skip(result, ExecutionStatus.SKIPPED, "size_below_minimum")
            return result

        task = asyncio.create_task(self._run(result))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await asyncio.shield(task)

    def _skip(self, result: ExecutionResult, status: ExecutionStatus, reason: str) -> None:
        result.status = status
        for leg in (result.yes_leg, result.no_leg):
            leg.status = LegStatus.SKIPPED
            leg.reason = reason
        result.completed_at = time.time()
        self._log_result(result)

    async def _run(self, result: ExecutionResult) -> ExecutionResult:
        # Both legs are independent tasks started before either is awaited
        yes_task = asyncio.create_task(self._submit_leg(result.yes_leg))
        no_task = asyncio.create_task(self._submit_leg(result.no_leg))
        await asyncio.gather(yes_task, no_task, return_exceptions=True)

        accepted = [leg for leg in (result.yes_leg, result.no_leg) if leg.accepted]
        if len(accepted) == 2:
            result.status = ExecutionStatus.CONFIRMED
        elif len(accepted) == 1:
            result.status = ExecutionStatus.PARTIAL_FAILURE
        else:
            result.status = ExecutionStatus.FAILED
        result.completed_at = time.time()

        self._log_result(result)
        return result

    async def _submit_leg(self, leg: LegOutcome) -> None:
        """Submit a single leg. Never raises; failures are recorded on the leg."""
        leg.submitted_at = time.time()
        try:
            ack = await asyncio.wait_for(
                self.client.submit_order(
                    token_id=leg.token_id,
                    side="BUY",
                    price=leg.price,
                    size=leg.size,
                ),
                timeout=self.trading.order_timeout_seconds,
            )
            leg.status = LegStatus.SUBMITTED
            leg.order_id = ack.order_id
        except asyncio.TimeoutError:
            leg.status = LegStatus.FAILED
            leg.error_kind = FailureKind.TIMEOUT
            leg.reason = f"no acknowledgement within {self.trading.order_timeout_seconds}s"
        except ExchangeError as e:
            leg.status = LegStatus.FAILED
            leg.error_kind = e.kind
            leg.reason = e.message
        except Exception as e:
            leg.status = LegStatus.FAILED
            leg.error_kind = FailureKind.TRANSPORT
            leg.reason = f"{type(e).__name__}: {e}"
        finally:
            leg.completed_at = time.time()

    def _log_result(self, result: ExecutionResult) -> None:
        if not self.logger:
            return

        if result.status == ExecutionStatus.PARTIAL_FAILURE:
            filled, failed = (
                (result.yes_leg, result.no_leg)
                if result.yes_leg.accepted
                else (result.no_leg, result.yes_leg)
            )
            self.logger.partial_failure(
                market_id=result.market_id,
                filled_side=filled.side,
                failed_side=failed.side,
                size=str(result.size),
                error=failed.reason or "unknown",
            )

        self.logger.execution_result(
            market_id=result.market_id,
            status=result.status.value,
            dry_run=result.dry_run,
            size=str(result.size),
            expected_profit=str(result.expected_profit),
            yes_leg=result.yes_leg.to_dict(),
            no_leg=result.no_leg.to_dict(),
            duration_ms=result.duration_ms,
        )

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def wait_idle(self) -> None:
        """Wait for every in-flight paired submission to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
