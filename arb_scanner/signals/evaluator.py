"""
Parity arbitrage evaluation.
Identifies markets where YES_ask + NO_ask is below the guaranteed 1.00 payoff.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from ..cache import TokenSnapshot

if TYPE_CHECKING:
    from ..cache import PriceCache
    from ..catalog import Market
    from ..config import TradingConfig

PAYOFF = Decimal("1")


@dataclass(frozen=True)
class OpportunityCandidate:
    """
    Parity arbitrage opportunity for one market.

    Buying order_size of both YES and NO costs combined_price per pair and
    pays exactly 1 at resolution.
    """
    market_id: str
    yes_snapshot: TokenSnapshot
    no_snapshot: TokenSnapshot
    combined_price: Decimal  # yes_ask + no_ask
    implied_profit_per_share: Decimal  # 1 - combined_price
    order_size: Decimal  # min(configured size, yes ask size, no ask size)

    @property
    def yes_token_id(self) -> str:
        return self.yes_snapshot.token_id

    @property
    def no_token_id(self) -> str:
        return self.no_snapshot.token_id

    def expected_profit(self, size: Optional[Decimal] = None) -> Decimal:
        """Profit at resolution for the given size (defaults to order_size)."""
        return self.implied_profit_per_share * (self.order_size if size is None else size)


def evaluate(
    yes: TokenSnapshot,
    no: TokenSnapshot,
    config: "TradingConfig",
    market_id: str = "",
) -> Optional[OpportunityCandidate]:
    """
    Return a candidate iff combined < max_combined_price and
    1 - combined >= min_profit_threshold. Both comparisons are exact Decimal;
    a combined price equal to the maximum is not an opportunity.
    """
    combined = yes.best_ask_price + no.best_ask_price
    profit = PAYOFF - combined

    if not combined < config.max_combined_price:
        return None
    if not profit >= config.min_profit_threshold:
        return None

    size = min(config.order_size, yes.best_ask_size, no.best_ask_size)

    return OpportunityCandidate(
        market_id=market_id,
        yes_snapshot=yes,
        no_snapshot=no,
        combined_price=combined,
        implied_profit_per_share=profit,
        order_size=size,
    )


@dataclass
class ScanReport:
    """Outcome of one evaluation pass over a set of markets."""
    markets: int = 0
    evaluated: int = 0  # Markets with a fresh YES/NO pair
    candidates: list[OpportunityCandidate] = field(default_factory=list)


class ParityScanner:
    """
    Evaluates markets against the price cache.

    Each pair is read once per market per pass; snapshots are immutable so the
    evaluation never mixes two versions of the same token.
    """

    def __init__(self, price_cache: "PriceCache", trading_config: "TradingConfig"):
        self.cache = price_cache
        self.trading = trading_config

    def check_market(self, market: "Market", now: Optional[float] = None) -> tuple[bool, Optional[OpportunityCandidate]]:
        """Returns (had_fresh_pair, candidate)."""
        pair = self.cache.get_pair(market.yes_token_id, market.no_token_id, now=now)
        if pair is None:
            return False, None

        return True, evaluate(pair[0], pair[1], self.trading, market_id=market.market_id)

    def scan(self, markets: Iterable["Market"], now: Optional[float] = None) -> ScanReport:
        """Candidates sorted by profit per share, highest first; ties keep market order."""
        report = ScanReport()
        for market in markets:
            report.markets += 1
            fresh, candidate = self.check_market(market, now=now)
            if fresh:
                report.evaluated += 1
            if candidate is not None:
                report.candidates.append(candidate)

        report.candidates.sort(key=lambda c: c.implied_profit_per_share, reverse=True)
        return report
