"""
Catalog of monitored binary markets.
Discovers markets from the exchange, keeps YES/NO token pairs, and ranks them
so that truncation to max_markets is deterministic.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from ..errors import ExchangeError, FetchError
from ..orderbook import to_decimal

CRYPTO_KEYWORDS = ("bitcoin", "btc", "ethereum", "eth", "crypto")


@dataclass(frozen=True)
class Market:
    """A binary market and its two outcome tokens."""
    market_id: str
    yes_token_id: str
    no_token_id: str
    categories: tuple[str, ...] = ()
    active: bool = True
    volume: Decimal = Decimal("0")
    liquidity: Decimal = Decimal("0")
    question: str = ""

    @property
    def token_ids(self) -> tuple[str, str]:
        return self.yes_token_id, self.no_token_id

    def rank_key(self) -> tuple:
        """Volume desc, liquidity desc, market_id asc."""
        return (-self.volume, -self.liquidity, self.market_id)


def _json_list(value: Any) -> list:
    # Gamma encodes some list fields as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    return list(value) if isinstance(value, (list, tuple)) else []


def _decimal_or_zero(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return to_decimal(value)
    except ValueError:
        return Decimal("0")


def _categories(raw: dict[str, Any]) -> tuple[str, ...]:
    labels = []
    if raw.get("category"):
        labels.append(str(raw["category"]))
    for tag in raw.get("tags") or []:
        if isinstance(tag, dict):
            label = tag.get("label") or tag.get("slug")
        else:
            label = tag
        if label:
            labels.append(str(label))
    return tuple(sorted({label.strip().lower() for label in labels if label.strip()}))


def parse_market(raw: dict[str, Any]) -> Optional[Market]:
    """
    Build a Market from a Gamma /markets entry.

    Returns None unless the market is open, accepting orders, and has exactly
    two outcome tokens. Outcomes labelled Yes/No map by label; any other
    two-outcome labelling (Up/Down, team names) maps positionally.
    """
    if not raw.get("active", True) or raw.get("closed", False):
        return None
    if raw.get("acceptingOrders") is False or raw.get("enableOrderBook") is False:
        return None

    market_id = raw.get("conditionId") or raw.get("condition_id")
    token_ids = [str(t) for t in _json_list(raw.get("clobTokenIds") or raw.get("clob_token_ids"))]
    if not market_id or len(token_ids) != 2 or token_ids[0] == token_ids[1]:
        return None

    yes_token, no_token = token_ids
    outcomes = [str(o).strip().lower() for o in _json_list(raw.get("outcomes"))]
    if len(outcomes) == 2 and set(outcomes) == {"yes", "no"}:
        if outcomes[0] == "no":
            yes_token, no_token = no_token, yes_token

    return Market(
        market_id=str(market_id),
        yes_token_id=yes_token,
        no_token_id=no_token,
        categories=_categories(raw),
        active=True,
        volume=_decimal_or_zero(raw.get("volumeNum", raw.get("volume"))),
        liquidity=_decimal_or_zero(raw.get("liquidityNum", raw.get("liquidity"))),
        question=str(raw.get("question") or ""),
    )


def is_crypto_market(market: Market) -> bool:
    question = market.question.lower()
    return "crypto" in market.categories or any(k in question for k in CRYPTO_KEYWORDS)


class MarketCatalog:
    """
    Holds the monitored markets, replaced wholesale on each successful refresh.

    A failed refresh raises FetchError and leaves the previous catalog in place.
    """

    def __init__(
        self,
        client,
        max_markets: int = 50,
        categories: Optional[Sequence[str]] = None,
        crypto_only: bool = False,
        page_size: int = 500,
    ):
        self.client = client
        self.max_markets = max_markets
        self.categories = frozenset(c.strip().lower() for c in categories or () if c.strip())
        self.crypto_only = crypto_only
        self.page_size = page_size

        self._markets: tuple[Market, ...] = ()
        self._by_token: dict[str, Market] = {}
        self._last_discovered = 0

    def _allowed(self, market: Market) -> bool:
        if self.categories and not self.categories.intersection(market.categories):
            return False
        if self.crypto_only and not is_crypto_market(market):
            return False
        return True

    async def refresh(self) -> frozenset[Market]:
        """Re-discover markets and replace the catalog."""
        try:
            raw_markets = await self.client.list_markets(page_size=self.page_size)
        except ExchangeError as e:
            raise FetchError(f"Market discovery failed: {e}", kind=e.kind) from e

        seen: dict[str, Market] = {}
        for raw in raw_markets:
            if not isinstance(raw, dict):
                continue
            market = parse_market(raw)
            if market is None or not self._allowed(market):
                continue
            # Duplicate ids across pages: keep the best-ranked copy
            current = seen.get(market.market_id)
            if current is None or market.rank_key() < current.rank_key():
                seen[market.market_id] = market

        ranked = sorted(seen.values(), key=Market.rank_key)[: self.max_markets]

        by_token: dict[str, Market] = {}
        for market in ranked:
            by_token[market.yes_token_id] = market
            by_token[market.no_token_id] = market

        self._markets = tuple(ranked)
        self._by_token = by_token
        self._last_discovered = len(seen)
        return frozenset(ranked)

    def list_active(self) -> list[Market]:
        """Markets in rank order (stable across identical refreshes)."""
        return list(self._markets)

    def token_ids(self) -> list[str]:
        """All YES/NO token ids in rank order."""
        return [token_id for market in self._markets for token_id in market.token_ids]

    def market_for_token(self, token_id: str) -> Optional[Market]:
        return self._by_token.get(token_id)

    @property
    def last_discovered(self) -> int:
        """Binary markets matching the filters before truncation."""
        return self._last_discovered

    def __len__(self) -> int:
        return len(self._markets)
