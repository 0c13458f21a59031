"""Market catalog module."""

from .market_catalog import Market, MarketCatalog, parse_market

__all__ = ["Market", "MarketCatalog", "parse_market"]
