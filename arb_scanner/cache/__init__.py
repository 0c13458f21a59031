"""Price cache module."""

from .price_cache import PriceCache, TokenSnapshot

__all__ = ["PriceCache", "TokenSnapshot"]
