"""Orderbook management module."""

from .book import BookSide, PriceLevel, TokenBook, best_ask_from_levels, parse_levels, to_decimal

__all__ = ["BookSide", "PriceLevel", "TokenBook", "best_ask_from_levels", "parse_levels", "to_decimal"]
