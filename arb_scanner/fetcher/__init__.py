"""Order book fetching module."""

from .book_fetcher import BookFetcher, FetchBatch

__all__ = ["BookFetcher", "FetchBatch"]
