"""Polymarket REST/WebSocket connector module."""

from .auth import ApiCredentials, AuthManager
from .rest_client import BookTop, OrderAck, PolymarketRestClient
from .ws_client import BookUpdate, PolymarketWebSocketClient, PriceChange

__all__ = [
    "ApiCredentials",
    "AuthManager",
    "BookTop",
    "BookUpdate",
    "OrderAck",
    "PolymarketRestClient",
    "PolymarketWebSocketClient",
    "PriceChange",
]
