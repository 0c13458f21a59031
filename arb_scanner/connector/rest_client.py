"""
REST client for the Polymarket CLOB and Gamma APIs.
Handles market discovery, order book queries, and order placement.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from ..errors import ExchangeError, FailureKind
from ..orderbook import PriceLevel, best_ask_from_levels
from .auth import ApiCredentials, AuthManager


@dataclass
class BookTop:
    """Best ask for a token as reported by GET /book. best_ask is None for an empty ask side."""
    token_id: str
    best_ask: Optional[PriceLevel]
    timestamp: int


@dataclass
class OrderAck:
    """Exchange acknowledgement of an accepted order."""
    order_id: str
    token_id: str
    side: str
    price: Decimal
    size: Decimal
    status: str


class RateLimiter:
    """Sliding-window rate limiter."""

    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: list[float] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request can be made."""
        async with self._lock:
            now = time.time()
            self.requests = [t for t in self.requests if now - t < self.window_seconds]

            if len(self.requests) >= self.max_requests:
                # Wait until oldest request expires
                sleep_time = self.window_seconds - (now - self.requests[0])
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                self.requests = self.requests[1:]

            self.requests.append(time.time())


def _classify_status(status: int) -> FailureKind:
    if status in (401, 403):
        return FailureKind.AUTH
    if 400 <= status < 500:
        return FailureKind.REJECTED
    return FailureKind.TRANSPORT


class PolymarketRestClient:
    """REST client for the Polymarket CLOB API."""

    def __init__(
        self,
        auth_manager: Optional[AuthManager] = None,
        base_url: str = "https://clob.polymarket.com",
        gamma_url: str = "https://gamma-api.polymarket.com",
        timeout_seconds: int = 10,
        max_retries: int = 3,
        retry_backoff_base: float = 1.5,
        funder: Optional[str] = None,
        signature_type: int = 2,
    ):
        self.auth = auth_manager
        self.base_url = base_url.rstrip("/")
        self.gamma_url = gamma_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self.funder = funder
        self.signature_type = signature_type
        self._session: Optional[aiohttp.ClientSession] = None

        # Rate limiters per endpoint category
        self._book_limiter = RateLimiter(150, 10)  # 1500/10s = 150/s
        self._order_limiter = RateLimiter(350, 10)  # 3500/10s burst
        self._general_limiter = RateLimiter(900, 10)  # 9000/10s

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        authenticated: bool = False,
        body: Optional[dict] = None,
        limiter: Optional[RateLimiter] = None,
        retry: bool = True,
    ) -> Any:
        """
        Make an HTTP request, retrying 429s and transport errors with backoff.
        Failures surface as ExchangeError with a FailureKind.
        """
        session = await self._get_session()
        limiter = limiter or self._general_limiter
        attempts = self.max_retries if retry else 1
        last_error: Optional[ExchangeError] = None

        for attempt in range(attempts):
            await limiter.acquire()

            headers = {"Content-Type": "application/json"}
            body_str = json.dumps(body) if body is not None else ""

            if authenticated:
                if self.auth is None:
                    raise ExchangeError(FailureKind.AUTH, "No auth manager configured")
                path = url.replace(self.base_url, "")
                headers.update(self.auth.get_l2_headers(method, path, body_str))

            try:
                async with session.request(
                    method,
                    url,
                    params=params,
                    headers=headers,
                    data=body_str if body is not None else None,
                ) as response:
                    if response.status == 429:
                        last_error = ExchangeError(FailureKind.TRANSPORT, "rate limited")
                        await asyncio.sleep(self.retry_backoff_base ** attempt)
                        continue

                    if response.status >= 400:
                        text = await response.text()
                        kind = _classify_status(response.status)
                        error = ExchangeError(kind, f"HTTP {response.status}: {text[:200]}")
                        if kind is not FailureKind.TRANSPORT:
                            raise error
                        last_error = error
                    else:
                        return await response.json(content_type=None)

            except asyncio.TimeoutError:
                last_error = ExchangeError(FailureKind.TIMEOUT, f"{method} {url} timed out")
            except aiohttp.ClientError as e:
                last_error = ExchangeError(FailureKind.TRANSPORT, str(e))

            if attempt < attempts - 1:
                await asyncio.sleep(self.retry_backoff_base ** attempt)

        raise last_error or ExchangeError(
            FailureKind.TRANSPORT, f"Request failed after {attempts} attempts"
        )

    # === Market Discovery (Gamma API) ===

    async def list_markets(self, page_size: int = 500, max_pages: int = 20) -> list[dict[str, Any]]:
        """
        Fetch active, open markets from the Gamma API.
        Paginates by offset until a short page is returned.
        """
        markets: list[dict[str, Any]] = []
        for page in range(max_pages):
            params = {
                "active": "true",
                "closed": "false",
                "limit": page_size,
                "offset": page * page_size,
                "order": "id",
            }
            data = await self._request("GET", f"{self.gamma_url}/markets", params=params)
            if not isinstance(data, list):
                raise ExchangeError(FailureKind.TRANSPORT, "Unexpected /markets payload")
            markets.extend(data)
            if len(data) < page_size:
                break
        return markets

    # === Public CLOB Endpoints ===

    async def get_best_ask(self, token_id: str) -> BookTop:
        """Best ask level for a token from its current book."""
        data = await self._request(
            "GET",
            f"{self.base_url}/book",
            params={"token_id": token_id},
            limiter=self._book_limiter,
        )
        return BookTop(
            token_id=data.get("asset_id", token_id),
            best_ask=best_ask_from_levels(data.get("asks")),
            timestamp=int(data.get("timestamp") or 0),
        )

    # === Authenticated Endpoints ===

    async def derive_api_key(self, nonce: int = 0) -> ApiCredentials:
        """Derive API credentials using L1 authentication and store them on the auth manager."""
        if self.auth is None:
            raise ExchangeError(FailureKind.AUTH, "No auth manager configured")

        session = await self._get_session()
        headers = self.auth.get_l1_headers(nonce)
        headers["Content-Type"] = "application/json"

        try:
            async with session.get(f"{self.base_url}/auth/derive-api-key", headers=headers) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise ExchangeError(FailureKind.AUTH, f"HTTP {response.status}: {text[:200]}")
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise ExchangeError(FailureKind.TIMEOUT, "derive-api-key timed out")
        except aiohttp.ClientError as e:
            raise ExchangeError(FailureKind.TRANSPORT, str(e))

        try:
            credentials = ApiCredentials.from_response(data)
        except (KeyError, TypeError):
            raise ExchangeError(FailureKind.AUTH, "Malformed credentials response")
        self.auth.credentials = credentials
        return credentials

    async def submit_order(
        self,
        token_id: str,
        side: str,
        price: Decimal,
        size: Decimal,
        order_type: str = "FOK",
    ) -> OrderAck:
        """
        Post an order and return the acknowledgement.

        Raises ExchangeError(REJECTED) when the exchange answers success=false.
        Not retried: a resent order could fill twice.

        Note: This is a simplified implementation. The official py-clob-client
        builds and EIP-712 signs the order struct; this sends the order fields
        with L2 headers only.
        """
        body: dict[str, Any] = {
            "tokenID": token_id,
            "price": str(price),
            "size": str(size),
            "side": side.upper(),
            "orderType": order_type,
            "signatureType": self.signature_type,
        }
        if self.funder:
            body["funder"] = self.funder

        data = await self._request(
            "POST",
            f"{self.base_url}/order",
            authenticated=True,
            body=body,
            limiter=self._order_limiter,
            retry=False,
        )

        if not data.get("success", True):
            raise ExchangeError(FailureKind.REJECTED, data.get("errorMsg") or "order rejected")

        return OrderAck(
            order_id=data.get("orderID", ""),
            token_id=token_id,
            side=side.upper(),
            price=price,
            size=size,
            status=data.get("status", "matched"),
        )
