"""
Configuration management for the binary-market arbitrage scanner.
All secrets via environment variables. All tunable parameters externalized.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from dotenv import load_dotenv

from .errors import FatalStartupError


@dataclass
class TradingConfig:
    """Opportunity thresholds and execution sizing."""
    max_combined_price: Decimal = Decimal("0.99")  # Trigger when YES + NO < this
    min_profit_threshold: Decimal = Decimal("0.005")  # Minimum 1 - combined per share
    order_size: Decimal = Decimal("10")  # Shares per leg before liquidity cap
    min_order_size: Decimal = Decimal("1")  # Exchange minimum, smaller candidates are skipped
    order_timeout_seconds: float = 10.0
    cooldown_ms: int = 1000  # Per-market pause after an execution attempt
    dry_run: bool = True


@dataclass
class ScanConfig:
    """Market selection and price acquisition."""
    max_markets: int = 50
    categories: list[str] = field(default_factory=list)  # Empty = all categories
    crypto_only: bool = True
    use_websocket: bool = True
    poll_interval_ms: int = 2000
    staleness_seconds: float = 5.0
    fetch_timeout_seconds: float = 5.0
    max_concurrent_fetches: int = 20
    catalog_refresh_seconds: float = 300.0
    stats_interval_seconds: float = 30.0


@dataclass
class ConnectionConfig:
    """API connection configuration."""
    clob_rest_url: str = "https://clob.polymarket.com"
    clob_ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    gamma_api_url: str = "https://gamma-api.polymarket.com"
    chain_id: int = 137  # Polygon mainnet
    ws_reconnect_initial_seconds: float = 1.0
    ws_reconnect_max_seconds: float = 60.0
    ws_ping_interval_seconds: int = 30
    rest_timeout_seconds: int = 10
    max_retries: int = 3
    retry_backoff_base: float = 1.5
    markets_page_size: int = 500


@dataclass
class Config:
    """Main configuration container."""
    # Secrets from environment
    private_key: str = field(default_factory=lambda: os.environ.get("POLYMARKET_PRIVATE_KEY", ""))
    funder_address: str = field(default_factory=lambda: os.environ.get("POLYMARKET_FUNDER_ADDRESS", ""))
    signature_type: int = 2

    # API credentials (derived from private key when absent)
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_KEY"))
    api_secret: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_SECRET"))
    api_passphrase: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_PASSPHRASE"))

    # Sub-configs
    trading: TradingConfig = field(default_factory=TradingConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.environ.get("LOG_FILE") or None)

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if not self.private_key:
            errors.append("POLYMARKET_PRIVATE_KEY is required")
        if not self.trading.dry_run and not self.funder_address:
            errors.append("POLYMARKET_FUNDER_ADDRESS is required when DRY_RUN is off")
        if not Decimal("0") < self.trading.max_combined_price <= Decimal("1"):
            errors.append("MAX_COMBINED_PRICE must be in (0, 1]")
        if self.trading.min_profit_threshold < 0:
            errors.append("MIN_PROFIT_THRESHOLD cannot be negative")
        if self.trading.order_size <= 0:
            errors.append("ORDER_SIZE must be positive")
        if self.trading.min_order_size < 0:
            errors.append("MIN_ORDER_SIZE cannot be negative")
        if self.trading.order_timeout_seconds <= 0:
            errors.append("ORDER_TIMEOUT_SECONDS must be positive")
        if self.scan.max_markets <= 0:
            errors.append("MAX_MARKETS must be positive")
        if self.scan.poll_interval_ms <= 0:
            errors.append("POLL_INTERVAL_MS must be positive")
        if self.scan.staleness_seconds <= 0:
            errors.append("STALENESS_SECONDS must be positive")
        if self.scan.fetch_timeout_seconds <= 0:
            errors.append("FETCH_TIMEOUT_SECONDS must be positive")
        if self.scan.max_concurrent_fetches <= 0:
            errors.append("MAX_CONCURRENT_FETCHES must be positive")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown LOG_LEVEL: {self.log_level}")

        return errors

    def summary(self) -> dict:
        """Non-secret settings for the startup log line."""
        return {
            "max_combined_price": str(self.trading.max_combined_price),
            "min_profit_threshold": str(self.trading.min_profit_threshold),
            "order_size": str(self.trading.order_size),
            "dry_run": self.trading.dry_run,
            "use_websocket": self.scan.use_websocket,
            "poll_interval_ms": self.scan.poll_interval_ms,
            "max_markets": self.scan.max_markets,
            "categories": self.scan.categories,
            "crypto_only": self.scan.crypto_only,
            "staleness_seconds": self.scan.staleness_seconds,
        }


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise FatalStartupError(f"Invalid {name}: {raw!r}")
    if not value.is_finite():
        raise FatalStartupError(f"Invalid {name}: {raw!r}")
    return value


def _env_number(name: str, default, cast):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise FatalStartupError(f"Invalid {name}: {raw!r}")


def load_config_from_env(env_file: Optional[str] = None) -> Config:
    """Load configuration from environment variables (and a .env file if present)."""
    load_dotenv(env_file)
    config = Config()

    config.signature_type = _env_number("POLYMARKET_SIGNATURE_TYPE", config.signature_type, int)

    trading = config.trading
    trading.max_combined_price = _env_decimal("MAX_COMBINED_PRICE", trading.max_combined_price)
    trading.min_profit_threshold = _env_decimal("MIN_PROFIT_THRESHOLD", trading.min_profit_threshold)
    trading.order_size = _env_decimal("ORDER_SIZE", trading.order_size)
    trading.min_order_size = _env_decimal("MIN_ORDER_SIZE", trading.min_order_size)
    trading.order_timeout_seconds = _env_number(
        "ORDER_TIMEOUT_SECONDS", trading.order_timeout_seconds, float
    )
    trading.cooldown_ms = _env_number("COOLDOWN_MS", trading.cooldown_ms, int)
    trading.dry_run = _env_bool("DRY_RUN", trading.dry_run)

    scan = config.scan
    scan.max_markets = _env_number("MAX_MARKETS", scan.max_markets, int)
    categories = os.environ.get("CATEGORIES", "")
    scan.categories = [c.strip() for c in categories.split(",") if c.strip()]
    scan.crypto_only = _env_bool("CRYPTO_ONLY", scan.crypto_only)
    scan.use_websocket = _env_bool("USE_WEBSOCKET", scan.use_websocket)
    scan.poll_interval_ms = _env_number("POLL_INTERVAL_MS", scan.poll_interval_ms, int)
    scan.staleness_seconds = _env_number("STALENESS_SECONDS", scan.staleness_seconds, float)
    scan.fetch_timeout_seconds = _env_number(
        "FETCH_TIMEOUT_SECONDS", scan.fetch_timeout_seconds, float
    )
    scan.max_concurrent_fetches = _env_number(
        "MAX_CONCURRENT_FETCHES", scan.max_concurrent_fetches, int
    )
    scan.catalog_refresh_seconds = _env_number(
        "CATALOG_REFRESH_SECONDS", scan.catalog_refresh_seconds, float
    )
    scan.stats_interval_seconds = _env_number(
        "STATS_INTERVAL_SECONDS", scan.stats_interval_seconds, float
    )

    return config
