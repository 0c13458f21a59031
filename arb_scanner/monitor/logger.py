"""
Structured JSON logging for the scanner.
All logs are JSON for easy parsing and analysis.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "event": record.msg,
            "logger": record.name,
        }

        # Add extra fields
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class Logger:
    """
    Structured JSON logger for the scanner.

    All log entries are JSON objects with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level
    - event: Event name/type
    - Additional context fields
    """

    def __init__(
        self,
        name: str = "arb_scanner",
        level: str = "INFO",
        log_file: Optional[str] = None,
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers = []  # Clear existing handlers
        self.logger.propagate = False

        formatter = JSONFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        """Internal log method."""
        if not self.logger.isEnabledFor(level):
            return
        record = self.logger.makeRecord(
            self.logger.name,
            level,
            "",
            0,
            event,
            (),
            None,
        )
        record.extra_fields = kwargs
        self.logger.handle(record)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, event, **kwargs)

    def critical(self, event: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, event, **kwargs)

    # === Convenience methods for common events ===

    def opportunity_detected(
        self,
        market_id: str,
        yes_ask: str,
        no_ask: str,
        combined: str,
        profit_per_share: str,
        size: str,
    ) -> None:
        """Log a detected opportunity."""
        self.info(
            "opportunity_detected",
            market_id=market_id,
            yes_ask=yes_ask,
            no_ask=no_ask,
            combined=combined,
            profit_per_share=profit_per_share,
            size=size,
        )

    def execution_result(
        self,
        market_id: str,
        status: str,
        dry_run: bool,
        size: str,
        expected_profit: str,
        yes_leg: dict,
        no_leg: dict,
        duration_ms: float = 0.0,
    ) -> None:
        """Log the outcome of an execution attempt."""
        fields = dict(
            market_id=market_id,
            status=status,
            dry_run=dry_run,
            size=size,
            expected_profit=expected_profit,
            yes_leg=yes_leg,
            no_leg=no_leg,
            duration_ms=round(duration_ms, 1),
        )
        if status == "failed":
            self.error("execution_result", **fields)
        else:
            self.info("execution_result", **fields)

    def partial_failure(
        self,
        market_id: str,
        filled_side: str,
        failed_side: str,
        size: str,
        error: str,
    ) -> None:
        """Log one-sided exposure after a paired execution."""
        self.critical(
            "partial_failure",
            market_id=market_id,
            filled_side=filled_side,
            failed_side=failed_side,
            size=size,
            error=error,
            action="manual_review_required",
        )

    def scan_cycle(
        self,
        mode: str,
        markets: int,
        evaluated: int,
        opportunities: int,
        fetch_failures: int = 0,
        duration_ms: float = 0.0,
    ) -> None:
        """Log a completed scan cycle, including cycles with no opportunity."""
        self.info(
            "scan_cycle",
            mode=mode,
            markets=markets,
            evaluated=evaluated,
            opportunities=opportunities,
            fetch_failures=fetch_failures,
            duration_ms=round(duration_ms, 1),
        )

    def catalog_refreshed(self, markets: int, discovered: int) -> None:
        self.info("catalog_refreshed", markets=markets, discovered=discovered)

    def ws_connected(self, url: str, tokens: int) -> None:
        """Log WebSocket connected."""
        self.info("ws_connected", url=url, tokens=tokens)

    def ws_disconnected(self, reason: str = "", retry_in: float = 0.0) -> None:
        """Log WebSocket disconnected."""
        self.warning("ws_disconnected", reason=reason, retry_in=retry_in)

    def startup(self, config: dict) -> None:
        self.info("scanner_startup", config=config)

    def shutdown(self, reason: str = "normal") -> None:
        self.info("scanner_shutdown", reason=reason)
