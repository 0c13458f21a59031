"""
Metrics collection for monitoring scanner performance.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class SessionMetrics:
    """Counters for a scanning session."""
    start_time: float = field(default_factory=time.time)

    # Scanning
    scans_completed: int = 0
    opportunities_found: int = 0
    fetch_failures: int = 0
    catalog_refresh_failures: int = 0

    # Execution
    executions_attempted: int = 0
    executions_confirmed: int = 0
    executions_partial: int = 0
    executions_failed: int = 0
    executions_skipped: int = 0
    dry_run_skips: int = 0

    # P&L (expected at resolution, not realized)
    expected_profit: Decimal = Decimal("0")

    # Connection
    ws_reconnects: int = 0


class MetricsCollector:
    """
    Collects and aggregates metrics for the scanner.
    """

    def __init__(self):
        self._session = SessionMetrics()

    def record_scan(self, opportunities: int, fetch_failures: int = 0) -> None:
        self._session.scans_completed += 1
        self._session.opportunities_found += opportunities
        self._session.fetch_failures += fetch_failures

    def record_catalog_failure(self) -> None:
        self._session.catalog_refresh_failures += 1

    def record_execution(self, status: str, expected_profit: Decimal = Decimal("0")) -> None:
        """Record an execution outcome by its status value."""
        session = self._session
        if status == "dry_run_skip":
            session.dry_run_skips += 1
            return
        if status == "skipped":
            session.executions_skipped += 1
            return

        session.executions_attempted += 1
        if status == "confirmed":
            session.executions_confirmed += 1
            session.expected_profit += expected_profit
        elif status == "partial_failure":
            session.executions_partial += 1
        else:
            session.executions_failed += 1

    def record_ws_reconnect(self) -> None:
        self._session.ws_reconnects += 1

    def get_session_metrics(self) -> dict:
        """Get current session metrics as dict."""
        s = self._session
        return {
            "uptime_seconds": round(time.time() - s.start_time, 1),
            "scans_completed": s.scans_completed,
            "opportunities_found": s.opportunities_found,
            "fetch_failures": s.fetch_failures,
            "catalog_refresh_failures": s.catalog_refresh_failures,
            "executions_attempted": s.executions_attempted,
            "executions_confirmed": s.executions_confirmed,
            "executions_partial": s.executions_partial,
            "executions_failed": s.executions_failed,
            "executions_skipped": s.executions_skipped,
            "dry_run_skips": s.dry_run_skips,
            "expected_profit": str(s.expected_profit),
            "ws_reconnects": s.ws_reconnects,
        }

    def reset_session(self) -> None:
        self._session = SessionMetrics()
