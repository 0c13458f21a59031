"""Tests for structured logging and session metrics."""

import json
from decimal import Decimal

from arb_scanner.monitor import Logger, MetricsCollector


def _lines(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line]


class TestLogger:

    def test_emits_one_json_object_per_event(self, capsys):
        logger = Logger(name="arb_scanner.test", level="INFO")
        logger.info("scan_cycle", markets=3, price=Decimal("0.45"))

        [entry] = _lines(capsys)
        assert entry["event"] == "scan_cycle"
        assert entry["level"] == "INFO"
        assert entry["markets"] == 3
        assert entry["price"] == "0.45"
        assert entry["timestamp"].endswith("Z")

    def test_level_filtering(self, capsys):
        logger = Logger(name="arb_scanner.test", level="WARNING")
        logger.info("hidden")
        logger.warning("shown")

        assert [e["event"] for e in _lines(capsys)] == ["shown"]

    def test_partial_failure_is_critical(self, capsys):
        logger = Logger(name="arb_scanner.test")
        logger.partial_failure("m1", filled_side="YES", failed_side="NO", size="10", error="rejected")

        [entry] = _lines(capsys)
        assert entry["level"] == "CRITICAL"
        assert entry["action"] == "manual_review_required"

    def test_failed_execution_logged_as_error(self, capsys):
        logger = Logger(name="arb_scanner.test")
        logger.execution_result("m1", "failed", False, "10", "0.5", {}, {})
        logger.execution_result("m1", "confirmed", False, "10", "0.5", {}, {})

        assert [e["level"] for e in _lines(capsys)] == ["ERROR", "INFO"]

    def test_log_file(self, tmp_path, capsys):
        path = tmp_path / "scanner.log"
        logger = Logger(name="arb_scanner.test.file", log_file=str(path))
        logger.info("catalog_refreshed", markets=2)
        for handler in logger.logger.handlers:
            handler.flush()

        assert json.loads(path.read_text().strip())["markets"] == 2


class TestMetricsCollector:

    def test_execution_outcomes(self):
        metrics = MetricsCollector()
        metrics.record_execution("confirmed", Decimal("0.50"))
        metrics.record_execution("partial_failure", Decimal("0.50"))
        metrics.record_execution("failed")
        metrics.record_execution("dry_run_skip")
        metrics.record_execution("skipped")

        m = metrics.get_session_metrics()
        assert m["executions_attempted"] == 3
        assert m["executions_confirmed"] == 1
        assert m["executions_partial"] == 1
        assert m["executions_failed"] == 1
        assert m["dry_run_skips"] == 1
        assert m["executions_skipped"] == 1
        # Only confirmed pairs count toward expected profit
        assert m["expected_profit"] == "0.50"

    def test_scans_and_reset(self):
        metrics = MetricsCollector()
        metrics.record_scan(opportunities=2, fetch_failures=1)
        metrics.record_ws_reconnect()
        metrics.record_catalog_failure()

        m = metrics.get_session_metrics()
        assert (m["scans_completed"], m["opportunities_found"], m["fetch_failures"]) == (1, 2, 1)
        assert m["ws_reconnects"] == 1
        assert m["catalog_refresh_failures"] == 1

        metrics.reset_session()
        assert metrics.get_session_metrics()["scans_completed"] == 0
