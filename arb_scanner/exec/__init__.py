"""Execution module for dual-leg order management."""

from .executor import ExecutionCoordinator, ExecutionResult, ExecutionStatus, LegOutcome, LegStatus

__all__ = ["ExecutionCoordinator", "ExecutionResult", "ExecutionStatus", "LegOutcome", "LegStatus"]
