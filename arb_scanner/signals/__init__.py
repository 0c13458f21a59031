"""Signals module for arbitrage detection."""

from .evaluator import OpportunityCandidate, ParityScanner, ScanReport, evaluate

__all__ = ["OpportunityCandidate", "ParityScanner", "ScanReport", "evaluate"]
