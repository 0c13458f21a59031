"""
Binary-market price-sum arbitrage scanner.

Watches YES/NO best asks, flags markets where YES_ask + NO_ask < 1.00 by at
least the configured margin, and buys both sides concurrently (or logs only
in dry-run mode).
"""

__version__ = "0.1.0"
