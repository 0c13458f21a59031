"""
Error taxonomy for the scanner.
Fetch and execution failures are recovered locally; only FatalStartupError ends the process.
"""

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Opaque failure categories reported by the exchange collaborators."""
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    TRANSPORT = "transport"
    AUTH = "auth"


class ArbScannerError(Exception):
    """Base class for scanner errors."""


class ExchangeError(ArbScannerError):
    """A call to the exchange failed."""

    def __init__(self, kind: FailureKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value


class FetchError(ArbScannerError):
    """Market or book data could not be fetched this cycle."""

    def __init__(
        self,
        message: str,
        token_id: Optional[str] = None,
        kind: FailureKind = FailureKind.TRANSPORT,
    ):
        super().__init__(message)
        self.token_id = token_id
        self.kind = kind


class FatalStartupError(ArbScannerError):
    """Startup cannot proceed (bad configuration, authentication failure)."""
