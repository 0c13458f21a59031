"""
Authentication manager for the Polymarket CLOB API.
L1 (EIP-712 wallet signature) derives API credentials; L2 (HMAC) signs requests.
"""

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_typed_data

from ..errors import ExchangeError, FailureKind


@dataclass
class ApiCredentials:
    """L2 API credentials."""
    api_key: str
    api_secret: str
    api_passphrase: str

    @classmethod
    def from_response(cls, data: dict) -> "ApiCredentials":
        return cls(
            api_key=data["apiKey"],
            api_secret=data["secret"],
            api_passphrase=data["passphrase"],
        )


class AuthManager:
    """Signs CLOB requests for one wallet."""

    AUTH_MESSAGE = "This message attests that I control the given wallet"

    CLOB_AUTH_TYPES = {
        "EIP712Domain": [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
        ],
        "ClobAuth": [
            {"name": "address", "type": "address"},
            {"name": "timestamp", "type": "string"},
            {"name": "nonce", "type": "uint256"},
            {"name": "message", "type": "string"},
        ],
    }

    def __init__(
        self,
        private_key: str,
        credentials: Optional[ApiCredentials] = None,
        chain_id: int = 137,
    ):
        # Raises ValueError for a malformed key
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self.credentials = credentials
        self.domain = {
            "name": "ClobAuthDomain",
            "version": "1",
            "chainId": chain_id,
        }

    def get_l1_headers(self, nonce: int = 0) -> dict[str, str]:
        """Headers proving wallet ownership, used to derive API credentials."""
        timestamp = str(int(time.time()))

        typed_data = {
            "types": self.CLOB_AUTH_TYPES,
            "primaryType": "ClobAuth",
            "domain": self.domain,
            "message": {
                "address": self.address,
                "timestamp": timestamp,
                "nonce": nonce,
                "message": self.AUTH_MESSAGE,
            },
        }

        signable = encode_typed_data(full_message=typed_data)
        signed = self.account.sign_message(signable)
        signature = signed.signature.hex()
        if not signature.startswith("0x"):
            signature = "0x" + signature

        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": signature,
            "POLY_TIMESTAMP": timestamp,
            "POLY_NONCE": str(nonce),
        }

    def get_l2_headers(self, method: str, path: str, body: str = "") -> dict[str, str]:
        """HMAC-SHA256 headers for an authenticated request."""
        if self.credentials is None:
            raise ExchangeError(FailureKind.AUTH, "API credentials required for L2 authentication")

        timestamp = str(int(time.time()))
        message = timestamp + method.upper() + path + body

        secret_bytes = base64.urlsafe_b64decode(self.credentials.api_secret)
        digest = hmac.new(secret_bytes, message.encode("utf-8"), hashlib.sha256).digest()

        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": base64.urlsafe_b64encode(digest).decode("utf-8"),
            "POLY_TIMESTAMP": timestamp,
            "POLY_API_KEY": self.credentials.api_key,
            "POLY_PASSPHRASE": self.credentials.api_passphrase,
        }

    def has_l2_credentials(self) -> bool:
        return self.credentials is not None
