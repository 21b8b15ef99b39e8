"""Error taxonomy shared by the wallet, spend and checkout paths.

Services raise these; `main.py` renders them. Raw storage or gateway exceptions
are converted before they leave a public operation.
"""

from typing import Optional


class CoinEconomyError(Exception):
    code = "error"
    status_code = 500
    action: Optional[str] = None
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, *, stage: Optional[str] = None):
        self.message = message or self.default_message
        self.stage = stage
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.code, "detail": self.message}
        if self.action:
            body["action"] = self.action
        return body


class Unauthenticated(CoinEconomyError):
    code = "unauthenticated"
    status_code = 401
    action = "login"
    default_message = "Please sign up or log in to continue."


class InvalidRequest(CoinEconomyError):
    code = "invalid_request"
    status_code = 400
    default_message = "Invalid request"


class NotFound(CoinEconomyError):
    code = "not_found"
    status_code = 404
    default_message = "The requested item could not be found."


class InsufficientFunds(CoinEconomyError):
    code = "insufficient_funds"
    status_code = 402
    action = "buy_coins"

    def __init__(self, *, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient coins. Balance: {balance}, required: {required}. Buy more coins to continue."
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["balance"] = self.balance
        body["required"] = self.required
        return body


class PayoutNotConfigured(CoinEconomyError):
    code = "payout_not_configured"
    status_code = 409
    action = "retry_later"
    default_message = "This creator can't accept payments yet. Please try again later."


class GatewayError(CoinEconomyError):
    code = "gateway_error"
    status_code = 502
    action = "retry"
    default_message = "The payment provider could not complete the request."


class DanglingDebit(CoinEconomyError):
    """Coins were deducted but the matching event could not be recorded or refunded."""

    code = "dangling_debit"
    status_code = 500
    action = "contact_support"
    default_message = "Your coins were charged but the action was not recorded. Please contact support."


class StorageError(CoinEconomyError):
    code = "storage_unavailable"
    status_code = 503
    action = "retry"
    default_message = "Storage is temporarily unavailable. Please try again."
