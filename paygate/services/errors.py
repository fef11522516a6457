"""Protocol error taxonomy for the Payme merchant API."""
from __future__ import annotations

from typing import Any


class PaymeError(RuntimeError):
    """Base exception for errors reported to the gateway in the response envelope."""

    code: int = -32603
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None, *, data: Any = None) -> None:
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def to_error(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class InvalidRequestError(PaymeError):
    """Raised when the envelope is not a well-formed merchant request."""

    code = -32600
    default_message = "Invalid Request"


class MethodNotFoundError(PaymeError):
    code = -32601
    default_message = "Method not found"


class RateLimitExceededError(PaymeError):
    code = -32700
    default_message = "Too many requests"


class InsufficientPrivilegesError(PaymeError):
    """Raised when the merchant authorization header does not match."""

    code = -32504
    default_message = "Insufficient privileges"


class InternalError(PaymeError):
    code = -32603
    default_message = "Internal error"


class InvalidParamsError(PaymeError):
    """Raised for missing or malformed method parameters."""

    code = -31001
    default_message = "Invalid parameters"


class InvalidAmountError(InvalidParamsError):
    default_message = "Invalid amount"


class TransactionNotFoundError(PaymeError):
    code = -31003
    default_message = "Transaction not found"


class TransactionAlreadyPerformedError(PaymeError):
    """Raised when policy forbids cancelling a captured transaction."""

    code = -31007
    default_message = "Transaction already performed"


class UnableToCompleteError(PaymeError):
    """Raised when a transition cannot be applied or persisted."""

    code = -31008
    default_message = "Unable to complete operation"


class AccountNotFoundError(PaymeError):
    """Raised when the account referenced in ``params.account`` cannot be resolved."""

    code = -31050
    default_message = "User not found"


__all__ = [
    "AccountNotFoundError",
    "InsufficientPrivilegesError",
    "InternalError",
    "InvalidAmountError",
    "InvalidParamsError",
    "InvalidRequestError",
    "MethodNotFoundError",
    "PaymeError",
    "RateLimitExceededError",
    "TransactionAlreadyPerformedError",
    "TransactionNotFoundError",
    "UnableToCompleteError",
]
