"""Pydantic schemas package."""

from .checkout import CheckoutRead, CheckoutRequest
from .payme import (
    CancelTransactionParams,
    CancelTransactionResult,
    CheckPerformTransactionParams,
    CheckPerformTransactionResult,
    CheckTransactionResult,
    CreateTransactionParams,
    CreateTransactionResult,
    PaymeAccount,
    PerformTransactionResult,
    TransactionIdParams,
)
from .transaction import ReconciliationReportRead, TransactionRead

__all__ = [
    "CancelTransactionParams",
    "CancelTransactionResult",
    "CheckoutRead",
    "CheckoutRequest",
    "CheckPerformTransactionParams",
    "CheckPerformTransactionResult",
    "CheckTransactionResult",
    "CreateTransactionParams",
    "CreateTransactionResult",
    "PaymeAccount",
    "PerformTransactionResult",
    "ReconciliationReportRead",
    "TransactionIdParams",
    "TransactionRead",
]
