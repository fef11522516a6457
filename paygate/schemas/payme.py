"""Pydantic schemas for the Payme merchant API parameters and results."""
from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt, StrictStr


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class PaymeAccount(_Params):
    user_id: StrictStr | StrictInt | None = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    plan: StrictStr | None = None


class CheckPerformTransactionParams(_Params):
    account: PaymeAccount | None = None
    amount: StrictInt | None = None


class CreateTransactionParams(CheckPerformTransactionParams):
    id: StrictStr | None = None
    time: StrictInt | None = None


class TransactionIdParams(_Params):
    id: StrictStr | None = None


class CancelTransactionParams(TransactionIdParams):
    reason: StrictInt | None = None


class CheckPerformTransactionResult(BaseModel):
    allow: bool = True


class CreateTransactionResult(BaseModel):
    create_time: int
    transaction: str
    state: int


class PerformTransactionResult(BaseModel):
    perform_time: int
    transaction: str
    state: int


class CancelTransactionResult(BaseModel):
    cancel_time: int
    transaction: str
    state: int


class CheckTransactionResult(BaseModel):
    create_time: int
    perform_time: int
    cancel_time: int
    transaction: str
    state: int
    reason: int | None


__all__ = [
    "CancelTransactionParams",
    "CancelTransactionResult",
    "CheckPerformTransactionParams",
    "CheckPerformTransactionResult",
    "CheckTransactionResult",
    "CreateTransactionParams",
    "CreateTransactionResult",
    "PaymeAccount",
    "PerformTransactionResult",
    "TransactionIdParams",
]
