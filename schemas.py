import datetime as dt
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import BulkDeleteScope, Jar, SourceStatus, SourceType, TransactionType


# Money columns are BIGINT. Single amounts are capped well below that so a
# balance can absorb many of them; apply_delta guards the sum itself.
MAX_AMOUNT_CENTS = 10**15
MAX_BALANCE_CENTS = 2**63 - 1
MAX_AMOUNT = Decimal(MAX_AMOUNT_CENTS) / 100


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    jar: Optional[Jar] = None


class CategoryRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class SourceIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: SourceType = SourceType.bank_account
    balance_cents: int = Field(default=0, ge=-MAX_AMOUNT_CENTS, le=MAX_AMOUNT_CENTS)
    status: SourceStatus = SourceStatus.available
    interest_rate: float = Field(default=0.0, ge=0)
    category_label: str = Field(default="", max_length=100)
    transfer_time: str = Field(default="Instant", max_length=50)


class SourceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[SourceType] = None
    balance_cents: Optional[int] = Field(
        default=None, ge=-MAX_AMOUNT_CENTS, le=MAX_AMOUNT_CENTS
    )
    status: Optional[SourceStatus] = None
    interest_rate: Optional[float] = Field(default=None, ge=0)
    category_label: Optional[str] = Field(default=None, max_length=100)
    transfer_time: Optional[str] = Field(default=None, max_length=50)


class TransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)
    type: TransactionType
    date: dt.date
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: int
    source_id: int


class TransactionPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT_CENTS)
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None
    source_id: Optional[int] = None


class BulkDeleteIn(BaseModel):
    type: BulkDeleteScope = BulkDeleteScope.all


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    jar: Optional[Jar]


class SourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: SourceType
    balance_cents: int
    opening_balance_cents: int
    status: SourceStatus
    interest_rate: float
    category_label: str
    transfer_time: str


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    type: TransactionType
    date: dt.date
    description: Optional[str]
    category_id: int
    source_id: int
    category: Optional[CategoryOut] = None
    source: Optional[SourceOut] = None


# Agent tool arguments. Amounts arrive as currency values, not cents, and
# field names follow the camelCase used by the model-facing declarations.


def _coerce_source_type(value: Any) -> Any:
    if isinstance(value, str):
        aliases = {
            "bank": SourceType.bank_account,
            "bank account": SourceType.bank_account,
            "checking": SourceType.bank_account,
            "savings": SourceType.bank_account,
            "wallet": SourceType.e_wallet,
            "e-wallet": SourceType.e_wallet,
            "ewallet": SourceType.e_wallet,
        }
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        if key not in {member.value for member in SourceType}:
            return SourceType.other
        return key
    return value


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AddTransactionArgs(ToolArgs):
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    source_id: Optional[str] = Field(default="default", alias="sourceId")
    date: Optional[dt.date] = None

    @field_validator("source_id", mode="before")
    @classmethod
    def _stringify_source(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class AddMultipleTransactionsArgs(ToolArgs):
    transactions: list[dict[str, Any]]


class UpdateTransactionArgs(ToolArgs):
    transaction_id: int = Field(..., alias="transactionId")
    amount: Optional[Decimal] = Field(default=None, gt=0, le=MAX_AMOUNT)
    type: Optional[TransactionType] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    source_id: Optional[str] = Field(default=None, alias="sourceId")
    date: Optional[dt.date] = None

    @field_validator("source_id", mode="before")
    @classmethod
    def _stringify_source(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class DeleteTransactionArgs(ToolArgs):
    transaction_id: int = Field(..., alias="transactionId")


class DeleteMultipleTransactionsArgs(ToolArgs):
    type: BulkDeleteScope = BulkDeleteScope.all


class CreateCategoryArgs(ToolArgs):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    jar: Optional[Jar] = Field(default=None, alias="sixJarsCategory")


class CreateSourceArgs(ToolArgs):
    name: str = Field(..., min_length=1, max_length=100)
    type: SourceType = SourceType.bank_account
    balance: Decimal = Field(default=Decimal("0"), ge=-MAX_AMOUNT, le=MAX_AMOUNT)

    @field_validator("type", mode="before")
    @classmethod
    def _loose_type(cls, value: Any) -> Any:
        return _coerce_source_type(value)


class ToolCallIn(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
