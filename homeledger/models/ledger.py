"""
Core Data Models for the Household Ledger

These models define the schemas for all ledger data flowing between the
store, the balance engine and the storage backends. They are designed to:
1. Parse amounts explicitly into Decimal at the boundary
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is Decimal everywhere. Storage backends hand us
strings; floats are converted through their shortest repr so that 0.1
stays 0.1 instead of 0.1000000000000000055511151231257827.
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utcnow() -> dt.datetime:
    """Timezone-aware current UTC time."""
    return dt.datetime.now(dt.timezone.utc)


def new_id() -> str:
    return str(uuid4())


def parse_amount(value: Any) -> Decimal:
    """
    Parse a monetary value into a Decimal.

    Accepts Decimal, int, float and numeric strings (as delivered by the
    transport layer). Raises ValueError for anything else, including
    booleans, NaN and infinities.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}")
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """
    Kinds of ledger entries.

    EXPENSE: the payer fronted a cost that is split between consumers.
    PAYMENT: one member pays another back directly.
    """
    EXPENSE = "expense"
    PAYMENT = "payment"


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Member(BaseModel):
    """A participant in the shared ledger."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    created_at: dt.datetime = Field(default_factory=utcnow)


class Category(BaseModel):
    """
    Classification for expenses.

    Categories can be deleted while transactions still reference them;
    the history keeps the dangling id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    icon: Optional[str] = Field(
        default=None,
        max_length=16,
        description="Emoji shown next to the name"
    )
    created_at: dt.datetime = Field(default_factory=utcnow)


class Split(BaseModel):
    """
    One member's share of an expense.

    split_amount is authoritative for balances; split_percentage is only
    kept for display and re-editing.
    """

    member_id: str = Field(..., min_length=1)
    split_amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Amount attributed to this member"
    )
    split_percentage: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=100,
    )

    @field_validator('split_amount', mode='before')
    @classmethod
    def parse_split_amount(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator('split_percentage', mode='before')
    @classmethod
    def parse_split_percentage(cls, v: Any) -> Optional[Decimal]:
        if v is None or v == "":
            return None
        return parse_amount(v)


class TransactionDraft(BaseModel):
    """
    The user-editable fields of a transaction.

    Drafts are what callers hand to the finance service for create and
    update. They are checked by the TransactionValidator, not here, so
    that every problem is reported at once instead of failing on the
    first one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Total amount"
    )
    payer_id: str
    date: dt.date
    title: Optional[str] = Field(default=None, max_length=200)
    receiver_id: Optional[str] = None
    category_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    splits: list[Split] = Field(default_factory=list)

    @field_validator('amount', mode='before')
    @classmethod
    def parse_total_amount(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator('receiver_id', 'category_id', 'title', 'notes', mode='before')
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def base_fields(self) -> dict[str, Any]:
        """Fields of the base record, without splits."""
        return self.model_dump(exclude={"splits"})


class Transaction(TransactionDraft):
    """
    A stored expense or payment.

    The payer/receiver/category display fields are denormalized by the
    data source on fetch. They are None when the referenced entity was
    deleted.
    """

    id: str = Field(default_factory=new_id)
    created_at: dt.datetime = Field(default_factory=utcnow)

    payer_name: Optional[str] = None
    receiver_name: Optional[str] = None
    category_name: Optional[str] = None
    category_icon: Optional[str] = None

    @model_validator(mode='after')
    def validate_payment_receiver(self) -> 'Transaction':
        """Payments always name who was paid."""
        if self.type == TransactionType.PAYMENT and not self.receiver_id:
            raise ValueError("Payment transactions require a receiver")
        return self

    @property
    def split_total(self) -> Decimal:
        return sum((s.split_amount for s in self.splits), Decimal("0"))

    @classmethod
    def from_draft(
        cls,
        draft: TransactionDraft,
        **extra: Any,
    ) -> 'Transaction':
        data = draft.model_dump()
        data.update(extra)
        return cls(**data)


class MemberBalance(BaseModel):
    """
    A member together with their net balance.

    Positive: the group owes them money.
    Negative: they owe the group.
    """

    id: str
    name: str
    created_at: Optional[dt.datetime] = None
    balance: Decimal = Decimal("0")


# =============================================================================
# RESULTS
# =============================================================================

class OperationResult(BaseModel):
    """
    Outcome of a ledger operation.

    Every operation, whether a write or a fetch, reports its outcome
    through this model. Failures never raise out of the finance service.
    """

    operation: str = Field(
        ...,
        description="Name of the operation (e.g. 'add_member')"
    )
    success: bool
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    value: Optional[Any] = Field(
        default=None,
        description="Confirmed entity or list returned by the data source"
    )
    error_message: Optional[str] = None
    rolled_back: bool = Field(
        default=False,
        description="Was the optimistic local change reverted?"
    )
    warnings: list[str] = Field(default_factory=list)
    correlation_id: UUID = Field(default_factory=uuid4)
    completed_at: dt.datetime = Field(default_factory=utcnow)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'split_mismatch', 'unknown_member')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, basic shape)
    Stage 2: Semantic validation (consistency against the ledger)
    """

    validated_at: dt.datetime = Field(default_factory=utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        """Messages of all warning-level issues."""
        return [i.message for i in self.issues if i.severity == "warning"]

    @property
    def errors(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "error"]
