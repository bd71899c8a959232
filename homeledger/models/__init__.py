"""
Data Models Package

This package contains all Pydantic models used in the Household Ledger.
All data flowing between the store, the engine and storage conforms to
these schemas.
"""

from homeledger.models.ledger import (
    Category,
    Member,
    MemberBalance,
    OperationResult,
    Split,
    Transaction,
    TransactionDraft,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    new_id,
    parse_amount,
    utcnow,
)
from homeledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Category",
    "Member",
    "MemberBalance",
    "OperationResult",
    "Split",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "new_id",
    "parse_amount",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
