"""
Audit Models for the Household Ledger

Every write against the ledger is logged for audit purposes.
This provides:
1. Traceability of who changed which entry and when
2. Debugging information when a remote write fails
3. A record of rollbacks and compensations, which are otherwise invisible

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from homeledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Members
    MEMBER_ADDED = "member_added"
    MEMBER_UPDATED = "member_updated"
    MEMBER_DELETED = "member_deleted"

    # Categories
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"
    CATEGORIES_SEEDED = "categories_seeded"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    VALIDATION_WARNING = "validation_warning"
    VALIDATION_FAILED = "validation_failed"

    # Failure handling
    MUTATION_ROLLED_BACK = "mutation_rolled_back"
    COMPENSATION_APPLIED = "compensation_applied"
    COMPENSATION_FAILED = "compensation_failed"
    FETCH_FAILED = "fetch_failed"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger write creates at least one of these.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'member', 'category', 'transaction')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one operation"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_added("member", member.id, member.name, correlation_id)
        event = AuditEventBuilder.mutation_rolled_back("delete_member", "member", id, error, correlation_id)
    """

    _ADDED = {
        "member": AuditEventType.MEMBER_ADDED,
        "category": AuditEventType.CATEGORY_ADDED,
        "transaction": AuditEventType.TRANSACTION_ADDED,
    }
    _UPDATED = {
        "member": AuditEventType.MEMBER_UPDATED,
        "category": AuditEventType.CATEGORY_UPDATED,
        "transaction": AuditEventType.TRANSACTION_UPDATED,
    }
    _DELETED = {
        "member": AuditEventType.MEMBER_DELETED,
        "category": AuditEventType.CATEGORY_DELETED,
        "transaction": AuditEventType.TRANSACTION_DELETED,
    }

    @staticmethod
    def entity_added(
        entity_type: str,
        entity_id: str,
        label: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._ADDED[entity_type],
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} added: {label}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def entity_updated(
        entity_type: str,
        entity_id: str,
        changes: dict,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._UPDATED[entity_type],
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} updated",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def entity_deleted(
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventBuilder._DELETED[entity_type],
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def categories_seeded(
        names: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            entity_type="category",
            correlation_id=correlation_id,
            description=f"Seeded {len(names)} default categories",
            details={"names": names},
            is_user_action=True,
        )

    @staticmethod
    def validation_issues(
        entity_id: Optional[str],
        issues: list[dict],
        blocking: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.VALIDATION_FAILED
                if blocking
                else AuditEventType.VALIDATION_WARNING
            ),
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Transaction validation reported {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def mutation_rolled_back(
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation} failed, local change rolled back",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def compensation(
        transaction_id: str,
        action: str,
        succeeded: bool,
        correlation_id: UUID,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        if succeeded:
            return AuditEvent(
                event_type=AuditEventType.COMPENSATION_APPLIED,
                severity=AuditSeverity.WARNING,
                entity_type="transaction",
                entity_id=transaction_id,
                correlation_id=correlation_id,
                description=f"Partial write compensated: {action}",
                details={"action": action},
            )
        return AuditEvent(
            event_type=AuditEventType.COMPENSATION_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Partial write could not be compensated: {action}",
            error_message=error_message,
            details={"action": action},
        )

    @staticmethod
    def fetch_failed(
        collection: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=collection,
            correlation_id=correlation_id,
            description=f"Fetching {collection} failed",
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
        )
