"""
Audit Logger

DESIGN DECISION: Every ledger write is logged.
This provides:
1. Traceability of changes to shared money
2. Debugging capability when a remote write fails
3. A visible record of rollbacks and partial-write compensations

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from homeledger.models.audit import AuditEvent, AuditEventBuilder
from homeledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        severity = event.severity.value
        if severity == "critical":
            self._logger.critical("audit_event", **log_dict)
        elif severity == "error":
            self._logger.error("audit_event", **log_dict)
        elif severity == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entity_added(
        self,
        entity_type: str,
        entity_id: str,
        label: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entity_added(
            entity_type=entity_type,
            entity_id=entity_id,
            label=label,
            correlation_id=correlation_id,
            details=details,
        ))

    async def log_entity_updated(
        self,
        entity_type: str,
        entity_id: str,
        changes: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entity_updated(
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_entity_deleted(
        self,
        entity_type: str,
        entity_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entity_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_categories_seeded(
        self,
        names: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.categories_seeded(
            names=names,
            correlation_id=correlation_id,
        ))

    async def log_validation_issues(
        self,
        entity_id: Optional[str],
        issues: list[dict],
        blocking: bool,
        correlation_id: UUID,
    ) -> None:
        """Log validation findings (blocking errors or plain warnings)."""
        await self.log(AuditEventBuilder.validation_issues(
            entity_id=entity_id,
            issues=issues,
            blocking=blocking,
            correlation_id=correlation_id,
        ))

    async def log_rollback(
        self,
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a remote write failure that reverted the local state."""
        await self.log(AuditEventBuilder.mutation_rolled_back(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_compensation(
        self,
        transaction_id: str,
        action: str,
        succeeded: bool,
        correlation_id: UUID,
        error_message: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.compensation(
            transaction_id=transaction_id,
            action=action,
            succeeded=succeeded,
            correlation_id=correlation_id,
            error_message=error_message,
        ))

    async def log_fetch_failed(
        self,
        collection: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.fetch_failed(
            collection=collection,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a backend that could not be reached."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
