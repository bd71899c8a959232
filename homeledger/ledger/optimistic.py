"""
Optimistic Mutation Helper

Every ledger write follows the same four steps:

1. Snapshot the collections the write touches
2. Apply the change to the store immediately
3. Perform the remote write
4. On success, fold the confirmed record back into the store;
   on a StorageError, restore the snapshot

The outcome is always returned as an OperationResult. Only StorageError
is treated as a remote failure; anything else is a bug and propagates.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional
from uuid import UUID

import structlog

from homeledger.audit import AuditLogger, create_correlation_id
from homeledger.ledger.store import LedgerStore
from homeledger.models.ledger import OperationResult
from homeledger.services.storage import ConnectionError, StorageError


logger = structlog.get_logger(__name__)


class OptimisticMutation:
    """
    One optimistic write against the ledger store.

    Usage:
        mutation = OptimisticMutation(store, operation="delete_member",
                                      entity_type="member", collections=["members"])
        result = await mutation.run(
            apply=lambda s: s.remove_member(member_id),
            write=lambda: data_source.delete_member(member_id),
            entity_id=member_id,
        )
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        operation: str,
        entity_type: str,
        collections: Iterable[str],
        audit_logger: Optional[AuditLogger] = None,
        correlation_id: Optional[UUID] = None,
    ):
        self._store = store
        self._operation = operation
        self._entity_type = entity_type
        self._collections = tuple(collections)
        self._audit_logger = audit_logger
        self.correlation_id = correlation_id or create_correlation_id()

    async def run(
        self,
        apply: Callable[[LedgerStore], Any],
        write: Callable[[], Awaitable[Any]],
        confirm: Optional[Callable[[LedgerStore, Any], Any]] = None,
        entity_id: Optional[str] = None,
        warnings: Optional[list[str]] = None,
    ) -> OperationResult:
        """
        Execute the mutation.

        Args:
            apply: Applies the optimistic change to the store
            write: Coroutine factory performing the remote write
            confirm: Receives the store and the write's return value after
                     a successful write (e.g. to swap a temporary record
                     for the confirmed one)
            entity_id: Id of the affected entity, for logging and results
            warnings: Non-blocking messages to pass through to the result

        Returns:
            OperationResult with success, the confirmed value, or the
            failure reason and rolled_back=True
        """
        snapshot = self._store.snapshot()
        apply(self._store)

        try:
            value = await write()
        except StorageError as e:
            self._store.restore(snapshot, self._collections)
            logger.warning(
                "optimistic_write_rolled_back",
                operation=self._operation,
                entity_type=self._entity_type,
                entity_id=entity_id,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_rollback(
                    operation=self._operation,
                    entity_type=self._entity_type,
                    entity_id=entity_id,
                    error_message=str(e),
                    correlation_id=self.correlation_id,
                )
                if isinstance(e, ConnectionError):
                    await self._audit_logger.log_external_service_error(
                        service="ledger_storage",
                        error_message=str(e),
                        correlation_id=self.correlation_id,
                    )
            return OperationResult(
                operation=self._operation,
                success=False,
                entity_type=self._entity_type,
                entity_id=entity_id,
                error_message=str(e),
                rolled_back=True,
                warnings=warnings or [],
                correlation_id=self.correlation_id,
            )

        if confirm is not None:
            confirm(self._store, value)

        return OperationResult(
            operation=self._operation,
            success=True,
            entity_type=self._entity_type,
            entity_id=entity_id,
            value=value,
            warnings=warnings or [],
            correlation_id=self.correlation_id,
        )
