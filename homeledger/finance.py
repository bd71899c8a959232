"""
Finance Service for the Household Ledger

This module ties together the ledger store, the data source, the
validator and the audit trail, and defines every ledger operation:
members, categories and transactions can be added, updated and deleted,
and all three collections can be (re)loaded from the data source.

DESIGN DECISION: The service enforces the boundaries:
- Every write is optimistic and rolled back on a storage failure
- Every outcome, good or bad, comes back as an OperationResult
- Multi-step writes are compensated when a later step fails
- Every write is audited

Transactions are written in two steps (base record, then splits) because
the backend has no multi-row transactions. If the second step fails the
first one is undone with a compensating write before the local state is
rolled back, so an expense can never silently end up without splits.
"""

from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from homeledger.audit import AuditLogger, create_correlation_id
from homeledger.config import AppSettings, get_settings, validate_all_settings
from homeledger.ledger import LedgerStore, OptimisticMutation
from homeledger.ledger.store import CATEGORIES, MEMBERS, TRANSACTIONS
from homeledger.models.ledger import (
    Category,
    Member,
    MemberBalance,
    OperationResult,
    Transaction,
    TransactionDraft,
    TransactionType,
    ValidationResult,
    utcnow,
)
from homeledger.services.storage import (
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerDataSource,
    InMemoryLedgerDataSource,
    LedgerDataSource,
    PartialWriteError,
    StorageError,
)
from homeledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)


DEFAULT_CATEGORIES = [
    ("Lebensmittel", "🍎"),
    ("Restaurant", "🍽️"),
    ("Fortbewegung", "🚗"),
    ("Unterhaltung", "🎬"),
    ("Wohnen", "🏠"),
    ("Urlaub", "✈️"),
    ("Versicherung", "🛡️"),
    ("Sonstiges", "📦"),
]


def _draft_fields(transaction: Transaction) -> dict[str, Any]:
    """The editable base fields of a stored transaction."""
    return {
        name: getattr(transaction, name)
        for name in TransactionDraft.model_fields
        if name != "splits"
    }


class FinanceService:
    """
    All ledger operations for one session.

    Holds the session's LedgerStore; balances are read from there.
    """

    def __init__(
        self,
        data_source: LedgerDataSource,
        store: Optional[LedgerStore] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._data_source = data_source
        self.store = store or LedgerStore()
        self._settings = settings or get_settings().app
        self._validator = validator or TransactionValidator(self._settings)
        self._audit_logger = audit_logger

    # -- Derived state -------------------------------------------------------

    @property
    def balances(self) -> list[MemberBalance]:
        return self.store.balances

    def member_label(self, member_id: Optional[str]) -> str:
        return self.store.member_label(member_id, self._settings.unknown_member_label)

    def category_label(self, category_id: Optional[str]) -> str:
        return self.store.category_label(category_id, self._settings.unknown_category_label)

    # -- Helpers -------------------------------------------------------------

    def _mutation(
        self,
        operation: str,
        entity_type: str,
        collections: Iterable[str],
        correlation_id: Optional[UUID] = None,
    ) -> OptimisticMutation:
        return OptimisticMutation(
            self.store,
            operation=operation,
            entity_type=entity_type,
            collections=collections,
            audit_logger=self._audit_logger,
            correlation_id=correlation_id,
        )

    @staticmethod
    def _rejected(
        operation: str,
        entity_type: str,
        message: str,
        entity_id: Optional[str] = None,
        warnings: Optional[list[str]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Result for input refused before anything was changed."""
        logger.info("operation_rejected", operation=operation, reason=message)
        return OperationResult(
            operation=operation,
            success=False,
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=message,
            warnings=warnings or [],
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def _fetch(
        self,
        collection: str,
        loader,
        setter,
    ) -> OperationResult:
        correlation_id = create_correlation_id()
        try:
            items = await loader()
        except StorageError as e:
            logger.error("fetch_failed", collection=collection, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_fetch_failed(
                    collection=collection,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                if isinstance(e, ConnectionError):
                    await self._audit_logger.log_external_service_error(
                        service="ledger_storage",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
            return OperationResult(
                operation=f"fetch_{collection}",
                success=False,
                entity_type=collection,
                error_message=str(e),
                correlation_id=correlation_id,
            )

        setter(items)
        return OperationResult(
            operation=f"fetch_{collection}",
            success=True,
            entity_type=collection,
            value=items,
            correlation_id=correlation_id,
        )

    # -- Loading -------------------------------------------------------------

    async def refresh_members(self) -> OperationResult:
        return await self._fetch(
            MEMBERS, self._data_source.fetch_members, self.store.set_members
        )

    async def refresh_categories(self) -> OperationResult:
        return await self._fetch(
            CATEGORIES, self._data_source.fetch_categories, self.store.set_categories
        )

    async def refresh_transactions(self) -> OperationResult:
        self.store.loading = True
        try:
            return await self._fetch(
                TRANSACTIONS,
                self._data_source.fetch_transactions,
                self.store.set_transactions,
            )
        finally:
            self.store.loading = False

    async def refresh_all(self) -> list[OperationResult]:
        """Load members, categories and transactions, in that order."""
        return [
            await self.refresh_members(),
            await self.refresh_categories(),
            await self.refresh_transactions(),
        ]

    # -- Members -------------------------------------------------------------

    async def add_member(self, name: str) -> OperationResult:
        try:
            member = Member(name=name)
        except ValidationError as e:
            return self._rejected("add_member", "member", f"Invalid member name: {e}")

        mutation = self._mutation("add_member", "member", [MEMBERS])
        result = await mutation.run(
            apply=lambda s: s.add_member(member),
            write=lambda: self._data_source.insert_member(member),
            confirm=lambda s, saved: s.replace_member(member.id, saved),
            entity_id=member.id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_added(
                "member", member.id, member.name, result.correlation_id
            )
        return result

    async def update_member(self, member_id: str, name: str) -> OperationResult:
        current = self.store.get_member(member_id)
        try:
            renamed = Member(
                id=member_id,
                name=name,
                created_at=current.created_at if current else utcnow(),
            )
        except ValidationError as e:
            return self._rejected(
                "update_member", "member", f"Invalid member name: {e}", entity_id=member_id
            )

        mutation = self._mutation("update_member", "member", [MEMBERS])
        result = await mutation.run(
            apply=lambda s: s.replace_member(member_id, renamed),
            write=lambda: self._data_source.update_member(member_id, renamed.name),
            entity_id=member_id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_updated(
                "member", member_id, {"name": renamed.name}, result.correlation_id
            )
        return result

    async def delete_member(self, member_id: str) -> OperationResult:
        """
        Delete a member.

        Their transactions and splits stay; balances skip the dangling
        references and labels fall back to the placeholder.
        """
        mutation = self._mutation("delete_member", "member", [MEMBERS])
        result = await mutation.run(
            apply=lambda s: s.remove_member(member_id),
            write=lambda: self._data_source.delete_member(member_id),
            entity_id=member_id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_deleted(
                "member", member_id, result.correlation_id
            )
        return result

    # -- Categories ----------------------------------------------------------

    async def add_category(self, name: str, icon: Optional[str] = None) -> OperationResult:
        try:
            category = Category(name=name, icon=icon)
        except ValidationError as e:
            return self._rejected("add_category", "category", f"Invalid category: {e}")

        mutation = self._mutation("add_category", "category", [CATEGORIES])
        result = await mutation.run(
            apply=lambda s: s.add_category(category),
            write=lambda: self._data_source.insert_category(category),
            confirm=lambda s, saved: s.replace_category(category.id, saved),
            entity_id=category.id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_added(
                "category", category.id, category.name, result.correlation_id
            )
        return result

    async def update_category(
        self,
        category_id: str,
        name: str,
        icon: Optional[str] = None,
    ) -> OperationResult:
        current = self.store.get_category(category_id)
        try:
            changed = Category(
                id=category_id,
                name=name,
                icon=icon,
                created_at=current.created_at if current else utcnow(),
            )
        except ValidationError as e:
            return self._rejected(
                "update_category", "category", f"Invalid category: {e}", entity_id=category_id
            )

        mutation = self._mutation("update_category", "category", [CATEGORIES])
        result = await mutation.run(
            apply=lambda s: s.replace_category(category_id, changed),
            write=lambda: self._data_source.update_category(
                category_id, changed.name, changed.icon
            ),
            entity_id=category_id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_updated(
                "category",
                category_id,
                {"name": changed.name, "icon": changed.icon},
                result.correlation_id,
            )
        return result

    async def delete_category(self, category_id: str) -> OperationResult:
        mutation = self._mutation("delete_category", "category", [CATEGORIES])
        result = await mutation.run(
            apply=lambda s: s.remove_category(category_id),
            write=lambda: self._data_source.delete_category(category_id),
            entity_id=category_id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_deleted(
                "category", category_id, result.correlation_id
            )
        return result

    async def seed_default_categories(self) -> OperationResult:
        """Insert the default category set and reload categories."""
        defaults = [Category(name=name, icon=icon) for name, icon in DEFAULT_CATEGORIES]

        def apply(store: LedgerStore) -> None:
            for category in defaults:
                store.add_category(category)

        mutation = self._mutation("seed_default_categories", "category", [CATEGORIES])
        result = await mutation.run(
            apply=apply,
            write=lambda: self._data_source.insert_categories(defaults),
        )
        if result.success:
            if self._audit_logger:
                await self._audit_logger.log_categories_seeded(
                    [c.name for c in defaults], result.correlation_id
                )
            await self.refresh_categories()
        return result

    # -- Transactions --------------------------------------------------------

    async def _check_draft(
        self,
        operation: str,
        draft: TransactionDraft,
        entity_id: Optional[str],
        correlation_id: UUID,
    ) -> tuple[ValidationResult, Optional[OperationResult]]:
        """
        Validate a draft.

        Returns the validation result and, if the draft must be refused,
        the OperationResult to hand back.
        """
        validation = self._validator.validate(
            draft, members=self.store.members, categories=self.store.categories
        )
        reported = [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in validation.issues
            if i.severity != "info"
        ]

        if validation.has_errors:
            if self._audit_logger:
                await self._audit_logger.log_validation_issues(
                    entity_id, reported, blocking=True, correlation_id=correlation_id
                )
            return validation, self._rejected(
                operation,
                "transaction",
                "; ".join(validation.errors),
                entity_id=entity_id,
                warnings=validation.warnings,
                correlation_id=correlation_id,
            )

        if reported and self._audit_logger:
            await self._audit_logger.log_validation_issues(
                entity_id, reported, blocking=False, correlation_id=correlation_id
            )
        return validation, None

    def _display_fields(self, draft: TransactionDraft) -> dict[str, Any]:
        payer = self.store.get_member(draft.payer_id)
        receiver = self.store.get_member(draft.receiver_id) if draft.receiver_id else None
        category = self.store.get_category(draft.category_id) if draft.category_id else None
        return {
            "payer_name": payer.name if payer else None,
            "receiver_name": receiver.name if receiver else None,
            "category_name": category.name if category else None,
            "category_icon": category.icon if category else None,
        }

    @staticmethod
    def _effective_splits(draft: TransactionDraft) -> list:
        # Payments carry no splits
        return list(draft.splits) if draft.type == TransactionType.EXPENSE else []

    async def _compensate(
        self,
        transaction_id: str,
        action: str,
        steps,
        correlation_id: UUID,
    ) -> bool:
        """Run compensating writes; True if all of them succeeded."""
        try:
            for step in steps:
                await step()
        except StorageError as e:
            logger.critical(
                "compensation_failed",
                transaction_id=transaction_id,
                action=action,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_compensation(
                    transaction_id, action, False, correlation_id, error_message=str(e)
                )
            return False

        if self._audit_logger:
            await self._audit_logger.log_compensation(
                transaction_id, action, True, correlation_id
            )
        return True

    async def _write_new_transaction(
        self,
        transaction: Transaction,
        correlation_id: UUID,
    ) -> Transaction:
        saved = await self._data_source.insert_transaction(transaction)

        if transaction.splits:
            try:
                await self._data_source.insert_splits(saved.id, transaction.splits)
            except StorageError as e:
                compensated = await self._compensate(
                    saved.id,
                    "delete orphaned transaction",
                    [lambda: self._data_source.delete_transaction(saved.id)],
                    correlation_id,
                )
                raise PartialWriteError(
                    f"Splits could not be saved ({e}); "
                    + ("transaction removed again" if compensated else "transaction left without splits"),
                    transaction_id=saved.id,
                    compensated=compensated,
                ) from e

        return saved.model_copy(update={
            "splits": transaction.splits,
            "payer_name": transaction.payer_name,
            "receiver_name": transaction.receiver_name,
            "category_name": transaction.category_name,
            "category_icon": transaction.category_icon,
        })

    async def add_transaction(self, draft: TransactionDraft) -> OperationResult:
        """
        Add an expense or payment.

        Splits that do not add up to the amount, or that name unknown
        members, are accepted with a warning.
        """
        correlation_id = create_correlation_id()
        validation, refused = await self._check_draft(
            "add_transaction", draft, None, correlation_id
        )
        if refused:
            return refused

        transaction = Transaction.from_draft(
            draft,
            splits=self._effective_splits(draft),
            **self._display_fields(draft),
        )

        mutation = self._mutation(
            "add_transaction", "transaction", [TRANSACTIONS], correlation_id
        )
        result = await mutation.run(
            apply=lambda s: s.add_transaction(transaction),
            write=lambda: self._write_new_transaction(transaction, correlation_id),
            confirm=lambda s, saved: s.replace_transaction(transaction.id, saved),
            entity_id=transaction.id,
            warnings=validation.warnings,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_added(
                "transaction",
                transaction.id,
                transaction.title or transaction.type.value,
                correlation_id,
                details={"type": transaction.type.value, "amount": str(transaction.amount)},
            )
        return result

    async def _write_transaction_update(
        self,
        transaction_id: str,
        draft: TransactionDraft,
        updated: Transaction,
        previous: Optional[Transaction],
        correlation_id: UUID,
    ) -> Transaction:
        await self._data_source.update_transaction(transaction_id, draft.base_fields())

        try:
            await self._data_source.replace_splits(transaction_id, updated.splits)
        except StorageError as e:
            compensated = False
            if previous is not None:
                compensated = await self._compensate(
                    transaction_id,
                    "restore previous transaction",
                    [
                        lambda: self._data_source.update_transaction(
                            transaction_id, _draft_fields(previous)
                        ),
                        lambda: self._data_source.replace_splits(
                            transaction_id, previous.splits
                        ),
                    ],
                    correlation_id,
                )
            raise PartialWriteError(
                f"Splits could not be updated ({e}); "
                + ("previous version restored" if compensated else "stored splits may be stale"),
                transaction_id=transaction_id,
                compensated=compensated,
            ) from e

        return updated

    async def update_transaction(
        self,
        transaction_id: str,
        draft: TransactionDraft,
    ) -> OperationResult:
        """
        Replace the fields and splits of a transaction.

        The splits are replaced wholesale. Turning an expense into a
        payment removes its splits.
        """
        correlation_id = create_correlation_id()
        validation, refused = await self._check_draft(
            "update_transaction", draft, transaction_id, correlation_id
        )
        if refused:
            return refused

        previous = self.store.get_transaction(transaction_id)
        updated = Transaction.from_draft(
            draft,
            id=transaction_id,
            created_at=previous.created_at if previous else utcnow(),
            splits=self._effective_splits(draft),
            **self._display_fields(draft),
        )

        mutation = self._mutation(
            "update_transaction", "transaction", [TRANSACTIONS], correlation_id
        )
        result = await mutation.run(
            apply=lambda s: s.replace_transaction(transaction_id, updated),
            write=lambda: self._write_transaction_update(
                transaction_id, draft, updated, previous, correlation_id
            ),
            entity_id=transaction_id,
            warnings=validation.warnings,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_updated(
                "transaction",
                transaction_id,
                {"amount": str(updated.amount), "splits": len(updated.splits)},
                correlation_id,
            )
        return result

    async def delete_transaction(self, transaction_id: str) -> OperationResult:
        mutation = self._mutation("delete_transaction", "transaction", [TRANSACTIONS])
        result = await mutation.run(
            apply=lambda s: s.remove_transaction(transaction_id),
            write=lambda: self._data_source.delete_transaction(transaction_id),
            entity_id=transaction_id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log_entity_deleted(
                "transaction", transaction_id, result.correlation_id
            )
        return result


def create_app_components(use_storage: bool = True) -> FinanceService:
    """
    Factory function to create a ready-to-load finance service.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False to run on the in-memory backend.

    Returns:
        A FinanceService; call refresh_all() to load the ledger.
    """
    data_source: LedgerDataSource
    audit_logger: AuditLogger

    if use_storage:
        checks = validate_all_settings()
        if not checks["google_sheets"]:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=checks.get("google_sheets_error"))
            use_storage = False

    if use_storage:
        sheets_client = GoogleSheetsClient()
        data_source = GoogleSheetsLedgerDataSource(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    else:
        data_source = InMemoryLedgerDataSource()
        audit_logger = AuditLogger()  # Local-only logging

    return FinanceService(data_source=data_source, audit_logger=audit_logger)
