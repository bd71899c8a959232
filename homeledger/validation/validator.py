"""
Two-Stage Transaction Validation

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Positive amount
- Payments name a receiver

STAGE 2 - SEMANTIC VALIDATION:
- Splits add up to the expense amount
- Payer, receiver and split members exist in the ledger
- Payer and receiver differ
- Date not far in the future, amount not absurd

Only stage 1 errors block a write. Stage 2 findings are warnings: the
balance engine copes with all of them (a split mismatch skews the group
total, an unknown member's share is dropped), so the ledger accepts the
entry and the caller shows the warning.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from homeledger.config import AppSettings, get_settings
from homeledger.models.ledger import (
    Category,
    Member,
    TransactionDraft,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


class TransactionValidator:
    """Validates transaction drafts before they are written."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        draft: TransactionDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if not draft.payer_id:
            issues.append(ValidationIssue(
                field="payer_id",
                issue_type="missing",
                message="Somebody has to have paid",
                severity="error",
                suggested_fix="Select who paid",
            ))

        if draft.type == TransactionType.PAYMENT and not draft.receiver_id:
            issues.append(ValidationIssue(
                field="receiver_id",
                issue_type="missing",
                message="A payment needs a receiver",
                severity="error",
                suggested_fix="Select who received the money",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        draft: TransactionDraft,
        members: Optional[Iterable[Member]],
        categories: Optional[Iterable[Category]],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Member and category checks are skipped when the corresponding
        list is not given.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        member_ids = {m.id for m in members} if members is not None else None

        if draft.type == TransactionType.EXPENSE:
            issues.extend(self._check_splits(draft, member_ids))
            if (
                categories is not None
                and draft.category_id
                and draft.category_id not in {c.id for c in categories}
            ):
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="unknown_category",
                    message=f"Category {draft.category_id} does not exist",
                    severity="warning",
                ))
        else:
            if draft.splits:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="ignored",
                    message="Splits are ignored for payments",
                    severity="info",
                ))
            if draft.category_id:
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="ignored",
                    message="Categories are ignored for payments",
                    severity="info",
                ))
            if draft.receiver_id and draft.receiver_id == draft.payer_id:
                issues.append(ValidationIssue(
                    field="receiver_id",
                    issue_type="self_payment",
                    message="Payer and receiver are the same person",
                    severity="warning",
                ))

        if member_ids is not None:
            if draft.payer_id and draft.payer_id not in member_ids:
                issues.append(ValidationIssue(
                    field="payer_id",
                    issue_type="unknown_member",
                    message=f"Payer {draft.payer_id} is not a member; the payment will not count",
                    severity="warning",
                ))
            if (
                draft.type == TransactionType.PAYMENT
                and draft.receiver_id
                and draft.receiver_id not in member_ids
            ):
                issues.append(ValidationIssue(
                    field="receiver_id",
                    issue_type="unknown_member",
                    message=f"Receiver {draft.receiver_id} is not a member",
                    severity="warning",
                ))

        max_future_date = date.today() + timedelta(
            days=self._settings.future_date_tolerance_days
        )
        if draft.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({draft.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if draft.amount > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount {draft.amount} is unusually large",
                severity="warning",
                suggested_fix="Check for a misplaced decimal point",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _check_splits(
        self,
        draft: TransactionDraft,
        member_ids: Optional[set[str]],
    ) -> list[ValidationIssue]:
        issues = []

        if not draft.splits:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="missing",
                message="Expense has no splits; the payer is credited the full amount",
                severity="warning",
                suggested_fix="Add at least one split",
            ))
            return issues

        split_total = sum((s.split_amount for s in draft.splits), Decimal("0"))
        difference = draft.amount - split_total
        if abs(difference) > self._settings.split_tolerance:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="split_mismatch",
                message=(
                    f"Splits add up to {split_total} but the expense is {draft.amount} "
                    f"(difference {difference})"
                ),
                severity="warning",
                suggested_fix="Adjust the split amounts",
            ))

        seen = set()
        for split in draft.splits:
            if split.member_id in seen:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="duplicate_member",
                    message=f"Member {split.member_id} appears in more than one split",
                    severity="warning",
                ))
            seen.add(split.member_id)
            if member_ids is not None and split.member_id not in member_ids:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="unknown_member",
                    message=f"Split member {split.member_id} is not a member; their share will not count",
                    severity="warning",
                ))

        return issues

    def validate(
        self,
        draft: TransactionDraft,
        members: Optional[Iterable[Member]] = None,
        categories: Optional[Iterable[Category]] = None,
    ) -> ValidationResult:
        """
        Run both validation stages.

        Stage 2 is skipped when stage 1 fails.
        """
        schema_valid, issues = self._validate_schema(draft)

        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                draft, members, categories
            )
            issues.extend(semantic_issues)
        else:
            semantic_valid = False

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
        )
