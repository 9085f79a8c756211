"""
Two-Stage Input Validation

DESIGN DECISION: Form input is validated before any ledger mutation.

STAGE 1 - FORM VALIDATION:
- Required fields present
- Amounts parse as positive numbers
- At least one counterparty selected
Any failure here is an ERROR and blocks the operation.

STAGE 2 - SANITY CHECKS:
- Unusually large amounts
- Dates too far in the future
These are WARNINGS: shown to the user, never blocking.

IMPORTANT: Validation NEVER silently fixes input.
It reports issues and leaves the decision to the caller.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from settleup.config import get_settings
from settleup.ledger.splits import find_custom_split_issues, to_decimal
from settleup.models.transaction import (
    SplitAllocation,
    SplitType,
    ValidationIssue,
    ValidationResult,
)


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse user input as an amount; None if it is not a number."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return to_decimal(value)
    except ValueError:
        return None


class TransactionValidator:
    """
    Validates user input for accounts, transactions and splits.

    Stage 1 failures are errors; stage 2 only adds warnings and only runs
    once stage 1 passes.
    """

    def __init__(self):
        self._settings = get_settings().app

    # -------------------------------------------------------------------------
    # Stage 2 helpers
    # -------------------------------------------------------------------------

    def _sanity_issues(
        self,
        amount: Decimal,
        date: Optional[datetime],
    ) -> list[ValidationIssue]:
        issues = []

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if date is not None:
            when = date.astimezone(timezone.utc).replace(tzinfo=None) if date.tzinfo else date
            horizon = datetime.utcnow() + timedelta(
                days=self._settings.future_date_tolerance_days
            )
            if when > horizon:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({when.date()}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))

        return issues

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def validate_registration(self, name: Optional[str], email: Optional[str]) -> ValidationResult:
        issues = []
        if not (name or "").strip() or not (email or "").strip():
            issues.append(ValidationIssue(
                field="registration",
                issue_type="missing",
                message="Please fill in all fields",
                severity="error",
            ))
        elif "@" not in email:
            issues.append(ValidationIssue(
                field="email",
                issue_type="invalid_value",
                message="Please enter a valid email address",
                severity="error",
            ))
        return ValidationResult(issues=issues)

    def validate_login(self, email: Optional[str]) -> ValidationResult:
        issues = []
        if not (email or "").strip():
            issues.append(ValidationIssue(
                field="email",
                issue_type="missing",
                message="Please enter your email",
                severity="error",
            ))
        return ValidationResult(issues=issues)

    def validate_friend_email(self, email: Optional[str]) -> ValidationResult:
        issues = []
        if not (email or "").strip():
            issues.append(ValidationIssue(
                field="email",
                issue_type="missing",
                message="Please enter an email address",
                severity="error",
            ))
        return ValidationResult(issues=issues)

    # -------------------------------------------------------------------------
    # Ledger input
    # -------------------------------------------------------------------------

    def validate_transaction_input(
        self,
        amount: Any,
        description: Optional[str],
        friend_id: Optional[UUID],
        date: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate a lend/borrow form.

        Checks run in form order; the first error stops stage 1 so the user
        sees one actionable message at a time.
        """
        issues = []
        parsed = parse_amount(amount)

        if parsed is None or parsed <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Please enter a valid amount",
                severity="error",
                suggested_fix="Enter a number greater than zero",
            ))
        elif not (description or "").strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Please enter a description",
                severity="error",
            ))
        elif friend_id is None:
            issues.append(ValidationIssue(
                field="friend_id",
                issue_type="missing",
                message="Please select a friend",
                severity="error",
            ))
        else:
            issues.extend(self._sanity_issues(parsed, date))

        return ValidationResult(issues=issues)

    def validate_split_request(
        self,
        total: Any,
        description: Optional[str],
        participant_ids: list[UUID],
        split_type: SplitType = SplitType.EQUAL,
        custom_amounts: Optional[dict[UUID, Any]] = None,
        date: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate a split-bill form.

        For custom splits every selected participant needs a non-negative
        amount, and the amounts must add up to the total (within one cent
        per entered amount).
        """
        issues = []
        parsed_total = parse_amount(total)

        if parsed_total is None or parsed_total <= 0:
            issues.append(ValidationIssue(
                field="total",
                issue_type="invalid_value",
                message="Please enter a valid total amount",
                severity="error",
            ))
            return ValidationResult(issues=issues)

        if not (description or "").strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Please enter a description",
                severity="error",
            ))
            return ValidationResult(issues=issues)

        if not participant_ids:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="missing",
                message="Please select at least one friend to split with",
                severity="error",
            ))
            return ValidationResult(issues=issues)

        if SplitType(split_type) == SplitType.CUSTOM:
            custom_amounts = custom_amounts or {}
            allocations = []
            for participant_id in participant_ids:
                amount = parse_amount(custom_amounts.get(participant_id))
                if amount is None or amount < 0:
                    issues.append(ValidationIssue(
                        field="allocations",
                        issue_type="invalid_value",
                        message="Please enter a valid amount for all selected friends",
                        severity="error",
                    ))
                    return ValidationResult(issues=issues)
                allocations.append(
                    SplitAllocation(participant_id=participant_id, amount=amount)
                )

            issues.extend(find_custom_split_issues(
                parsed_total,
                allocations,
                self._settings.split_tolerance_per_amount,
            ))
            if issues:
                return ValidationResult(issues=issues)

        issues.extend(self._sanity_issues(parsed_total, date))
        return ValidationResult(issues=issues)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if result.has_errors:
            lines.append("Some information is missing or invalid:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.is_valid:
            lines.append("You can still proceed, but please review carefully.")
        else:
            lines.append("Please fix the issues above before continuing.")

        return "\n".join(lines)
