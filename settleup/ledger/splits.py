"""
Split Allocator

Divides a bill among participants and turns each participant's share into a
split transaction pair owed to the initiator.

Amounts are Decimal throughout. An equal share is the exact quotient of the
total by the number of participants (initiator included); nothing is rounded
here, so presentation decides how many digits to show.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from settleup.config import get_settings
from settleup.ledger.engine import LedgerEngine
from settleup.ledger.errors import SplitValidationError
from settleup.models.transaction import (
    SplitAllocation,
    SplitDetail,
    SplitPlan,
    SplitType,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    ValidationIssue,
)


logger = structlog.get_logger(__name__)

Number = Union[Decimal, int, float, str]


def to_decimal(value: Any) -> Decimal:
    """
    Convert user or numeric input to Decimal.

    Floats go through str() so that 0.1 stays 0.1.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"Not a valid amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a valid amount: {value!r}")
    return result


def compute_equal_split(total: Number, participant_count: int) -> Decimal:
    """
    Share of each participant when `total` is divided equally.

    100 among 4 participants is 25 each.
    """
    if participant_count < 1:
        raise ValueError("An equal split needs at least one participant")
    return to_decimal(total) / participant_count


def split_tolerance(allocation_count: int, tolerance_per_amount: Optional[Number] = None) -> Decimal:
    """
    Allowed difference between a custom split's total and the sum of its shares.

    Each entered amount may be off by one cent of rounding, so the tolerance
    grows with the number of amounts and is never below one cent. With the
    default of 0.01, two amounts summing to 89.98 are accepted for a total of
    90.00, while a single amount must be within 0.01 of the total.
    """
    if tolerance_per_amount is None:
        tolerance_per_amount = get_settings().app.split_tolerance_per_amount
    return to_decimal(tolerance_per_amount) * max(1, allocation_count)


def find_custom_split_issues(
    total: Number,
    allocations: list[SplitAllocation],
    tolerance_per_amount: Optional[Number] = None,
) -> list[ValidationIssue]:
    """Check that custom shares cover the total within the rounding tolerance."""
    issues = []

    if not allocations:
        issues.append(ValidationIssue(
            field="allocations",
            issue_type="missing",
            message="Please select at least one friend to split with",
            severity="error",
        ))
        return issues

    total = to_decimal(total)
    allocated = sum((a.amount for a in allocations), Decimal("0"))
    if abs(allocated - total) > split_tolerance(len(allocations), tolerance_per_amount):
        issues.append(ValidationIssue(
            field="allocations",
            issue_type="mismatch",
            message=(
                f"The sum of individual amounts ({allocated}) "
                f"doesn't match the total ({total})"
            ),
            severity="error",
            suggested_fix="Adjust the amounts so they add up to the total",
        ))

    return issues


def validate_custom_split(
    total: Number,
    allocations: list[SplitAllocation],
    tolerance_per_amount: Optional[Number] = None,
) -> None:
    """
    Raises:
        SplitValidationError: If the shares do not add up to the total
    """
    issues = find_custom_split_issues(total, allocations, tolerance_per_amount)
    if issues:
        raise SplitValidationError(issues)


class SplitAllocator:
    """Plans splits and materializes them through the ledger engine."""

    def __init__(
        self,
        engine: LedgerEngine,
        tolerance_per_amount: Optional[Number] = None,
    ):
        self._engine = engine
        self._tolerance = tolerance_per_amount

    def plan_equal_split(
        self,
        total: Number,
        description: str,
        initiator_id: UUID,
        participant_ids: list[UUID],
    ) -> SplitPlan:
        """
        Divide `total` equally between the initiator and `participant_ids`.

        The initiator keeps one share; every other participant owes one share.

        Raises:
            SplitValidationError: If no other participant was selected
        """
        counterparties = list(dict.fromkeys(
            p for p in participant_ids if p != initiator_id
        ))
        if not counterparties:
            raise SplitValidationError([ValidationIssue(
                field="participants",
                issue_type="missing",
                message="Please select at least one friend to split with",
                severity="error",
            )])

        share = compute_equal_split(total, len(counterparties) + 1)
        allocations = [SplitAllocation(participant_id=initiator_id, amount=share)]
        allocations.extend(
            SplitAllocation(participant_id=p, amount=share) for p in counterparties
        )
        return SplitPlan(
            total=to_decimal(total),
            description=description,
            initiator_id=initiator_id,
            split_type=SplitType.EQUAL,
            allocations=allocations,
        )

    def plan_custom_split(
        self,
        total: Number,
        description: str,
        initiator_id: UUID,
        amounts: dict[UUID, Any],
    ) -> SplitPlan:
        """
        Build a plan from explicit per-participant amounts.

        `amounts` may contain the initiator's own share. Every amount must be
        a non-negative number and the amounts must add up to `total`.

        Raises:
            SplitValidationError: On any invalid amount or a sum mismatch
        """
        allocations = []
        for participant_id, raw in amounts.items():
            try:
                amount = to_decimal(raw)
            except ValueError:
                amount = None
            if amount is None or amount < 0:
                raise SplitValidationError([ValidationIssue(
                    field="allocations",
                    issue_type="invalid_value",
                    message="Please enter a valid amount for all selected friends",
                    severity="error",
                )])
            allocations.append(SplitAllocation(participant_id=participant_id, amount=amount))

        validate_custom_split(total, allocations, self._tolerance)

        return SplitPlan(
            total=to_decimal(total),
            description=description,
            initiator_id=initiator_id,
            split_type=SplitType.CUSTOM,
            allocations=allocations,
        )

    async def materialize(
        self,
        plan: SplitPlan,
        date: Optional[datetime] = None,
    ) -> Optional[list[Transaction]]:
        """
        Create one split pair per participant other than the initiator.

        The initiator is the payer of every pair. Zero shares create nothing.
        All pairs are written together; returns None if that write fails.
        """
        when = {"date": date} if date is not None else {}
        drafts = []
        for allocation in plan.counterparty_allocations:
            if allocation.amount == 0:
                continue
            drafts.append(TransactionDraft(
                amount=allocation.amount,
                description=plan.description,
                category=TransactionCategory.SPLIT,
                payer_id=plan.initiator_id,
                payee_id=allocation.participant_id,
                split_details=[SplitDetail(
                    user_id=allocation.participant_id,
                    amount=allocation.amount,
                    paid=False,
                )],
                created_by=plan.initiator_id,
                **when,
            ))

        created = await self._engine.create_transactions(drafts)
        if created is not None:
            logger.info(
                "split_materialized",
                initiator_id=str(plan.initiator_id),
                split_type=plan.split_type.value,
                total=str(plan.total),
                pairs=len(created),
            )
        return created

    async def materialize_split(
        self,
        total: Number,
        description: str,
        initiator_id: UUID,
        allocations: list[SplitAllocation],
        date: Optional[datetime] = None,
    ) -> Optional[list[Transaction]]:
        """
        Validate explicit allocations and create their pairs.

        Raises:
            SplitValidationError: If the allocations do not cover the total.
                Nothing is created in that case.
        """
        validate_custom_split(total, allocations, self._tolerance)
        plan = SplitPlan(
            total=to_decimal(total),
            description=description,
            initiator_id=initiator_id,
            split_type=SplitType.CUSTOM,
            allocations=allocations,
        )
        return await self.materialize(plan, date=date)
