"""
Core Ledger Models for SettleUp

These models define the strict schemas for all money flowing through the
ledger. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: A debt between two people has two sides, one per party.
Instead of persisting two independently mutable records, we persist ONE
LedgerEntry per logical transaction and derive both Transaction sides from
it. The two sides therefore always agree on amount, description, date,
settled flag and split details.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionCategory(str, Enum):
    """
    Kind of transaction, from the perspective of the side that holds it.

    Mirroring rule: lend <-> borrow, split -> split.
    """
    LEND = "lend"
    BORROW = "borrow"
    SPLIT = "split"

    def inverted(self) -> "TransactionCategory":
        """Category seen by the other party."""
        if self is TransactionCategory.LEND:
            return TransactionCategory.BORROW
        if self is TransactionCategory.BORROW:
            return TransactionCategory.LEND
        return TransactionCategory.SPLIT


class SplitType(str, Enum):
    """How a bill total is divided among participants."""
    EQUAL = "equal"
    CUSTOM = "custom"


class TimeRange(str, Enum):
    """Windows offered by the statistics view."""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


# Fields that may change after creation. Everything else is identity.
MUTABLE_FIELDS = ("amount", "description", "date", "settled", "split_details")


# =============================================================================
# TRANSACTION MODELS
# =============================================================================

class SplitDetail(BaseModel):
    """One participant's share of a split bill."""

    user_id: UUID
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Share owed by this participant"
    )
    paid: bool = False


class TransactionDraft(BaseModel):
    """
    Input for creating a transaction pair.

    `created_by` is the user whose perspective the primary side represents.
    It defaults to the payer, which is what lend and split entries use;
    a borrow entered by the payee should pass the payee explicitly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount of money moved"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the money was for"
    )
    date: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the transaction happened"
    )
    category: TransactionCategory
    payer_id: UUID = Field(
        ...,
        description="User who paid"
    )
    payee_id: UUID = Field(
        ...,
        description="User who received or owes"
    )
    settled: bool = False
    split_details: Optional[list[SplitDetail]] = None
    created_by: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_parties(self) -> 'TransactionDraft':
        if self.payer_id == self.payee_id:
            raise ValueError("Payer and payee must be different users")
        if self.created_by is not None and self.created_by not in (
            self.payer_id,
            self.payee_id,
        ):
            raise ValueError("Transaction owner must be the payer or the payee")
        return self

    @property
    def owner_id(self) -> UUID:
        return self.created_by or self.payer_id


class Transaction(BaseModel):
    """
    One side of a transaction pair, as seen by one of the two parties.

    The other side has payer and payee swapped, the category inverted and
    `related_transaction_id` pointing back here.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    date: datetime
    category: TransactionCategory
    payer_id: UUID
    payee_id: UUID
    settled: bool = False
    related_transaction_id: Optional[UUID] = None
    split_details: Optional[list[SplitDetail]] = None

    def involves(self, user_id: UUID) -> bool:
        return user_id in (self.payer_id, self.payee_id)

    def counterparty_of(self, user_id: UUID) -> Optional[UUID]:
        if user_id == self.payer_id:
            return self.payee_id
        if user_id == self.payee_id:
            return self.payer_id
        return None


class LedgerEntry(BaseModel):
    """
    The persisted form of a transaction pair.

    `id` is the primary side, `mirror_id` the other side. Payer, payee and
    category are stored in the primary orientation; balances are folded from
    this orientation so each logical transaction is counted once.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    mirror_id: UUID = Field(default_factory=uuid4)
    created_by: UUID

    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    date: datetime
    category: TransactionCategory
    payer_id: UUID
    payee_id: UUID
    settled: bool = False
    split_details: Optional[list[SplitDetail]] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_pair(self) -> 'LedgerEntry':
        if self.id == self.mirror_id:
            raise ValueError("Both sides of a pair need distinct ids")
        if self.payer_id == self.payee_id:
            raise ValueError("Payer and payee must be different users")
        return self

    @classmethod
    def from_draft(cls, draft: TransactionDraft) -> "LedgerEntry":
        """Build a new pair with two fresh side ids."""
        return cls(
            id=uuid4(),
            mirror_id=uuid4(),
            created_by=draft.owner_id,
            amount=draft.amount,
            description=draft.description,
            date=draft.date,
            category=draft.category,
            payer_id=draft.payer_id,
            payee_id=draft.payee_id,
            settled=draft.settled,
            split_details=draft.split_details,
        )

    def primary_side(self) -> Transaction:
        return Transaction(
            id=self.id,
            amount=self.amount,
            description=self.description,
            date=self.date,
            category=self.category,
            payer_id=self.payer_id,
            payee_id=self.payee_id,
            settled=self.settled,
            related_transaction_id=self.mirror_id,
            split_details=self.split_details,
        )

    def mirror_side(self) -> Transaction:
        return Transaction(
            id=self.mirror_id,
            amount=self.amount,
            description=self.description,
            date=self.date,
            category=self.category.inverted(),
            payer_id=self.payee_id,
            payee_id=self.payer_id,
            settled=self.settled,
            related_transaction_id=self.id,
            split_details=self.split_details,
        )

    def has_side(self, transaction_id: UUID) -> bool:
        return transaction_id in (self.id, self.mirror_id)

    def side(self, transaction_id: UUID) -> Optional[Transaction]:
        """Return the side with the given id, if it belongs to this pair."""
        if transaction_id == self.id:
            return self.primary_side()
        if transaction_id == self.mirror_id:
            return self.mirror_side()
        return None

    def side_for_user(self, user_id: UUID) -> Transaction:
        """The side owned by `user_id`: the creator holds the primary side."""
        if user_id == self.created_by:
            return self.primary_side()
        return self.mirror_side()

    def involves(self, user_id: UUID) -> bool:
        return user_id in (self.payer_id, self.payee_id)

    def counterparty_of(self, user_id: UUID) -> Optional[UUID]:
        if user_id == self.payer_id:
            return self.payee_id
        if user_id == self.payee_id:
            return self.payer_id
        return None

    def balance_effect(self, user_id: UUID) -> Decimal:
        """
        Signed contribution of this pair to `user_id`'s balance.

        Positive means the counterparty owes `user_id`. Settled pairs and
        pairs `user_id` is not part of contribute zero.
        """
        if self.settled:
            return Decimal("0")
        if user_id == self.payer_id:
            return self.amount
        if user_id == self.payee_id:
            return -self.amount
        return Decimal("0")

    def with_changes(self, changes: Transaction) -> "LedgerEntry":
        """
        Copy the mutable fields of `changes` onto this pair.

        Payer, payee, category and ids are never taken from `changes`.
        The result is validated like a freshly loaded record.

        Raises:
            ValidationError: If the changed fields break a model constraint
        """
        update = {name: getattr(changes, name) for name in MUTABLE_FIELDS}
        update["updated_at"] = datetime.utcnow()
        return LedgerEntry.model_validate({**self.model_dump(), **update})


class Balance(BaseModel):
    """
    Net amount between the observing user and one counterparty.

    Positive = they owe you, negative = you owe them.
    """

    counterparty_id: UUID
    name: str
    amount: Decimal

    @property
    def owes_you(self) -> bool:
        return self.amount > 0


# =============================================================================
# SPLIT MODELS
# =============================================================================

class SplitAllocation(BaseModel):
    """Amount assigned to one participant of a split."""

    participant_id: UUID
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Share assigned to this participant"
    )


class SplitPlan(BaseModel):
    """
    A fully allocated split, ready to be turned into transaction pairs.

    Allocations may include the initiator's own share. That share counts
    towards the total but no transaction is created for it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    total: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    initiator_id: UUID
    split_type: SplitType
    allocations: list[SplitAllocation] = Field(default_factory=list)

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.amount for a in self.allocations), Decimal("0"))

    @property
    def counterparty_allocations(self) -> list[SplitAllocation]:
        return [
            a for a in self.allocations
            if a.participant_id != self.initiator_id
        ]


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
        description="Type of issue (e.g., 'missing', 'invalid_value', 'mismatch')"
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
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating user input before any ledger mutation.

    Errors block the operation; warnings are shown but do not block.
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

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
        return [i.message for i in self.issues if i.severity == "warning"]

    @property
    def errors(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "error"]


# =============================================================================
# STATISTICS MODELS
# =============================================================================

class PersonStatistics(BaseModel):
    """Money exchanged with one friend inside a time range."""

    id: UUID
    name: str
    spent: Decimal = Decimal("0")
    received: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.received - self.spent


class LedgerStatistics(BaseModel):
    """Summary of a user's activity inside a time range."""

    observer_id: UUID
    time_range: TimeRange
    cutoff: Optional[datetime] = Field(
        default=None,
        description="Earliest transaction date included (None = all time)"
    )
    transaction_count: int = Field(ge=0)
    spent: Decimal = Decimal("0")
    received: Decimal = Decimal("0")
    by_person: list[PersonStatistics] = Field(default_factory=list)
    category_counts: dict[str, int] = Field(default_factory=dict)
    category_percentages: dict[str, int] = Field(default_factory=dict)

    @property
    def net_total(self) -> Decimal:
        return self.received - self.spent
