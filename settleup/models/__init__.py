"""
Data Models Package

This package contains all Pydantic models used in SettleUp.
All data flowing through the system must conform to these schemas.
"""

from settleup.models.transaction import (
    MUTABLE_FIELDS,
    Balance,
    LedgerEntry,
    LedgerStatistics,
    PersonStatistics,
    SplitAllocation,
    SplitDetail,
    SplitPlan,
    SplitType,
    TimeRange,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    ValidationIssue,
    ValidationResult,
)
from settleup.models.user import Friend, User, normalize_email
from settleup.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "MUTABLE_FIELDS",
    "Balance",
    "LedgerEntry",
    "LedgerStatistics",
    "PersonStatistics",
    "SplitAllocation",
    "SplitDetail",
    "SplitPlan",
    "SplitType",
    "TimeRange",
    "Transaction",
    "TransactionCategory",
    "TransactionDraft",
    "ValidationIssue",
    "ValidationResult",
    # User models
    "Friend",
    "User",
    "normalize_email",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
