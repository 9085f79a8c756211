"""Ledger engine and split allocation."""

from settleup.ledger.engine import LedgerEngine
from settleup.ledger.errors import LedgerError, SplitValidationError
from settleup.ledger.splits import (
    SplitAllocator,
    compute_equal_split,
    find_custom_split_issues,
    split_tolerance,
    to_decimal,
    validate_custom_split,
)

__all__ = [
    "LedgerEngine",
    "LedgerError",
    "SplitValidationError",
    "SplitAllocator",
    "compute_equal_split",
    "find_custom_split_issues",
    "split_tolerance",
    "to_decimal",
    "validate_custom_split",
]
