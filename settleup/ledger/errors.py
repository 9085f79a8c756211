"""Ledger exceptions."""

from settleup.models.transaction import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class SplitValidationError(LedgerError, ValueError):
    """A split was rejected before any transaction was created."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))
