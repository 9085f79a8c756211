"""Input validation package."""

from settleup.validation.validator import TransactionValidator, parse_amount

__all__ = ["TransactionValidator", "parse_amount"]
