"""User directory package."""

from settleup.directory.users import UserDirectory

__all__ = ["UserDirectory"]
