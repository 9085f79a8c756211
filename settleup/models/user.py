"""
User Models for SettleUp

A user is identified by an opaque UUID and, for login purposes, by an email
address that is unique regardless of case.

DESIGN DECISION: Friendship is symmetric. The directory keeps both users'
`friends` lists in step, so either side can be queried without a join.
"""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class User(BaseModel):
    """A registered SettleUp user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique user ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=254,
        description="Login email (unique, case-insensitive)"
    )
    friends: list[UUID] = Field(
        default_factory=list,
        description="IDs of this user's friends"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the user registered"
    )

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Reject values that cannot be an email address."""
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError(f"Invalid email address: {v}")
        return v

    @property
    def email_key(self) -> str:
        """Case-folded email used for uniqueness and lookup."""
        return normalize_email(self.email)

    def is_friend(self, user_id: UUID) -> bool:
        return user_id in self.friends

    def to_friend(self) -> "Friend":
        return Friend(id=self.id, name=self.name, email=self.email)


class Friend(BaseModel):
    """Public view of a user as shown in someone else's friend list."""

    id: UUID
    name: str
    email: str


def normalize_email(email: str) -> str:
    return email.strip().lower()
