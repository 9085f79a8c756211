"""
User Directory

Registration, email login and the friendship relation.

DESIGN DECISION: Friendship is symmetric. Adding or removing a friend
updates BOTH users' lists, and because both users live in the same
collection the change is persisted with a single write. A half-updated
friendship is therefore never observable.

There is no password: knowing a registered email is the only gate.
"""

from typing import Optional
from uuid import UUID

import structlog

from settleup.audit import AuditLogger
from settleup.models.user import Friend, User, normalize_email
from settleup.services.storage import (
    USERS_KEY,
    DuplicateError,
    RecordStore,
    StorageError,
)


logger = structlog.get_logger(__name__)


class UserDirectory:
    """
    User records and friendship edges.

    Lookups return None when a user cannot be found; storage failures are
    logged and reported as a failed result instead of raised.
    """

    def __init__(
        self,
        records: RecordStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._records = records
        self._audit_logger = audit_logger

    async def _report_storage_error(self, operation: str, error: Exception) -> None:
        logger.error("user_storage_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_save_failed(
                operation=operation,
                error_message=str(error),
            )

    async def _load_users(self) -> list[User]:
        return [User.model_validate(r) for r in await self._records.load(USERS_KEY)]

    async def list_users(self) -> list[User]:
        """All registered users, in registration order."""
        try:
            return await self._load_users()
        except StorageError as e:
            await self._report_storage_error("list_users", e)
            return []

    async def get_user(self, user_id: UUID) -> Optional[User]:
        try:
            record = await self._records.find(USERS_KEY, user_id)
        except StorageError as e:
            await self._report_storage_error("get_user", e)
            return None
        return User.model_validate(record) if record else None

    async def find_by_email(self, email: str) -> Optional[User]:
        """
        Case-insensitive email lookup.

        Raises:
            StorageError: If the users collection cannot be read
        """
        key = normalize_email(email)
        matches = await self._records.find_where(
            USERS_KEY,
            lambda r: normalize_email(r.get("email", "")) == key,
        )
        return User.model_validate(matches[0]) if matches else None

    async def register_user(self, name: str, email: str) -> Optional[User]:
        """
        Register a new user with an empty friend list.

        Returns:
            The new user, or None if it could not be saved

        Raises:
            DuplicateError: If the email is already registered (any case)
            ValueError: If name or email are invalid
        """
        try:
            if await self.find_by_email(email) is not None:
                raise DuplicateError(f"Email already registered: {email}")

            user = User(name=name, email=email)
            await self._records.insert(USERS_KEY, user.model_dump(mode="json"))
        except DuplicateError:
            raise
        except StorageError as e:
            await self._report_storage_error("register_user", e)
            return None

        logger.info("user_registered", user_id=str(user.id))
        return user

    async def authenticate_by_email(self, email: str) -> Optional[User]:
        """Return the user registered under `email`, or None."""
        try:
            return await self.find_by_email(email)
        except StorageError as e:
            await self._report_storage_error("authenticate_by_email", e)
            return None

    async def search_users(
        self,
        query: str,
        exclude_id: Optional[UUID] = None,
    ) -> list[User]:
        """Users whose name or email contains `query` (case-insensitive)."""
        needle = query.strip().lower()
        if not needle:
            return []

        return [
            user for user in await self.list_users()
            if user.id != exclude_id
            and (needle in user.name.lower() or needle in user.email.lower())
        ]

    async def get_friends(self, user_id: UUID) -> list[Friend]:
        """The user's friends, in the order they were added."""
        users = {u.id: u for u in await self.list_users()}
        user = users.get(user_id)
        if user is None:
            return []
        return [users[f].to_friend() for f in user.friends if f in users]

    async def add_friend(self, user_id: UUID, friend_id: UUID) -> bool:
        """
        Make two users friends.

        Idempotent: if they are already friends nothing is written.
        Returns False if either user does not exist or the ids are equal.
        """
        return await self._set_friendship(user_id, friend_id, befriend=True)

    async def remove_friend(self, user_id: UUID, friend_id: UUID) -> bool:
        """
        Remove a friendship from both sides.

        Transactions between the two users are left untouched.
        """
        return await self._set_friendship(user_id, friend_id, befriend=False)

    async def _set_friendship(
        self,
        user_id: UUID,
        friend_id: UUID,
        befriend: bool,
    ) -> bool:
        operation = "add_friend" if befriend else "remove_friend"

        if user_id == friend_id:
            logger.warning("friendship_with_self_rejected", user_id=str(user_id))
            return False

        try:
            records = await self._records.load(USERS_KEY)
            users = [User.model_validate(r) for r in records]
            positions = {u.id: idx for idx, u in enumerate(users)}

            if user_id not in positions or friend_id not in positions:
                logger.warning(
                    "friendship_user_not_found",
                    operation=operation,
                    user_id=str(user_id),
                    friend_id=str(friend_id),
                )
                return False

            changed = False
            for owner, other in ((user_id, friend_id), (friend_id, user_id)):
                user = users[positions[owner]]
                if befriend and other not in user.friends:
                    user.friends.append(other)
                    changed = True
                elif not befriend and other in user.friends:
                    user.friends = [f for f in user.friends if f != other]
                    changed = True

            if changed:
                for owner in (user_id, friend_id):
                    idx = positions[owner]
                    records[idx] = users[idx].model_dump(mode="json")
                await self._records.save(USERS_KEY, records)
        except StorageError as e:
            await self._report_storage_error(operation, e)
            return False

        return True
