"""
Main Orchestrator for SettleUp

This module ties together all the components and defines the end-to-end
flows for:
1. Accounts (register, log in, manage friends)
2. Transactions (lend/borrow, split bills, edit, settle, delete, balances)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Input is validated before any ledger mutation
- Every mutation acts on behalf of an explicit observer (no global session)
- Every step is audited
- No flow raises to the caller: each returns (result, message)

This is the "glue" that keeps the system consistent even when storage or
input misbehaves.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from settleup.audit import AuditLogger, create_correlation_id
from settleup.config import get_settings
from settleup.directory import UserDirectory
from settleup.ledger import LedgerEngine, SplitAllocator, SplitValidationError
from settleup.models.transaction import (
    MUTABLE_FIELDS,
    Balance,
    LedgerStatistics,
    SplitType,
    TimeRange,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    ValidationIssue,
    ValidationResult,
)
from settleup.models.user import Friend, User
from settleup.queries import StatisticsExecutor
from settleup.services.storage import (
    AUDIT_KEY,
    TRANSACTIONS_KEY,
    USERS_KEY,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    KeyValueStore,
    RecordStore,
    StorageError,
)
from settleup.validation import TransactionValidator


logger = structlog.get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again."


def _issues_for_audit(issues: list[ValidationIssue]) -> list[dict]:
    return [
        {"field": i.field, "type": i.issue_type, "message": i.message}
        for i in issues
    ]


class AccountFlow:
    """
    Orchestrates account and friendship actions.

    Login is an email lookup: there is no password and no session object.
    Callers keep the returned user's id and pass it to later operations.
    """

    def __init__(
        self,
        directory: UserDirectory,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._directory = directory
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger

    async def _reject(
        self,
        operation: str,
        result: ValidationResult,
        actor_id: Optional[UUID],
        correlation_id: UUID,
    ) -> str:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                operation=operation,
                issues=_issues_for_audit(result.issues),
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
        return result.errors[0]

    async def register(
        self,
        name: str,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[User], str]:
        """
        Register a new account.

        Returns:
            (user, message); user is None if registration failed
        """
        correlation_id = correlation_id or create_correlation_id()

        validation = self._validator.validate_registration(name, email)
        if not validation.is_valid:
            return None, await self._reject("register", validation, None, correlation_id)

        try:
            user = await self._directory.register_user(name, email)
        except DuplicateError:
            if self._audit_logger:
                await self._audit_logger.log_registration_rejected(
                    email=email,
                    reason="duplicate_email",
                    correlation_id=correlation_id,
                )
            return None, "An account with this email already exists"
        except ValueError as e:
            logger.warning("registration_invalid", error=str(e))
            return None, "Please enter a valid name and email address"

        if user is None:
            return None, "Failed to create an account. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_user_registered(
                user_id=user.id,
                email=user.email,
                correlation_id=correlation_id,
            )
        return user, f"Welcome, {user.name}!"

    async def login(
        self,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[User], str]:
        """Log in by email (case-insensitive)."""
        correlation_id = correlation_id or create_correlation_id()

        validation = self._validator.validate_login(email)
        if not validation.is_valid:
            return None, await self._reject("login", validation, None, correlation_id)

        user = await self._directory.authenticate_by_email(email)

        if self._audit_logger:
            await self._audit_logger.log_login(
                email=email,
                user_id=user.id if user else None,
                correlation_id=correlation_id,
            )

        if user is None:
            return None, "Account not found. Please check your email or register."
        return user, f"Welcome back, {user.name}!"

    async def add_friend_by_email(
        self,
        user_id: UUID,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, str]:
        """Befriend the registered user with this email."""
        correlation_id = correlation_id or create_correlation_id()

        validation = self._validator.validate_friend_email(email)
        if not validation.is_valid:
            return False, await self._reject("add_friend", validation, user_id, correlation_id)

        friend = await self._directory.authenticate_by_email(email)
        if friend is None or friend.id == user_id:
            return False, "No user found with that email address"

        return await self.add_friend(user_id, friend.id, correlation_id=correlation_id)

    async def add_friend(
        self,
        user_id: UUID,
        friend_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, str]:
        correlation_id = correlation_id or create_correlation_id()

        user = await self._directory.get_user(user_id)
        if user is not None and user.is_friend(friend_id):
            return False, "You are already friends with this user"

        if not await self._directory.add_friend(user_id, friend_id):
            return False, "Failed to add friend. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_friendship_changed(
                user_id=user_id,
                friend_id=friend_id,
                added=True,
                correlation_id=correlation_id,
            )
        return True, "Friend added"

    async def remove_friend(
        self,
        user_id: UUID,
        friend_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, str]:
        """Remove a friend. Shared transactions are kept."""
        correlation_id = correlation_id or create_correlation_id()

        if not await self._directory.remove_friend(user_id, friend_id):
            return False, "Failed to remove friend. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_friendship_changed(
                user_id=user_id,
                friend_id=friend_id,
                added=False,
                correlation_id=correlation_id,
            )
        return True, "Friend removed"

    async def search_users(self, user_id: UUID, query: str) -> list[User]:
        """Other users matching `query` by name or email."""
        return await self._directory.search_users(query, exclude_id=user_id)

    async def get_friends(self, user_id: UUID) -> list[Friend]:
        return await self._directory.get_friends(user_id)


class TransactionFlow:
    """
    Orchestrates ledger actions on behalf of an observing user.

    Flow for every mutation:
    1. Validate form input (errors block, warnings are returned)
    2. Apply through the ledger engine / split allocator
    3. Audit the outcome under one correlation id
    """

    def __init__(
        self,
        engine: LedgerEngine,
        allocator: Optional[SplitAllocator] = None,
        statistics: Optional[StatisticsExecutor] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._allocator = allocator or SplitAllocator(engine)
        self._statistics = statistics
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger

    async def _reject(
        self,
        operation: str,
        result: ValidationResult,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> str:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                operation=operation,
                issues=_issues_for_audit(result.issues),
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
        return self._validator.get_user_friendly_summary(result)

    async def _report_unexpected(
        self,
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        logger.exception("transaction_flow_failed", operation=operation)
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"operation": operation},
                correlation_id=correlation_id,
            )

    async def _owned_transaction(
        self,
        observer_id: UUID,
        transaction_id: UUID,
    ) -> tuple[Optional[Transaction], str]:
        transaction = await self._engine.get_transaction(transaction_id)
        if transaction is None:
            return None, "Transaction not found"
        if not transaction.involves(observer_id):
            return None, "You can only change your own transactions"
        return transaction, ""

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        observer_id: UUID,
        amount: Any,
        description: str,
        friend_id: Optional[UUID],
        category: TransactionCategory = TransactionCategory.LEND,
        date: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[Transaction], str]:
        """
        Record money lent to or borrowed from a friend.

        lend:   the observer paid, the friend owes the observer
        borrow: the friend paid, the observer owes the friend

        Returns:
            (observer's side of the new pair, message)
        """
        correlation_id = correlation_id or create_correlation_id()

        validation = self._validator.validate_transaction_input(
            amount, description, friend_id, date
        )
        if not validation.is_valid:
            return None, await self._reject(
                "add_transaction", validation, observer_id, correlation_id
            )

        category = TransactionCategory(category)
        if category == TransactionCategory.BORROW:
            payer_id, payee_id = friend_id, observer_id
        else:
            payer_id, payee_id = observer_id, friend_id

        try:
            draft = TransactionDraft(
                amount=amount,
                description=description,
                category=category,
                payer_id=payer_id,
                payee_id=payee_id,
                created_by=observer_id,
                **({"date": date} if date is not None else {}),
            )
        except ValueError as e:
            logger.warning("transaction_draft_invalid", error=str(e))
            return None, "Please check the transaction details and try again"

        try:
            transaction = await self._engine.create_transaction(draft)
        except Exception as e:
            await self._report_unexpected("add_transaction", e, correlation_id)
            return None, GENERIC_ERROR_MESSAGE

        if transaction is None:
            return None, "Failed to add transaction. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction.id,
                related_transaction_id=transaction.related_transaction_id,
                category=transaction.category.value,
                amount=str(transaction.amount),
                actor_id=observer_id,
                correlation_id=correlation_id,
            )

        message = "Transaction added"
        if validation.warnings:
            message = f"{message}. " + " ".join(validation.warnings)
        return transaction, message

    async def split_bill(
        self,
        observer_id: UUID,
        total: Any,
        description: str,
        participant_ids: list[UUID],
        split_type: SplitType = SplitType.EQUAL,
        custom_amounts: Optional[dict[UUID, Any]] = None,
        date: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[list[Transaction]], str]:
        """
        Split a bill the observer paid among friends.

        Equal: the observer and each friend carry total / (friends + 1).
        Custom: each friend carries the amount entered for them; the amounts
        must add up to the total.

        All pairs share one correlation id and are written together.
        """
        correlation_id = correlation_id or create_correlation_id()
        split_type = SplitType(split_type)

        validation = self._validator.validate_split_request(
            total, description, participant_ids, split_type, custom_amounts, date
        )
        if not validation.is_valid:
            return None, await self._reject(
                "split_bill", validation, observer_id, correlation_id
            )

        try:
            if split_type == SplitType.EQUAL:
                plan = self._allocator.plan_equal_split(
                    total, description, observer_id, participant_ids
                )
            else:
                plan = self._allocator.plan_custom_split(
                    total,
                    description,
                    observer_id,
                    {p: (custom_amounts or {}).get(p) for p in participant_ids},
                )
            created = await self._allocator.materialize(plan, date=date)
        except SplitValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    operation="split_bill",
                    issues=_issues_for_audit(e.issues),
                    actor_id=observer_id,
                    correlation_id=correlation_id,
                )
            return None, str(e)
        except Exception as e:
            await self._report_unexpected("split_bill", e, correlation_id)
            return None, GENERIC_ERROR_MESSAGE

        if created is None:
            return None, "Failed to split the bill. Please try again."

        if self._audit_logger:
            for transaction in created:
                await self._audit_logger.log_transaction_created(
                    transaction_id=transaction.id,
                    related_transaction_id=transaction.related_transaction_id,
                    category=transaction.category.value,
                    amount=str(transaction.amount),
                    actor_id=observer_id,
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log_split_created(
                initiator_id=observer_id,
                total=str(plan.total),
                split_type=split_type.value,
                transaction_ids=[t.id for t in created],
                correlation_id=correlation_id,
            )

        return created, f"Bill split with {len(created)} friend(s)"

    async def update_transaction(
        self,
        observer_id: UUID,
        updated: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, str]:
        """Edit amount, description, date, settled flag or split details."""
        correlation_id = correlation_id or create_correlation_id()

        current, message = await self._owned_transaction(observer_id, updated.id)
        if current is None:
            return False, message

        changed = [
            name for name in MUTABLE_FIELDS
            if getattr(current, name) != getattr(updated, name)
        ]
        if not changed:
            return True, "No changes to save"

        validation = self._validator.validate_transaction_input(
            updated.amount,
            updated.description,
            current.counterparty_of(observer_id),
            updated.date,
        )
        if not validation.is_valid:
            return False, await self._reject(
                "update_transaction", validation, observer_id, correlation_id
            )

        try:
            ok = await self._engine.update_transaction(updated)
        except Exception as e:
            await self._report_unexpected("update_transaction", e, correlation_id)
            return False, GENERIC_ERROR_MESSAGE

        if not ok:
            return False, "Failed to update transaction. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id=updated.id,
                changed_fields=changed,
                actor_id=observer_id,
                correlation_id=correlation_id,
            )
        return True, "Transaction updated"

    async def settle_transaction(
        self,
        observer_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, str]:
        correlation_id = correlation_id or create_correlation_id()

        current, message = await self._owned_transaction(observer_id, transaction_id)
        if current is None:
            return False, message
        if current.settled:
            return True, "Transaction is already settled"

        try:
            ok = await self._engine.settle_transaction(transaction_id)
        except Exception as e:
            await self._report_unexpected("settle_transaction", e, correlation_id)
            return False, GENERIC_ERROR_MESSAGE

        if not ok:
            return False, "Failed to settle transaction. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_transaction_settled(
                transaction_id=transaction_id,
                actor_id=observer_id,
                correlation_id=correlation_id,
            )
        return True, "Transaction settled"

    async def delete_transaction(
        self,
        observer_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, str]:
        """Delete both sides of a transaction."""
        correlation_id = correlation_id or create_correlation_id()

        current, message = await self._owned_transaction(observer_id, transaction_id)
        if current is None:
            return False, message

        try:
            ok = await self._engine.delete_transaction(transaction_id)
        except Exception as e:
            await self._report_unexpected("delete_transaction", e, correlation_id)
            return False, GENERIC_ERROR_MESSAGE

        if not ok:
            return False, "Failed to delete transaction. Please try again."

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                actor_id=observer_id,
                correlation_id=correlation_id,
            )
        return True, "Transaction deleted"

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_transaction(
        self,
        observer_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        """The observer's view of a transaction, if they are part of it."""
        entry = await self._engine.get_entry(transaction_id)
        if entry is None or not entry.involves(observer_id):
            return None
        return entry.side_for_user(observer_id)

    async def get_transactions(
        self,
        observer_id: UUID,
        counterparty_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        return await self._engine.get_user_transactions(observer_id, counterparty_id)

    async def get_balances(self, observer_id: UUID) -> list[Balance]:
        return await self._engine.compute_balances(observer_id)

    async def get_statistics(
        self,
        observer_id: UUID,
        time_range: TimeRange = TimeRange.MONTH,
        now: Optional[datetime] = None,
    ) -> Optional[LedgerStatistics]:
        if self._statistics is None:
            return None
        return await self._statistics.compute_statistics(observer_id, time_range, now)


def _build_store(
    backend: str,
    data_dir: Optional[Union[str, Path]] = None,
) -> KeyValueStore:
    """Create the configured key-value store, falling back to local JSON files."""
    settings = get_settings()

    if backend == "memory":
        return InMemoryKeyValueStore()

    if backend == "google_sheets":
        try:
            client = GoogleSheetsClient()
            sheets = client.settings
            return GoogleSheetsKeyValueStore(
                client,
                sheet_names={
                    USERS_KEY: sheets.users_sheet_name,
                    TRANSACTIONS_KEY: sheets.transactions_sheet_name,
                    AUDIT_KEY: sheets.audit_sheet_name,
                },
            )
        except (ValueError, StorageError) as e:
            # Storage not configured - continue with local files
            logger.warning("google_sheets_not_configured", error=str(e))

    return JsonFileKeyValueStore(data_dir or settings.storage.data_dir)


def create_app_components(
    backend: Optional[str] = None,
    data_dir: Optional[Union[str, Path]] = None,
    kv_store: Optional[KeyValueStore] = None,
) -> tuple[AccountFlow, TransactionFlow, KeyValueStore]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory", "json" or "google_sheets".
                 Defaults to SETTLEUP_STORAGE_BACKEND.
        data_dir: Directory for the json backend.
        kv_store: Use this store instead of building one (tests).

    Returns:
        (account_flow, transaction_flow, kv_store)
    """
    if kv_store is None:
        backend = backend or get_settings().storage.backend
        kv_store = _build_store(backend, data_dir)

    records = RecordStore(kv_store)
    audit_logger = AuditLogger(KeyValueAuditStorage(kv_store))
    validator = TransactionValidator()

    directory = UserDirectory(records, audit_logger=audit_logger)
    engine = LedgerEngine(records, directory, audit_logger=audit_logger)

    account_flow = AccountFlow(
        directory,
        validator=validator,
        audit_logger=audit_logger,
    )

    transaction_flow = TransactionFlow(
        engine,
        allocator=SplitAllocator(engine),
        statistics=StatisticsExecutor(engine, directory),
        validator=validator,
        audit_logger=audit_logger,
    )

    return account_flow, transaction_flow, kv_store
