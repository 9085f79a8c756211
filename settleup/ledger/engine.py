"""
Ledger Engine

Creation, mirroring, update, deletion and settlement of transaction pairs,
plus balance aggregation.

DESIGN DECISION: A pair is persisted as ONE LedgerEntry record. Both sides
(the primary and its mirror) are projections of that record, so:
- every mutation touches both sides with a single collection write
- a half-written pair can never exist
- balances fold each logical transaction exactly once

Balances are recomputed from the full transaction collection on every call.
There is no cache, so they can never be stale.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from settleup.audit import AuditLogger
from settleup.directory import UserDirectory
from settleup.models.transaction import (
    Balance,
    LedgerEntry,
    Transaction,
    TransactionDraft,
)
from settleup.services.storage import (
    TRANSACTIONS_KEY,
    RecordStore,
    StorageError,
)


logger = structlog.get_logger(__name__)

UNKNOWN_USER_NAME = "Unknown User"


class LedgerEngine:
    """
    Mirrored transaction pairs and the balances derived from them.

    Not-found and storage failures are reported through the return value
    (None / False / empty list); they are logged, never raised.
    """

    def __init__(
        self,
        records: RecordStore,
        directory: UserDirectory,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._records = records
        self._directory = directory
        self._audit_logger = audit_logger

    async def _report_storage_error(self, operation: str, error: Exception) -> None:
        logger.error("ledger_storage_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_save_failed(
                operation=operation,
                error_message=str(error),
            )

    async def _load_entries(self) -> list[LedgerEntry]:
        records = await self._records.load(TRANSACTIONS_KEY)
        try:
            return [LedgerEntry.model_validate(r) for r in records]
        except ValidationError as e:
            raise StorageError(f"Malformed transaction record: {e}")

    async def _save_entries(self, entries: list[LedgerEntry]) -> None:
        await self._records.save(
            TRANSACTIONS_KEY,
            [entry.model_dump(mode="json") for entry in entries],
        )

    async def _parties_exist(self, drafts: list[TransactionDraft]) -> bool:
        known = {user.id for user in await self._directory.list_users()}
        for draft in drafts:
            for user_id in (draft.payer_id, draft.payee_id):
                if user_id not in known:
                    logger.warning("transaction_party_not_found", user_id=str(user_id))
                    return False
        return True

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_transaction(
        self,
        draft: TransactionDraft,
    ) -> Optional[Transaction]:
        """
        Create a mirrored pair and return its primary side.

        The mirror has payer/payee swapped, the category inverted
        (lend <-> borrow, split -> split) and both sides reference each other.

        Returns None if a party does not exist or the pair cannot be saved.
        """
        created = await self.create_transactions([draft])
        if not created:
            return None
        return created[0]

    async def create_transactions(
        self,
        drafts: list[TransactionDraft],
    ) -> Optional[list[Transaction]]:
        """
        Create several pairs with a single write.

        Either every pair is stored or none is. Returns the primary sides in
        draft order, or None on failure.
        """
        if not drafts:
            return []

        if not await self._parties_exist(drafts):
            return None

        new_entries = [LedgerEntry.from_draft(draft) for draft in drafts]
        try:
            entries = await self._load_entries()
            await self._save_entries(entries + new_entries)
        except StorageError as e:
            await self._report_storage_error("create_transaction", e)
            return None

        for entry in new_entries:
            logger.info(
                "transaction_created",
                transaction_id=str(entry.id),
                related_transaction_id=str(entry.mirror_id),
                category=entry.category.value,
            )
        return [entry.primary_side() for entry in new_entries]

    async def update_transaction(self, updated: Transaction) -> bool:
        """
        Apply the mutable fields of `updated` to both sides of its pair.

        `updated.id` may be either side. Amount, description, date, settled
        and split details are copied; payer, payee and category keep their
        stored orientation. Returns False if no pair has that id or the
        changes are invalid (nothing is written then).
        """
        try:
            entries = await self._load_entries()
            for idx, entry in enumerate(entries):
                if not entry.has_side(updated.id):
                    continue

                current = entry.side(updated.id)
                if (updated.payer_id, updated.payee_id) != (current.payer_id, current.payee_id):
                    logger.warning(
                        "transaction_parties_immutable",
                        transaction_id=str(updated.id),
                    )

                try:
                    entries[idx] = entry.with_changes(updated)
                except ValidationError as e:
                    logger.warning(
                        "transaction_update_invalid",
                        transaction_id=str(updated.id),
                        error=str(e),
                    )
                    return False
                await self._save_entries(entries)
                logger.info("transaction_updated", transaction_id=str(updated.id))
                return True
        except StorageError as e:
            await self._report_storage_error("update_transaction", e)
            return False

        logger.warning("transaction_not_found", transaction_id=str(updated.id))
        return False

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete a pair given the id of either side."""
        try:
            entries = await self._load_entries()
            remaining = [e for e in entries if not e.has_side(transaction_id)]
            if len(remaining) == len(entries):
                logger.warning("transaction_not_found", transaction_id=str(transaction_id))
                return False
            await self._save_entries(remaining)
        except StorageError as e:
            await self._report_storage_error("delete_transaction", e)
            return False

        logger.info("transaction_deleted", transaction_id=str(transaction_id))
        return True

    async def settle_transaction(self, transaction_id: UUID) -> bool:
        """Mark a pair as settled; it stops counting towards balances."""
        transaction = await self.get_transaction(transaction_id)
        if transaction is None:
            return False
        return await self.update_transaction(
            transaction.model_copy(update={"settled": True})
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_entry(self, transaction_id: UUID) -> Optional[LedgerEntry]:
        """The stored pair containing the side `transaction_id`."""
        try:
            entries = await self._load_entries()
        except StorageError as e:
            await self._report_storage_error("get_transaction", e)
            return None

        for entry in entries:
            if entry.has_side(transaction_id):
                return entry
        return None

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        entry = await self.get_entry(transaction_id)
        return entry.side(transaction_id) if entry else None

    async def get_user_entries(
        self,
        observer_id: UUID,
        counterparty_id: Optional[UUID] = None,
    ) -> list[LedgerEntry]:
        """Stored pairs involving the observer (and the counterparty, if given)."""
        try:
            entries = await self._load_entries()
        except StorageError as e:
            await self._report_storage_error("get_user_transactions", e)
            return []

        return [
            entry for entry in entries
            if entry.involves(observer_id)
            and (counterparty_id is None or entry.involves(counterparty_id))
        ]

    async def get_user_transactions(
        self,
        observer_id: UUID,
        counterparty_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        The observer's side of every transaction involving them.

        Optionally restricted to transactions with one counterparty.
        No pagination: the full matching set is returned each call.
        """
        entries = await self.get_user_entries(observer_id, counterparty_id)
        return [entry.side_for_user(observer_id) for entry in entries]

    async def compute_balances(self, observer_id: UUID) -> list[Balance]:
        """
        Net balance between the observer and every counterparty.

        Every friend is seeded at zero, unsettled transactions are folded in,
        and only non-zero balances are returned, in first-seen order.
        Positive = they owe the observer, negative = the observer owes them.
        """
        observer = await self._directory.get_user(observer_id)
        if observer is None:
            logger.warning("balance_observer_not_found", observer_id=str(observer_id))
            return []

        totals: dict[UUID, Decimal] = {
            friend_id: Decimal("0") for friend_id in observer.friends
        }

        for entry in await self.get_user_entries(observer_id):
            if entry.settled:
                continue
            counterparty_id = entry.counterparty_of(observer_id)
            totals[counterparty_id] = (
                totals.get(counterparty_id, Decimal("0"))
                + entry.balance_effect(observer_id)
            )

        names = {user.id: user.name for user in await self._directory.list_users()}
        return [
            Balance(
                counterparty_id=counterparty_id,
                name=names.get(counterparty_id, UNKNOWN_USER_NAME),
                amount=amount,
            )
            for counterparty_id, amount in totals.items()
            if amount != 0
        ]

    async def get_balance_with(
        self,
        observer_id: UUID,
        counterparty_id: UUID,
    ) -> Decimal:
        """Net balance with a single counterparty (zero if none)."""
        entries = await self.get_user_entries(observer_id, counterparty_id)
        return sum(
            (entry.balance_effect(observer_id) for entry in entries),
            Decimal("0"),
        )
