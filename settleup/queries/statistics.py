"""
Statistics Executor

DESIGN DECISION: Statistics are computed DETERMINISTICALLY from the stored
ledger on every call. Nothing is cached or estimated.

Each logical transaction is counted once, in its stored orientation:
- the observer is the payer  -> money spent
- the observer is the payee  -> money received
The category reported for a transaction is the one on the observer's side.
"""

import calendar
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

import structlog

from settleup.directory import UserDirectory
from settleup.ledger import LedgerEngine
from settleup.models.transaction import (
    LedgerStatistics,
    PersonStatistics,
    TimeRange,
    TransactionCategory,
)


logger = structlog.get_logger(__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _months_back(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month's last day."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _whole_percent(count: int, total: int) -> int:
    """Share of `total` as a whole percentage; halves round up (1 of 8 is 13)."""
    if not total:
        return 0
    percent = Decimal(count * 100) / Decimal(total)
    return int(percent.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def range_cutoff(time_range: TimeRange, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Earliest date included in `time_range`.

    week = 7 days back, month = one calendar month back, year = one calendar
    year back, all = no cutoff (None).
    """
    now = _naive_utc(now or datetime.utcnow())
    if time_range == TimeRange.WEEK:
        return now - timedelta(days=7)
    if time_range == TimeRange.MONTH:
        return _months_back(now, 1)
    if time_range == TimeRange.YEAR:
        return _months_back(now, 12)
    return None


class StatisticsExecutor:
    """
    Summaries of a user's ledger activity.

    GUARANTEES:
    - Only real stored transactions are counted
    - Every logical transaction contributes once
    - An empty range yields zero totals, not an error
    """

    def __init__(self, engine: LedgerEngine, directory: UserDirectory):
        self._engine = engine
        self._directory = directory

    async def compute_statistics(
        self,
        observer_id: UUID,
        time_range: TimeRange = TimeRange.MONTH,
        now: Optional[datetime] = None,
    ) -> LedgerStatistics:
        """Totals, per-friend breakdown and category mix for one time range."""
        time_range = TimeRange(time_range)
        cutoff = range_cutoff(time_range, now)

        entries = [
            entry for entry in await self._engine.get_user_entries(observer_id)
            if cutoff is None or _naive_utc(entry.date) >= cutoff
        ]

        people: dict[UUID, PersonStatistics] = {
            friend.id: PersonStatistics(id=friend.id, name=friend.name)
            for friend in await self._directory.get_friends(observer_id)
        }

        spent = Decimal("0")
        received = Decimal("0")
        counts = {category.value: 0 for category in TransactionCategory}

        for entry in entries:
            counterparty = people.get(entry.counterparty_of(observer_id))
            if entry.payer_id == observer_id:
                spent += entry.amount
                if counterparty:
                    counterparty.spent += entry.amount
            else:
                received += entry.amount
                if counterparty:
                    counterparty.received += entry.amount

            counts[entry.side_for_user(observer_id).category.value] += 1

        by_person = sorted(
            (p for p in people.values() if p.spent > 0 or p.received > 0),
            key=lambda p: abs(p.net),
            reverse=True,
        )

        total = len(entries)
        percentages = {
            category: _whole_percent(count, total)
            for category, count in counts.items()
        }

        logger.debug(
            "statistics_computed",
            observer_id=str(observer_id),
            time_range=time_range.value,
            transaction_count=total,
        )

        return LedgerStatistics(
            observer_id=observer_id,
            time_range=time_range,
            cutoff=cutoff,
            transaction_count=total,
            spent=spent,
            received=received,
            by_person=by_person,
            category_counts=counts,
            category_percentages=percentages,
        )
