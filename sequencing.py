"""Per-group capacity and dense sequence numbering for journal entries.

A group is every journal entry sharing ``(trade_date, category_id,
subcategory_id)``. Entries in a group carry ``sequence_no`` values that
are exactly ``1..count`` and a group never holds more than
``DAILY_TRADE_LIMIT`` entries.

Callers must hold the group's lock (``lock_group``/``lock_groups``) in the
current transaction before asking the limiter or sequencer anything,
otherwise two writers can both observe free capacity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from errors import CapacityExceededError
from models import JournalEntry, JournalGroupLock


logger = logging.getLogger(__name__)

DAILY_TRADE_LIMIT = 3


@dataclass(frozen=True, order=True)
class GroupKey:
    trade_date: date
    category_id: int
    subcategory_id: int

    @classmethod
    def of(cls, entry: JournalEntry) -> "GroupKey":
        return cls(entry.trade_date, entry.category_id, entry.subcategory_id)

    def where(self):
        return (
            JournalEntry.trade_date == self.trade_date,
            JournalEntry.category_id == self.category_id,
            JournalEntry.subcategory_id == self.subcategory_id,
        )

    def __str__(self) -> str:
        return (
            f"{self.trade_date.isoformat()}/{self.category_id}/{self.subcategory_id}"
        )


def _insert_lock_row(session: Session, key: GroupKey) -> None:
    values = {
        "trade_date": key.trade_date,
        "category_id": key.category_id,
        "subcategory_id": key.subcategory_id,
    }
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        existing = session.get(
            JournalGroupLock,
            (key.trade_date, key.category_id, key.subcategory_id),
            with_for_update=True,
        )
        if existing is None:
            session.add(JournalGroupLock(**values))
            session.flush()
        return
    session.execute(insert(JournalGroupLock).values(**values).on_conflict_do_nothing())


def lock_group(session: Session, key: GroupKey) -> None:
    """Take the group's exclusive lock for the rest of the transaction.

    PostgreSQL holds a row lock on the group's ``journal_group_locks`` row;
    SQLite holds the database write lock taken by the upsert. Both are
    released at commit or rollback.
    """
    _insert_lock_row(session, key)
    session.execute(
        select(JournalGroupLock)
        .where(
            JournalGroupLock.trade_date == key.trade_date,
            JournalGroupLock.category_id == key.category_id,
            JournalGroupLock.subcategory_id == key.subcategory_id,
        )
        .with_for_update()
    ).scalar_one()


def lock_groups(session: Session, keys: Iterable[GroupKey]) -> None:
    # fixed order so two movers crossing the same pair of groups cannot deadlock
    for key in sorted(set(keys)):
        lock_group(session, key)


class GroupLimiter:
    def __init__(self, session: Session, limit: int = DAILY_TRADE_LIMIT) -> None:
        self.session = session
        self.limit = limit

    def count(self, key: GroupKey) -> int:
        stmt = select(func.count(JournalEntry.id)).where(*key.where())
        return int(self.session.execute(stmt).scalar_one() or 0)

    def remaining(self, key: GroupKey) -> int:
        return max(0, self.limit - self.count(key))

    def can_admit(self, key: GroupKey) -> bool:
        return self.count(key) < self.limit

    def ensure_capacity(self, key: GroupKey, message: str) -> None:
        if not self.can_admit(key):
            logger.info(f"journal_capacity_rejected: group={key} limit={self.limit}")
            raise CapacityExceededError(message)


class Sequencer:
    def __init__(self, session: Session) -> None:
        self.session = session

    def next_sequence(self, key: GroupKey) -> int:
        stmt = select(func.coalesce(func.max(JournalEntry.sequence_no), 0)).where(
            *key.where()
        )
        return int(self.session.execute(stmt).scalar_one() or 0) + 1

    def resequence(self, key: GroupKey) -> int:
        """Renumber the group as 1..N, keeping its current relative order.

        Entries are ordered by their current number with the id as the
        tiebreak, so an entry that was appended by a move stays last.
        Ordering by id alone would pull an older moved-in entry to the
        front and undo the max+1 number it was given; for groups filled
        only by creates both orders agree.
        Returns how many rows were renumbered; an empty or already dense
        group is left untouched.
        """
        rows = self.session.execute(
            select(JournalEntry.id, JournalEntry.sequence_no)
            .where(*key.where())
            .order_by(JournalEntry.sequence_no.asc(), JournalEntry.id.asc())
        ).all()
        changed = 0
        # ascending order only ever moves a row into a slot that is already free
        for position, row in enumerate(rows, start=1):
            if row.sequence_no == position:
                continue
            self.session.execute(
                update(JournalEntry)
                .where(JournalEntry.id == row.id)
                .values(sequence_no=position)
            )
            changed += 1
        if changed:
            logger.info(f"journal_resequenced: group={key} renumbered={changed}")
        return changed
