from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from csv_utils import export_journal, parse_journal_csv
from errors import (
    ConflictError,
    JournalError,
    NotFoundError,
    ValidationError,
)
from models import (
    DepositRule,
    InvestmentCategory,
    InvestmentSubcategory,
    JournalEntry,
)
from periods import Period, local_today
from schemas import (
    AMOUNT_PLACES,
    PRICE_PLACES,
    DepositRuleIn,
    DepositRulePatch,
    InvestmentCategoryIn,
    InvestmentSubcategoryIn,
    JournalEntryIn,
    JournalEntryPatch,
    TradedDaysAdjust,
)
from sequencing import (
    DAILY_TRADE_LIMIT,
    GroupKey,
    GroupLimiter,
    Sequencer,
    lock_group,
    lock_groups,
)


logger = logging.getLogger(__name__)

CREATE_LIMIT_MESSAGE = (
    f"Daily trade limit ({DAILY_TRADE_LIMIT}) reached for this Category/Subcategory."
)
MOVE_LIMIT_MESSAGE = (
    f"Daily trade limit ({DAILY_TRADE_LIMIT}) reached for new Category/Subcategory."
)


def to_minor_units(value: Decimal, places: int) -> int:
    return int(Decimal(value).scaleb(places).to_integral_value())


def to_cents(value: Decimal) -> int:
    return to_minor_units(value, AMOUNT_PLACES)


def to_micros(value: Decimal) -> int:
    # prices keep at most PRICE_PLACES digits, micros hold them exactly
    return to_minor_units(value, 6)


def cents_to_amount(cents: int) -> float:
    return cents / 100


def micros_to_price(micros: int) -> float:
    return round(micros / 1_000_000, PRICE_PLACES)


def validate_outcome(profit_cents: int, loss_cents: int) -> None:
    if profit_cents > 0 and loss_cents > 0:
        raise ValidationError("Only one of profit_amount or loss_amount can be > 0")
    if profit_cents == 0 and loss_cents == 0:
        raise ValidationError("Either profit_amount or loss_amount must be > 0")


def rr_assessment(
    entry: JournalEntry, rule: Optional[DepositRule]
) -> tuple[Optional[bool], Optional[str]]:
    if rule is None:
        return None, None
    target_met = entry.profit_cents >= rule.reward_cents
    risk_kept = entry.loss_cents <= rule.risk_cents
    if not target_met and not risk_kept:
        reason = "Target not met; Risk exceeded"
    elif not target_met:
        reason = "Target not met"
    elif not risk_kept:
        reason = "Risk exceeded"
    else:
        reason = None
    return target_met and risk_kept, reason


def resolve_by_name(candidates: list, name: str, label: str):
    """Case-insensitive exact match, else the unique candidate one edit away."""
    wanted = name.strip().lower()
    if not wanted:
        raise ValidationError(f"{label} is required")
    for candidate in candidates:
        if candidate.name.strip().lower() == wanted:
            return candidate
    best_distance: Optional[int] = None
    best: list = []
    for candidate in candidates:
        dist = int(Levenshtein.distance(wanted, candidate.name.strip().lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [candidate]
        elif dist == best_distance:
            best.append(candidate)
    if best_distance is None or best_distance > 1:
        raise ValidationError(f"{label} '{name}' not found")
    if len(best) > 1:
        options = ", ".join(sorted({c.name for c in best}))
        raise ValidationError(f"{label} '{name}' is ambiguous; matches: {options}")
    return best[0]


class InvestmentCategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[InvestmentCategory]:
        stmt = select(InvestmentCategory).order_by(InvestmentCategory.id)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> InvestmentCategory:
        category = self.session.get(InvestmentCategory, category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def _ensure_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(InvestmentCategory).where(
            func.lower(InvestmentCategory.name) == name.lower()
        )
        if exclude_id is not None:
            stmt = stmt.where(InvestmentCategory.id != exclude_id)
        if self.session.scalar(stmt):
            raise ConflictError("Category with this name already exists")

    def create(self, data: InvestmentCategoryIn) -> InvestmentCategory:
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        self._ensure_unique(name)
        category = InvestmentCategory(name=name)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def rename(
        self, category_id: int, data: InvestmentCategoryIn
    ) -> InvestmentCategory:
        category = self.get(category_id)
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        self._ensure_unique(name, exclude_id=category_id)
        category.name = name
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = self.session.scalar(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.category_id == category_id
            )
        )
        if in_use:
            raise ConflictError("Category is used by journal entries")
        has_children = self.session.scalar(
            select(func.count(InvestmentSubcategory.id)).where(
                InvestmentSubcategory.category_id == category_id
            )
        )
        if has_children:
            raise ConflictError("Category still has subcategories")
        self.session.delete(category)
        self.session.commit()


class InvestmentSubcategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(
        self, category_id: Optional[int] = None
    ) -> list[InvestmentSubcategory]:
        stmt = select(InvestmentSubcategory).options(
            joinedload(InvestmentSubcategory.category)
        )
        if category_id is not None:
            stmt = stmt.where(InvestmentSubcategory.category_id == category_id)
        return self.session.scalars(stmt.order_by(InvestmentSubcategory.id)).all()

    def get(self, subcategory_id: int) -> InvestmentSubcategory:
        sub = self.session.get(InvestmentSubcategory, subcategory_id)
        if not sub:
            raise NotFoundError("Subcategory not found")
        return sub

    def _validate(
        self, data: InvestmentSubcategoryIn, exclude_id: Optional[int] = None
    ) -> str:
        if not self.session.get(InvestmentCategory, data.category_id):
            raise ValidationError("Category not found")
        name = data.name.strip()
        if not name:
            raise ValidationError("Subcategory name cannot be empty")
        stmt = select(InvestmentSubcategory).where(
            InvestmentSubcategory.category_id == data.category_id,
            func.lower(InvestmentSubcategory.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(InvestmentSubcategory.id != exclude_id)
        if self.session.scalar(stmt):
            raise ConflictError("Subcategory with this name already exists")
        return name

    def create(self, data: InvestmentSubcategoryIn) -> InvestmentSubcategory:
        name = self._validate(data)
        sub = InvestmentSubcategory(category_id=data.category_id, name=name)
        self.session.add(sub)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    def update(
        self, subcategory_id: int, data: InvestmentSubcategoryIn
    ) -> InvestmentSubcategory:
        sub = self.get(subcategory_id)
        name = self._validate(data, exclude_id=subcategory_id)
        if data.category_id != sub.category_id:
            in_use = self.session.scalar(
                select(func.count(JournalEntry.id)).where(
                    JournalEntry.subcategory_id == subcategory_id
                )
            )
            if in_use:
                raise ConflictError(
                    "Subcategory is used by journal entries and cannot change category"
                )
        sub.category_id = data.category_id
        sub.name = name
        self.session.commit()
        self.session.refresh(sub)
        return sub

    def delete(self, subcategory_id: int) -> None:
        sub = self.get(subcategory_id)
        in_use = self.session.scalar(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.subcategory_id == subcategory_id
            )
        )
        if in_use:
            raise ConflictError("Subcategory is used by journal entries")
        rule = self.session.scalar(
            select(DepositRule).where(DepositRule.subcategory_id == subcategory_id)
        )
        if rule:
            self.session.delete(rule)
        self.session.delete(sub)
        self.session.commit()


def ensure_pair(session: Session, category_id: int, subcategory_id: int) -> None:
    if not session.get(InvestmentCategory, category_id):
        raise ValidationError("Category not found")
    sub = session.get(InvestmentSubcategory, subcategory_id)
    if not sub:
        raise ValidationError("Subcategory not found")
    if sub.category_id != category_id:
        raise ValidationError("Subcategory does not belong to category")


class DepositRuleService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[DepositRule]:
        stmt = (
            select(DepositRule)
            .options(
                joinedload(DepositRule.category), joinedload(DepositRule.subcategory)
            )
            .order_by(DepositRule.id)
        )
        return self.session.scalars(stmt).all()

    def find(self, category_id: int, subcategory_id: int) -> Optional[DepositRule]:
        return self.session.scalar(
            select(DepositRule).where(
                DepositRule.category_id == category_id,
                DepositRule.subcategory_id == subcategory_id,
            )
        )

    def get_for_pair(self, category_id: int, subcategory_id: int) -> DepositRule:
        rule = self.find(category_id, subcategory_id)
        if not rule:
            raise NotFoundError("Rule not found")
        return rule

    def get(self, rule_id: int) -> DepositRule:
        rule = self.session.get(DepositRule, rule_id)
        if not rule:
            raise NotFoundError("Deposit not found")
        return rule

    def upsert(self, data: DepositRuleIn) -> DepositRule:
        ensure_pair(self.session, data.category_id, data.subcategory_id)
        rule = self.find(data.category_id, data.subcategory_id)
        if rule is None:
            rule = DepositRule(
                category_id=data.category_id, subcategory_id=data.subcategory_id
            )
            self.session.add(rule)
        rule.deposit_cents = to_cents(data.deposit_amount)
        rule.risk_cents = to_cents(data.risk)
        rule.reward_cents = to_cents(data.reward)
        rule.trading_days = data.trading_days
        rule.traded_days = min(rule.traded_days or 0, data.trading_days)
        rule.ratio = data.ratio
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def patch(self, rule_id: int, data: DepositRulePatch) -> DepositRule:
        rule = self.get(rule_id)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No valid fields to update.")
        required = ("deposit_amount", "risk", "reward", "trading_days", "traded_days")
        for field in required:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")
        if "deposit_amount" in changes:
            rule.deposit_cents = to_cents(changes["deposit_amount"])
        if "risk" in changes:
            rule.risk_cents = to_cents(changes["risk"])
        if "reward" in changes:
            rule.reward_cents = to_cents(changes["reward"])
        if "trading_days" in changes:
            rule.trading_days = changes["trading_days"]
        if "traded_days" in changes:
            rule.traded_days = changes["traded_days"]
        rule.traded_days = min(rule.traded_days, rule.trading_days)
        if "ratio" in changes:
            rule.ratio = changes["ratio"]
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def adjust_traded_days(self, rule_id: int, data: TradedDaysAdjust) -> DepositRule:
        if data.add is None and data.set_to is None:
            raise ValidationError("Provide 'add' or 'set'.")
        rule = self.get(rule_id)
        value = rule.traded_days
        if data.add is not None:
            value = rule.traded_days + data.add
        if data.set_to is not None:
            value = data.set_to
        rule.traded_days = max(0, min(value, rule.trading_days))
        self.session.commit()
        self.session.refresh(rule)
        return rule

    def delete_for_pair(self, category_id: int, subcategory_id: int) -> None:
        rule = self.find(category_id, subcategory_id)
        if not rule:
            raise NotFoundError("Deposit not found")
        self.session.delete(rule)
        self.session.commit()

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        self.session.delete(rule)
        self.session.commit()

    def day_net_cents(self, key: GroupKey) -> int:
        stmt = select(
            func.coalesce(
                func.sum(
                    JournalEntry.profit_cents
                    - JournalEntry.loss_cents
                    - JournalEntry.brokerage_cents
                ),
                0,
            )
        ).where(*key.where())
        return int(self.session.execute(stmt).scalar_one() or 0)

    def capital_for_day(
        self, category_id: int, subcategory_id: int, on_date: date
    ) -> dict[str, object]:
        rule = self.find(category_id, subcategory_id)
        base = rule.deposit_cents if rule else 0
        day_net = self.day_net_cents(GroupKey(on_date, category_id, subcategory_id))
        return {
            "date": on_date.isoformat(),
            "category_id": category_id,
            "subcategory_id": subcategory_id,
            "base_deposit": cents_to_amount(base),
            "day_net": cents_to_amount(day_net),
            "current_capital": cents_to_amount(base + day_net),
        }


@dataclass
class JournalFilters:
    trade_date: Optional[date] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    period: Optional[Period] = None


UPDATABLE_FIELDS = (
    "trade_date",
    "category_id",
    "subcategory_id",
    "trade_entry",
    "trade_exit",
    "profit_amount",
    "loss_amount",
    "brokerage",
    "trade_logic",
    "mistakes",
    "broker_name",
    "segment",
    "purpose",
)
OPTIONAL_TEXT_FIELDS = ("mistakes", "broker_name", "segment", "purpose")
NON_NULL_FIELDS = set(UPDATABLE_FIELDS) - set(OPTIONAL_TEXT_FIELDS)


class JournalService:
    """Create/move/delete journal entries keeping every group dense and capped.

    Every mutation runs in one transaction: the affected groups are locked,
    capacity is checked, the row is written and the groups are renumbered,
    then the whole thing commits or rolls back together.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.limiter = GroupLimiter(session)
        self.sequencer = Sequencer(session)

    @contextmanager
    def _unit_of_work(self, operation: str, **context: object) -> Iterator[None]:
        details = " ".join(f"{k}={v}" for k, v in context.items())
        try:
            yield
            self.session.commit()
        except JournalError:
            self.session.rollback()
            raise
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning(
                f"journal_conflict: op={operation} {details} error={exc.orig}"
            )
            raise ConflictError(
                "The journal entry conflicts with existing data; please resubmit"
            ) from exc
        except Exception:
            self.session.rollback()
            logger.exception(f"journal_store_failure: op={operation} {details}")
            raise

    def get(self, entry_id: int) -> JournalEntry:
        stmt = (
            select(JournalEntry)
            .options(
                joinedload(JournalEntry.category), joinedload(JournalEntry.subcategory)
            )
            .where(JournalEntry.id == entry_id)
        )
        entry = self.session.scalar(stmt)
        if not entry:
            raise NotFoundError("Journal entry not found")
        return entry

    def list(
        self, filters: JournalFilters, limit: int = 100, offset: int = 0
    ) -> list[JournalEntry]:
        stmt = select(JournalEntry).options(
            joinedload(JournalEntry.category), joinedload(JournalEntry.subcategory)
        )
        if filters.trade_date is not None:
            stmt = stmt.where(JournalEntry.trade_date == filters.trade_date)
        if filters.period is not None:
            stmt = stmt.where(
                JournalEntry.trade_date.between(
                    filters.period.start, filters.period.end
                )
            )
        if filters.category_id is not None:
            stmt = stmt.where(JournalEntry.category_id == filters.category_id)
        if filters.subcategory_id is not None:
            stmt = stmt.where(JournalEntry.subcategory_id == filters.subcategory_id)
        stmt = (
            stmt.order_by(
                JournalEntry.trade_date.desc(),
                JournalEntry.category_id,
                JournalEntry.subcategory_id,
                JournalEntry.sequence_no,
            )
            .limit(limit)
            .offset(offset)
        )
        return self.session.scalars(stmt).all()

    def group_entries(self, key: GroupKey) -> list[JournalEntry]:
        stmt = (
            select(JournalEntry)
            .where(*key.where())
            .order_by(JournalEntry.sequence_no)
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).all()

    def create(self, data: JournalEntryIn) -> JournalEntry:
        trade_date = data.trade_date or local_today()
        ensure_pair(self.session, data.category_id, data.subcategory_id)
        profit = to_cents(data.profit_amount)
        loss = to_cents(data.loss_amount)
        validate_outcome(profit, loss)
        key = GroupKey(trade_date, data.category_id, data.subcategory_id)

        with self._unit_of_work("create", group=key):
            lock_group(self.session, key)
            self.limiter.ensure_capacity(key, CREATE_LIMIT_MESSAGE)
            entry = JournalEntry(
                trade_date=trade_date,
                category_id=data.category_id,
                subcategory_id=data.subcategory_id,
                sequence_no=self.sequencer.next_sequence(key),
                trade_entry_micros=to_micros(data.trade_entry),
                trade_exit_micros=to_micros(data.trade_exit),
                profit_cents=profit,
                loss_cents=loss,
                brokerage_cents=to_cents(data.brokerage),
                trade_logic=data.trade_logic,
                mistakes=_clean(data.mistakes),
                broker_name=_clean(data.broker_name),
                segment=_clean(data.segment),
                purpose=_clean(data.purpose),
            )
            self.session.add(entry)
            self.session.flush()
        logger.info(
            f"journal_created: id={entry.id} group={key} "
            f"sequence_no={entry.sequence_no}"
        )
        return self.get(entry.id)

    def _reload_in_group(self, entry_id: int, expected: GroupKey) -> JournalEntry:
        entry = self.session.scalar(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        if entry is None:
            raise NotFoundError("Journal entry not found")
        if GroupKey.of(entry) != expected:
            raise ConflictError("Journal entry was changed concurrently; please retry")
        return entry

    def update(self, entry_id: int, data: JournalEntryPatch) -> JournalEntry:
        changes = data.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No valid fields to update.")
        for field in NON_NULL_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")
        if "trade_logic" in changes:
            changes["trade_logic"] = changes["trade_logic"].strip()
            if not changes["trade_logic"]:
                raise ValidationError("trade_logic cannot be empty")

        entry = self.session.get(JournalEntry, entry_id)
        if not entry:
            raise NotFoundError("Journal entry not found")

        profit = (
            to_cents(changes["profit_amount"])
            if "profit_amount" in changes
            else entry.profit_cents
        )
        loss = (
            to_cents(changes["loss_amount"])
            if "loss_amount" in changes
            else entry.loss_cents
        )
        validate_outcome(profit, loss)

        old_key = GroupKey.of(entry)
        new_key = GroupKey(
            changes.get("trade_date", entry.trade_date),
            changes.get("category_id", entry.category_id),
            changes.get("subcategory_id", entry.subcategory_id),
        )
        moved = new_key != old_key
        if moved:
            ensure_pair(self.session, new_key.category_id, new_key.subcategory_id)

        with self._unit_of_work("update", id=entry_id, group=old_key, target=new_key):
            if moved:
                lock_groups(self.session, [old_key, new_key])
                entry = self._reload_in_group(entry_id, old_key)
                self.limiter.ensure_capacity(new_key, MOVE_LIMIT_MESSAGE)
                entry.sequence_no = self.sequencer.next_sequence(new_key)
                entry.trade_date = new_key.trade_date
                entry.category_id = new_key.category_id
                entry.subcategory_id = new_key.subcategory_id
            self._apply_details(entry, changes, profit, loss)
            self.session.flush()
            if moved:
                self.sequencer.resequence(old_key)
                self.sequencer.resequence(new_key)
        if moved:
            logger.info(f"journal_moved: id={entry_id} from={old_key} to={new_key}")
        else:
            logger.info(f"journal_updated: id={entry_id} group={old_key}")
        self.session.expire_all()
        return self.get(entry_id)

    def _apply_details(
        self, entry: JournalEntry, changes: dict, profit: int, loss: int
    ) -> None:
        entry.profit_cents = profit
        entry.loss_cents = loss
        if "brokerage" in changes:
            entry.brokerage_cents = to_cents(changes["brokerage"])
        if "trade_entry" in changes:
            entry.trade_entry_micros = to_micros(changes["trade_entry"])
        if "trade_exit" in changes:
            entry.trade_exit_micros = to_micros(changes["trade_exit"])
        if "trade_logic" in changes:
            entry.trade_logic = changes["trade_logic"]
        for field in OPTIONAL_TEXT_FIELDS:
            if field in changes:
                setattr(entry, field, _clean(changes[field]))

    def delete(self, entry_id: int) -> None:
        entry = self.session.get(JournalEntry, entry_id)
        if not entry:
            raise NotFoundError("Journal entry not found")
        key = GroupKey.of(entry)
        with self._unit_of_work("delete", id=entry_id, group=key):
            lock_group(self.session, key)
            entry = self._reload_in_group(entry_id, key)
            self.session.delete(entry)
            self.session.flush()
            self.sequencer.resequence(key)
        logger.info(f"journal_deleted: id={entry_id} group={key}")

    def resequence(self, key: GroupKey) -> int:
        with self._unit_of_work("resequence", group=key):
            lock_group(self.session, key)
            changed = self.sequencer.resequence(key)
        return changed

    def day_summary(self, key: GroupKey) -> dict[str, object]:
        row = self.session.execute(
            select(
                func.count(JournalEntry.id).label("trades_count"),
                func.coalesce(func.sum(JournalEntry.profit_cents), 0).label("profit"),
                func.coalesce(func.sum(JournalEntry.loss_cents), 0).label("loss"),
                func.coalesce(func.sum(JournalEntry.brokerage_cents), 0).label(
                    "brokerage"
                ),
            ).where(*key.where())
        ).one()
        rules = DepositRuleService(self.session)
        rule = rules.find(key.category_id, key.subcategory_id)
        base = rule.deposit_cents if rule else 0
        profit, loss, brokerage = int(row.profit), int(row.loss), int(row.brokerage)
        day_net = profit - loss - brokerage
        capital = base + day_net
        count = int(row.trades_count)
        return {
            "date": key.trade_date.isoformat(),
            "category_id": key.category_id,
            "subcategory_id": key.subcategory_id,
            "base_deposit": cents_to_amount(base),
            "trades_count": count,
            "gross_profit": cents_to_amount(profit),
            "gross_loss": cents_to_amount(loss),
            "total_brokerage": cents_to_amount(brokerage),
            "day_net": cents_to_amount(day_net),
            "current_capital": cents_to_amount(capital),
            "limit_left": max(0, DAILY_TRADE_LIMIT - count),
            "status": "great" if capital >= base else "alert",
        }

    def describe(self, entries: list[JournalEntry]) -> list[dict[str, object]]:
        pairs = {(e.category_id, e.subcategory_id) for e in entries}
        rules: dict[tuple[int, int], DepositRule] = {}
        if pairs:
            for rule in self.session.scalars(
                select(DepositRule).where(
                    DepositRule.category_id.in_(sorted({p[0] for p in pairs}))
                )
            ):
                rules[(rule.category_id, rule.subcategory_id)] = rule
        out = []
        for entry in entries:
            respected, reason = rr_assessment(
                entry, rules.get((entry.category_id, entry.subcategory_id))
            )
            out.append(
                {
                    "journal_id": entry.id,
                    "trade_date": entry.trade_date.isoformat(),
                    "sequence_no": entry.sequence_no,
                    "trade_entry": micros_to_price(entry.trade_entry_micros),
                    "trade_exit": micros_to_price(entry.trade_exit_micros),
                    "profit_amount": cents_to_amount(entry.profit_cents),
                    "loss_amount": cents_to_amount(entry.loss_cents),
                    "brokerage": cents_to_amount(entry.brokerage_cents),
                    "net_pnl": cents_to_amount(entry.net_pnl_cents),
                    "trade_logic": entry.trade_logic,
                    "mistakes": entry.mistakes,
                    "broker_name": entry.broker_name,
                    "segment": entry.segment,
                    "purpose": entry.purpose,
                    "category_id": entry.category_id,
                    "category_name": entry.category.name if entry.category else None,
                    "subcategory_id": entry.subcategory_id,
                    "subcategory_name": entry.subcategory.name
                    if entry.subcategory
                    else None,
                    "rr_respected": respected,
                    "violation_reason": reason,
                }
            )
        return out


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class JournalCSVService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def export(self, entries: list[JournalEntry]) -> str:
        return export_journal(entries)

    def preview(
        self, content: str
    ) -> tuple[list[tuple[int, JournalEntryIn]], list[str]]:
        rows, errors = parse_journal_csv(content)
        categories = InvestmentCategoryService(self.session).list_all()
        subcategories = InvestmentSubcategoryService(self.session).list_all()
        prepared: list[tuple[int, JournalEntryIn]] = []
        for row in rows:
            try:
                category = resolve_by_name(categories, row.category, "Category")
                subcategory = resolve_by_name(
                    [s for s in subcategories if s.category_id == category.id],
                    row.subcategory,
                    "Subcategory",
                )
                entry_in = JournalEntryIn(
                    trade_date=row.trade_date,
                    category_id=category.id,
                    subcategory_id=subcategory.id,
                    trade_entry=row.trade_entry,
                    trade_exit=row.trade_exit,
                    profit_amount=row.profit_amount,
                    loss_amount=row.loss_amount,
                    brokerage=row.brokerage,
                    trade_logic=row.trade_logic,
                    mistakes=row.mistakes,
                    broker_name=row.broker_name,
                    segment=row.segment,
                    purpose=row.purpose,
                )
            except ValueError as exc:
                errors.append(f"Row {row.row_number}: {exc}")
                continue
            prepared.append((row.row_number, entry_in))
        return prepared, errors

    def commit(self, content: str) -> tuple[int, list[str]]:
        """Create every importable row; rows that fail are reported, not fatal."""
        prepared, errors = self.preview(content)
        journal = JournalService(self.session)
        created = 0
        for row_number, data in prepared:
            try:
                journal.create(data)
                created += 1
            except JournalError as exc:
                errors.append(f"Row {row_number}: {exc}")
        logger.info(f"journal_import: created={created} errors={len(errors)}")
        return created, errors
