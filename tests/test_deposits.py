from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import ConflictError, NotFoundError, ValidationError
from schemas import (
    DepositRuleIn,
    DepositRulePatch,
    InvestmentCategoryIn,
    InvestmentSubcategoryIn,
    JournalEntryIn,
    TradedDaysAdjust,
)
from services import (
    DepositRuleService,
    InvestmentCategoryService,
    InvestmentSubcategoryService,
    JournalService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed_pair(session, category="Equity", subcategory="Intraday"):
    cat = InvestmentCategoryService(session).create(
        InvestmentCategoryIn(name=category)
    )
    sub = InvestmentSubcategoryService(session).create(
        InvestmentSubcategoryIn(category_id=cat.id, name=subcategory)
    )
    return cat.id, sub.id


def rule_in(cat, sub, **overrides) -> DepositRuleIn:
    payload = {
        "category_id": cat,
        "subcategory_id": sub,
        "deposit_amount": Decimal("25000"),
        "risk": Decimal("250"),
        "reward": Decimal("500"),
        "trading_days": 5,
        "ratio": "1:2",
    }
    payload.update(overrides)
    return DepositRuleIn(**payload)


def test_category_names_are_unique_case_insensitively() -> None:
    session = make_session()
    categories = InvestmentCategoryService(session)
    categories.create(InvestmentCategoryIn(name="Equity"))

    with pytest.raises(ConflictError):
        categories.create(InvestmentCategoryIn(name="  equity "))


def test_rename_category_and_lookup_missing() -> None:
    session = make_session()
    categories = InvestmentCategoryService(session)
    equity = categories.create(InvestmentCategoryIn(name="Equity"))

    renamed = categories.rename(equity.id, InvestmentCategoryIn(name="Stocks"))

    assert renamed.name == "Stocks"
    with pytest.raises(NotFoundError):
        categories.get(999)


def test_category_with_subcategories_cannot_be_deleted() -> None:
    session = make_session()
    cat, sub = seed_pair(session)

    with pytest.raises(ConflictError, match="still has subcategories"):
        InvestmentCategoryService(session).delete(cat)

    InvestmentSubcategoryService(session).delete(sub)
    InvestmentCategoryService(session).delete(cat)
    assert InvestmentCategoryService(session).list_all() == []


def test_subcategory_in_use_cannot_be_deleted_or_moved() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    other = InvestmentCategoryService(session).create(
        InvestmentCategoryIn(name="Options")
    )
    JournalService(session).create(
        JournalEntryIn(
            trade_date=date(2024, 1, 1),
            category_id=cat,
            subcategory_id=sub,
            trade_entry=Decimal("10"),
            trade_exit=Decimal("11"),
            profit_amount=Decimal("1"),
            trade_logic="Gap up",
        )
    )
    subcategories = InvestmentSubcategoryService(session)

    with pytest.raises(ConflictError, match="used by journal entries"):
        subcategories.delete(sub)
    with pytest.raises(ConflictError, match="cannot change category"):
        subcategories.update(
            sub, InvestmentSubcategoryIn(category_id=other.id, name="Intraday")
        )


def test_subcategory_names_are_scoped_to_their_category() -> None:
    session = make_session()
    cat, _ = seed_pair(session)
    other_cat, _ = seed_pair(session, "Options", "Weekly")
    subcategories = InvestmentSubcategoryService(session)

    subcategories.create(
        InvestmentSubcategoryIn(category_id=other_cat, name="Intraday")
    )
    with pytest.raises(ConflictError):
        subcategories.create(InvestmentSubcategoryIn(category_id=cat, name="INTRADAY"))
    with pytest.raises(ValidationError, match="Category not found"):
        subcategories.create(InvestmentSubcategoryIn(category_id=99, name="Swing"))
    assert [s.name for s in subcategories.list_all(other_cat)] == [
        "Weekly",
        "Intraday",
    ]


def test_deleting_subcategory_removes_its_deposit_rule() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    DepositRuleService(session).upsert(rule_in(cat, sub))

    InvestmentSubcategoryService(session).delete(sub)

    assert DepositRuleService(session).find(cat, sub) is None


def test_upsert_updates_the_existing_rule_for_a_pair() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    rules = DepositRuleService(session)

    first = rules.upsert(rule_in(cat, sub))
    second = rules.upsert(rule_in(cat, sub, deposit_amount=Decimal("30000.50")))

    assert second.id == first.id
    assert second.deposit_cents == 3_000_050
    assert len(rules.list_all()) == 1
    assert rules.get_for_pair(cat, sub).ratio == "1:2"


def test_upsert_rejects_mismatched_pair() -> None:
    session = make_session()
    cat, _ = seed_pair(session)
    _, foreign_sub = seed_pair(session, "Options", "Weekly")

    with pytest.raises(ValidationError, match="does not belong"):
        DepositRuleService(session).upsert(rule_in(cat, foreign_sub))


def test_patch_clamps_traded_days_to_trading_days() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    rules = DepositRuleService(session)
    rule = rules.upsert(rule_in(cat, sub))

    patched = rules.patch(rule.id, DepositRulePatch(traded_days=9, risk=Decimal("300")))

    assert patched.traded_days == 5
    assert patched.risk_cents == 30_000
    with pytest.raises(ValidationError, match="No valid fields"):
        rules.patch(rule.id, DepositRulePatch())
    with pytest.raises(ValidationError, match="trading_days cannot be null"):
        rules.patch(rule.id, DepositRulePatch(trading_days=None))


def test_adjust_traded_days_adds_sets_and_clamps() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    rules = DepositRuleService(session)
    rule = rules.upsert(rule_in(cat, sub))

    assert rules.adjust_traded_days(rule.id, TradedDaysAdjust(add=2)).traded_days == 2
    assert rules.adjust_traded_days(rule.id, TradedDaysAdjust(add=10)).traded_days == 5
    assert rules.adjust_traded_days(rule.id, TradedDaysAdjust(add=-9)).traded_days == 0
    adjusted = rules.adjust_traded_days(
        rule.id, TradedDaysAdjust.model_validate({"set": 3})
    )
    assert adjusted.traded_days == 3
    with pytest.raises(ValidationError, match="Provide 'add' or 'set'"):
        rules.adjust_traded_days(rule.id, TradedDaysAdjust())


def test_delete_rule_by_pair_and_by_id() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    other_cat, other_sub = seed_pair(session, "Options", "Weekly")
    rules = DepositRuleService(session)
    rules.upsert(rule_in(cat, sub))
    other = rules.upsert(rule_in(other_cat, other_sub))

    rules.delete_for_pair(cat, sub)
    rules.delete(other.id)

    assert rules.list_all() == []
    with pytest.raises(NotFoundError):
        rules.delete_for_pair(cat, sub)
    with pytest.raises(NotFoundError):
        rules.get_for_pair(cat, sub)


def test_capital_for_day_adds_day_net_to_deposit() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    DepositRuleService(session).upsert(rule_in(cat, sub))
    JournalService(session).create(
        JournalEntryIn(
            trade_date=date(2024, 1, 1),
            category_id=cat,
            subcategory_id=sub,
            trade_entry=Decimal("10"),
            trade_exit=Decimal("9"),
            loss_amount=Decimal("200"),
            brokerage=Decimal("15.50"),
            trade_logic="Failed breakout",
        )
    )

    capital = DepositRuleService(session).capital_for_day(cat, sub, date(2024, 1, 1))
    quiet_day = DepositRuleService(session).capital_for_day(cat, sub, date(2024, 1, 2))

    assert capital["base_deposit"] == 25000.0
    assert capital["day_net"] == -215.5
    assert capital["current_capital"] == 24784.5
    assert quiet_day["current_capital"] == 25000.0
