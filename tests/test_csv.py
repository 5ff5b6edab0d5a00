import csv
from datetime import date
from decimal import Decimal
from io import StringIO

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from csv_utils import (
    EXPORT_HEADER,
    parse_date,
    parse_decimal,
    parse_journal_csv,
    sanitize_csv_value,
)
from database import Base
from schemas import InvestmentCategoryIn, InvestmentSubcategoryIn, JournalEntryIn
from sequencing import GroupKey
from services import (
    InvestmentCategoryService,
    InvestmentSubcategoryService,
    JournalCSVService,
    JournalFilters,
    JournalService,
)


HEADER = "Date,Category,Subcategory,Entry,Exit,Profit,Loss,Brokerage,TradeLogic\n"


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


def test_sanitize_csv_value_neutralises_formulas() -> None:
    assert sanitize_csv_value("=HYPERLINK(1)") == "\t=HYPERLINK(1)"
    assert sanitize_csv_value("cmd /c calc") == "\tcmd /c calc"
    assert sanitize_csv_value("  Breakout  ") == "Breakout"
    assert sanitize_csv_value("   ") == ""


def test_parse_helpers_accept_common_formats() -> None:
    assert parse_date("2024-01-05") == date(2024, 1, 5)
    assert parse_date("05.01.2024") == date(2024, 1, 5)
    assert parse_decimal("₹ 1,234.50") == Decimal("1234.50")
    assert parse_decimal("") == Decimal("0")


def test_parse_journal_csv_reports_bad_rows_by_number() -> None:
    content = HEADER + (
        "2024-01-05,Equity,Intraday,100,101,50,,5,Breakout\n"
        "yesterday,Equity,Intraday,100,101,50,,5,Breakout\n"
        "2024-01-05,Equity,Intraday,abc,101,50,,5,Breakout\n"
    )

    rows, errors = parse_journal_csv(content)

    assert [row.row_number for row in rows] == [1]
    assert rows[0].loss_amount == Decimal("0")
    assert len(errors) == 2
    assert errors[0].startswith("Row 2:")
    assert errors[1].startswith("Row 3:") and "Invalid number 'abc'" in errors[1]


def test_export_writes_header_and_sanitised_rows() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    journal = JournalService(session)
    journal.create(
        JournalEntryIn(
            trade_date=date(2024, 1, 5),
            category_id=cat,
            subcategory_id=sub,
            trade_entry=Decimal("100.25"),
            trade_exit=Decimal("101"),
            profit_amount=Decimal("75"),
            brokerage=Decimal("5.5"),
            trade_logic="=cmd|' /C calc'!A0",
        )
    )

    text = JournalCSVService(session).export(journal.list(JournalFilters()))
    rows = list(csv.reader(StringIO(text)))

    assert rows[0] == EXPORT_HEADER
    record = dict(zip(EXPORT_HEADER, rows[1]))
    assert record["Date"] == "2024-01-05"
    assert record["Category"] == "Equity"
    assert record["Sequence"] == "1"
    assert record["Entry"] == "100.2500"
    assert record["NetPnL"] == "69.50"
    assert record["TradeLogic"].startswith("\t=")


def test_preview_resolves_names_with_one_typo() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    content = HEADER + (
        "2024-01-05,equty,Intraday,100,101,50,,5,Breakout\n"
        "2024-01-05,Crypto,Spot,100,101,50,,5,Breakout\n"
    )

    prepared, errors = JournalCSVService(session).preview(content)

    assert [(n, data.category_id, data.subcategory_id) for n, data in prepared] == [
        (1, cat, sub)
    ]
    assert errors == ["Row 2: Category 'Crypto' not found"]


def test_preview_reports_ambiguous_names() -> None:
    session = make_session()
    seed_pair(session, "Cash", "Intraday")
    seed_pair(session, "Case", "Intraday")
    content = HEADER + "2024-01-05,Casa,Intraday,100,101,50,,5,Breakout\n"

    prepared, errors = JournalCSVService(session).preview(content)

    assert prepared == []
    assert errors[0].startswith("Row 1: Category 'Casa' is ambiguous")


def test_import_creates_rows_until_group_is_full() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    lines = [
        f"2024-01-05,Equity,Intraday,100,101,{10 + n},,5,Trade {n}\n" for n in range(4)
    ]
    lines.append("2024-01-05,Equity,Intraday,100,101,10,10,5,Both sides\n")

    created, errors = JournalCSVService(session).commit(HEADER + "".join(lines))

    assert created == 3
    assert errors[0].startswith("Row 4: Daily trade limit (3)")
    assert errors[1].startswith("Row 5: Only one of profit_amount")
    entries = JournalService(session).group_entries(
        GroupKey(date(2024, 1, 5), cat, sub)
    )
    assert [e.trade_logic for e in entries] == ["Trade 0", "Trade 1", "Trade 2"]
    assert [e.sequence_no for e in entries] == [1, 2, 3]


def test_import_rejects_out_of_range_prices_per_row() -> None:
    session = make_session()
    cat, sub = seed_pair(session)
    lines = [
        "2024-01-05,Equity,Intraday,22000.5,22150.25,1500,,40,Index swing\n",
        "2024-01-05,Equity,Intraday,10000000000000,22150,1500,,40,Fat finger\n",
    ]

    created, errors = JournalCSVService(session).commit(HEADER + "".join(lines))

    assert created == 1
    assert len(errors) == 1
    assert errors[0].startswith("Row 2:")
    assert "less than or equal" in errors[0]
    entries = JournalService(session).group_entries(
        GroupKey(date(2024, 1, 5), cat, sub)
    )
    assert [e.trade_entry_micros for e in entries] == [22_000_500_000]
