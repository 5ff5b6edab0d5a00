import csv
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from models import JournalEntry
from schemas import JournalCSVRow


EXPORT_HEADER = [
    "Date",
    "Category",
    "Subcategory",
    "Sequence",
    "Entry",
    "Exit",
    "Profit",
    "Loss",
    "Brokerage",
    "NetPnL",
    "TradeLogic",
    "Mistakes",
    "Broker",
    "Segment",
    "Purpose",
]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str):
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return datetime.strptime(value, "%d.%m.%Y").date()


def parse_decimal(value: str, *, default: str = "0") -> Decimal:
    clean = (value or "").strip().replace("₹", "").replace(" ", "")
    clean = clean.replace(",", "")
    if not clean:
        clean = default
    try:
        return Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid number '{value}'") from exc


def _optional(raw: dict, key: str):
    text = (raw.get(key) or "").strip()
    return text or None


def parse_journal_csv(content: str) -> tuple[list[JournalCSVRow], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[JournalCSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            rows.append(
                JournalCSVRow(
                    row_number=idx,
                    trade_date=parse_date(raw.get("Date") or ""),
                    category=(raw.get("Category") or "").strip(),
                    subcategory=(raw.get("Subcategory") or "").strip(),
                    trade_entry=parse_decimal(raw.get("Entry") or "", default=""),
                    trade_exit=parse_decimal(raw.get("Exit") or "", default=""),
                    profit_amount=parse_decimal(raw.get("Profit") or ""),
                    loss_amount=parse_decimal(raw.get("Loss") or ""),
                    brokerage=parse_decimal(raw.get("Brokerage") or ""),
                    trade_logic=(raw.get("TradeLogic") or "").strip(),
                    mistakes=_optional(raw, "Mistakes"),
                    broker_name=_optional(raw, "Broker"),
                    segment=_optional(raw, "Segment"),
                    purpose=_optional(raw, "Purpose"),
                )
            )
        except Exception as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def _amount(cents: int) -> str:
    return f"{Decimal(cents) / 100:.2f}"


def _price(micros: int) -> str:
    return f"{Decimal(micros) / 1_000_000:.4f}"


def export_journal(entries: Sequence[JournalEntry]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADER)
    for entry in entries:
        writer.writerow(
            [
                entry.trade_date.isoformat(),
                sanitize_csv_value(entry.category.name if entry.category else ""),
                sanitize_csv_value(
                    entry.subcategory.name if entry.subcategory else ""
                ),
                entry.sequence_no,
                _price(entry.trade_entry_micros),
                _price(entry.trade_exit_micros),
                _amount(entry.profit_cents),
                _amount(entry.loss_cents),
                _amount(entry.brokerage_cents),
                _amount(entry.net_pnl_cents),
                sanitize_csv_value(entry.trade_logic or ""),
                sanitize_csv_value(entry.mistakes or ""),
                sanitize_csv_value(entry.broker_name or ""),
                sanitize_csv_value(entry.segment or ""),
                sanitize_csv_value(entry.purpose or ""),
            ]
        )
    return output.getvalue()
