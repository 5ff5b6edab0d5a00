from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


PRICE_PLACES = 4
AMOUNT_PLACES = 2
# largest values whose micros/cents still fit a signed 64-bit column
PRICE_MAX = Decimal("999999999999.9999")
AMOUNT_MAX = Decimal("9999999999999.99")


def decimal_places(value: object) -> Optional[int]:
    """Number of fractional digits as written, or None when not a finite number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not dec.is_finite():
        return None
    exponent = dec.as_tuple().exponent
    return max(0, -int(exponent))


def _check_places(value: object, places: int, field: str) -> object:
    found = decimal_places(value)
    if found is not None and found > places:
        raise ValueError(f"{field} must have at most {places} decimals")
    return value


class InvestmentCategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class InvestmentSubcategoryIn(BaseModel):
    category_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=100)


class DepositRuleIn(BaseModel):
    category_id: int = Field(..., gt=0)
    subcategory_id: int = Field(..., gt=0)
    deposit_amount: Decimal = Field(..., ge=0, le=AMOUNT_MAX)
    risk: Decimal = Field(..., ge=0, le=AMOUNT_MAX)
    reward: Decimal = Field(..., ge=0, le=AMOUNT_MAX)
    trading_days: int = Field(..., gt=0)
    ratio: Optional[str] = Field(default=None, max_length=10)

    @field_validator("deposit_amount", "risk", "reward", mode="before")
    @classmethod
    def _amount_places(cls, value, info):
        return _check_places(value, AMOUNT_PLACES, info.field_name)


class DepositRulePatch(BaseModel):
    deposit_amount: Optional[Decimal] = Field(default=None, ge=0, le=AMOUNT_MAX)
    risk: Optional[Decimal] = Field(default=None, ge=0, le=AMOUNT_MAX)
    reward: Optional[Decimal] = Field(default=None, ge=0, le=AMOUNT_MAX)
    trading_days: Optional[int] = Field(default=None, gt=0)
    traded_days: Optional[int] = Field(default=None, ge=0)
    ratio: Optional[str] = Field(default=None, max_length=10)

    @field_validator("deposit_amount", "risk", "reward", mode="before")
    @classmethod
    def _amount_places(cls, value, info):
        return _check_places(value, AMOUNT_PLACES, info.field_name)


class TradedDaysAdjust(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    add: Optional[int] = None
    set_to: Optional[int] = Field(default=None, alias="set")


class JournalEntryIn(BaseModel):
    trade_date: Optional[date] = None
    category_id: int = Field(..., gt=0)
    subcategory_id: int = Field(..., gt=0)
    trade_entry: Decimal = Field(..., ge=-PRICE_MAX, le=PRICE_MAX)
    trade_exit: Decimal = Field(..., ge=-PRICE_MAX, le=PRICE_MAX)
    profit_amount: Decimal = Field(default=Decimal("0"), ge=0, le=AMOUNT_MAX)
    loss_amount: Decimal = Field(default=Decimal("0"), ge=0, le=AMOUNT_MAX)
    brokerage: Decimal = Field(default=Decimal("0"), ge=0, le=AMOUNT_MAX)
    trade_logic: str = Field(..., max_length=2000)
    mistakes: Optional[str] = Field(default=None, max_length=2000)
    broker_name: Optional[str] = Field(default=None, max_length=100)
    segment: Optional[str] = Field(default=None, max_length=100)
    purpose: Optional[str] = Field(default=None, max_length=200)

    @field_validator("trade_entry", "trade_exit", mode="before")
    @classmethod
    def _price_places(cls, value, info):
        return _check_places(value, PRICE_PLACES, info.field_name)

    @field_validator("profit_amount", "loss_amount", "brokerage", mode="before")
    @classmethod
    def _amount_places(cls, value, info):
        return _check_places(value, AMOUNT_PLACES, info.field_name)

    @field_validator("trade_logic")
    @classmethod
    def _logic_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("trade_logic is required")
        return value.strip()


class JournalEntryPatch(BaseModel):
    """Partial update; unknown keys (including sequence_no) are ignored."""

    model_config = ConfigDict(extra="ignore")

    trade_date: Optional[date] = None
    category_id: Optional[int] = Field(default=None, gt=0)
    subcategory_id: Optional[int] = Field(default=None, gt=0)
    trade_entry: Optional[Decimal] = Field(default=None, ge=-PRICE_MAX, le=PRICE_MAX)
    trade_exit: Optional[Decimal] = Field(default=None, ge=-PRICE_MAX, le=PRICE_MAX)
    profit_amount: Optional[Decimal] = Field(default=None, ge=0, le=AMOUNT_MAX)
    loss_amount: Optional[Decimal] = Field(default=None, ge=0, le=AMOUNT_MAX)
    brokerage: Optional[Decimal] = Field(default=None, ge=0, le=AMOUNT_MAX)
    trade_logic: Optional[str] = Field(default=None, max_length=2000)
    mistakes: Optional[str] = Field(default=None, max_length=2000)
    broker_name: Optional[str] = Field(default=None, max_length=100)
    segment: Optional[str] = Field(default=None, max_length=100)
    purpose: Optional[str] = Field(default=None, max_length=200)

    @field_validator("trade_entry", "trade_exit", mode="before")
    @classmethod
    def _price_places(cls, value, info):
        return _check_places(value, PRICE_PLACES, info.field_name)

    @field_validator("profit_amount", "loss_amount", "brokerage", mode="before")
    @classmethod
    def _amount_places(cls, value, info):
        return _check_places(value, AMOUNT_PLACES, info.field_name)


class JournalCSVRow(BaseModel):
    row_number: int
    trade_date: date
    category: str
    subcategory: str
    trade_entry: Decimal
    trade_exit: Decimal
    profit_amount: Decimal
    loss_amount: Decimal
    brokerage: Decimal
    trade_logic: str
    mistakes: Optional[str] = None
    broker_name: Optional[str] = None
    segment: Optional[str] = None
    purpose: Optional[str] = None
