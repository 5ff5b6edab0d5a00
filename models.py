from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class InvestmentCategory(Base, TimestampMixin):
    __tablename__ = "investment_categories"
    __table_args__ = (UniqueConstraint("name", name="uq_investment_category_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    subcategories: Mapped[list["InvestmentSubcategory"]] = relationship(
        "InvestmentSubcategory", back_populates="category"
    )


class InvestmentSubcategory(Base, TimestampMixin):
    __tablename__ = "investment_subcategories"
    __table_args__ = (
        UniqueConstraint(
            "category_id", "name", name="uq_investment_subcategory_category_name"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("investment_categories.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    category: Mapped["InvestmentCategory"] = relationship(
        "InvestmentCategory", back_populates="subcategories"
    )


class DepositRule(Base, TimestampMixin):
    """Capital and risk/reward plan for one category/subcategory pair."""

    __tablename__ = "deposit_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("investment_categories.id"), nullable=False
    )
    subcategory_id: Mapped[int] = mapped_column(
        ForeignKey("investment_subcategories.id"), nullable=False
    )
    deposit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    risk_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    reward_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    trading_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    traded_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ratio: Mapped[Optional[str]] = mapped_column(String(10))

    category: Mapped["InvestmentCategory"] = relationship("InvestmentCategory")
    subcategory: Mapped["InvestmentSubcategory"] = relationship(
        "InvestmentSubcategory"
    )

    __table_args__ = (
        UniqueConstraint(
            "category_id", "subcategory_id", name="uq_deposit_rule_category_sub"
        ),
        CheckConstraint("trading_days > 0", name="ck_deposit_rule_trading_days"),
        CheckConstraint("traded_days >= 0", name="ck_deposit_rule_traded_days"),
    )


class JournalEntry(Base, TimestampMixin):
    __tablename__ = "trading_journal"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    trade_date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("investment_categories.id"), nullable=False
    )
    subcategory_id: Mapped[int] = mapped_column(
        ForeignKey("investment_subcategories.id"), nullable=False
    )
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    trade_entry_micros: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trade_exit_micros: Mapped[int] = mapped_column(BigInteger, nullable=False)
    profit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    loss_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    brokerage_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    trade_logic: Mapped[str] = mapped_column(Text, nullable=False)
    mistakes: Mapped[Optional[str]] = mapped_column(Text)
    broker_name: Mapped[Optional[str]] = mapped_column(String(100))
    segment: Mapped[Optional[str]] = mapped_column(String(100))
    purpose: Mapped[Optional[str]] = mapped_column(String(200))

    category: Mapped["InvestmentCategory"] = relationship("InvestmentCategory")
    subcategory: Mapped["InvestmentSubcategory"] = relationship(
        "InvestmentSubcategory"
    )

    __table_args__ = (
        UniqueConstraint(
            "trade_date",
            "category_id",
            "subcategory_id",
            "sequence_no",
            name="uq_journal_group_sequence",
        ),
        CheckConstraint(
            "sequence_no >= 1 AND sequence_no <= 3", name="ck_journal_sequence_range"
        ),
        CheckConstraint("profit_cents >= 0", name="ck_journal_profit_positive"),
        CheckConstraint("loss_cents >= 0", name="ck_journal_loss_positive"),
        CheckConstraint("brokerage_cents >= 0", name="ck_journal_brokerage_positive"),
        Index(
            "ix_journal_group",
            "trade_date",
            "category_id",
            "subcategory_id",
        ),
    )

    @property
    def net_pnl_cents(self) -> int:
        return self.profit_cents - self.loss_cents - self.brokerage_cents


class JournalGroupLock(Base):
    """One row per journal group; locked to serialise writers of that group."""

    __tablename__ = "journal_group_locks"

    trade_date: Mapped[date] = mapped_column(Date, primary_key=True)
    category_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subcategory_id: Mapped[int] = mapped_column(Integer, primary_key=True)
