"""initial trading journal schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "investment_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("name", name="uq_investment_category_name"),
    )

    op.create_table(
        "investment_subcategories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("investment_categories.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "category_id", "name", name="uq_investment_subcategory_category_name"
        ),
    )

    op.create_table(
        "deposit_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("investment_categories.id"),
            nullable=False,
        ),
        sa.Column(
            "subcategory_id",
            sa.Integer(),
            sa.ForeignKey("investment_subcategories.id"),
            nullable=False,
        ),
        sa.Column("deposit_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("risk_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reward_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("trading_days", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("traded_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ratio", sa.String(length=10)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "category_id", "subcategory_id", name="uq_deposit_rule_category_sub"
        ),
        sa.CheckConstraint("trading_days > 0", name="ck_deposit_rule_trading_days"),
        sa.CheckConstraint("traded_days >= 0", name="ck_deposit_rule_traded_days"),
    )

    op.create_table(
        "trading_journal",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trade_date", sa.Date(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("investment_categories.id"),
            nullable=False,
        ),
        sa.Column(
            "subcategory_id",
            sa.Integer(),
            sa.ForeignKey("investment_subcategories.id"),
            nullable=False,
        ),
        sa.Column("sequence_no", sa.Integer(), nullable=False),
        sa.Column("trade_entry_micros", sa.BigInteger(), nullable=False),
        sa.Column("trade_exit_micros", sa.BigInteger(), nullable=False),
        sa.Column("profit_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("loss_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("brokerage_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("trade_logic", sa.Text(), nullable=False),
        sa.Column("mistakes", sa.Text()),
        sa.Column("broker_name", sa.String(length=100)),
        sa.Column("segment", sa.String(length=100)),
        sa.Column("purpose", sa.String(length=200)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "trade_date",
            "category_id",
            "subcategory_id",
            "sequence_no",
            name="uq_journal_group_sequence",
        ),
        sa.CheckConstraint(
            "sequence_no >= 1 AND sequence_no <= 3", name="ck_journal_sequence_range"
        ),
        sa.CheckConstraint("profit_cents >= 0", name="ck_journal_profit_positive"),
        sa.CheckConstraint("loss_cents >= 0", name="ck_journal_loss_positive"),
        sa.CheckConstraint(
            "brokerage_cents >= 0", name="ck_journal_brokerage_positive"
        ),
    )
    op.create_index(
        "ix_journal_group",
        "trading_journal",
        ["trade_date", "category_id", "subcategory_id"],
    )

    op.create_table(
        "journal_group_locks",
        sa.Column("trade_date", sa.Date(), primary_key=True),
        sa.Column("category_id", sa.Integer(), primary_key=True),
        sa.Column("subcategory_id", sa.Integer(), primary_key=True),
    )


def downgrade():
    op.drop_table("journal_group_locks")
    op.drop_index("ix_journal_group", table_name="trading_journal")
    op.drop_table("trading_journal")
    op.drop_table("deposit_rules")
    op.drop_table("investment_subcategories")
    op.drop_table("investment_categories")
