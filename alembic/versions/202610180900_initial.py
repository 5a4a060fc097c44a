"""initial income ledger schema

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


INCOME_FREQUENCY = sa.Enum(
    "WEEKLY", "BIWEEKLY", "MONTHLY", "CUSTOM", "MANUAL", name="incomefrequency"
)


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=7)),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("archived_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "income_sources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("frequency", INCOME_FREQUENCY, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("day_of_week", sa.Integer()),
        sa.Column("day_of_month", sa.Integer()),
        sa.Column("custom_dates_json", sa.Text()),
        sa.Column("auto_add", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("original_amount_cents", sa.Integer()),
        sa.Column("original_currency", sa.String(length=10)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_income_source_amount_positive"
        ),
        sa.CheckConstraint(
            "day_of_week IS NULL OR (day_of_week BETWEEN 0 AND 6)",
            name="ck_income_source_day_of_week",
        ),
        sa.CheckConstraint(
            "day_of_month IS NULL OR (day_of_month BETWEEN 1 AND 31)",
            name="ck_income_source_day_of_month",
        ),
    )
    op.create_index(
        "ix_income_sources_user_active", "income_sources", ["user_id", "is_active"]
    )

    op.create_table(
        "income_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "income_source_id",
            sa.Integer(),
            sa.ForeignKey("income_sources.id", ondelete="SET NULL"),
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "auto_added", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("original_amount_cents", sa.Integer()),
        sa.Column("original_currency", sa.String(length=10)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_income_transactions_amount_positive"
        ),
    )
    op.create_index(
        "uq_income_txn_auto_posting",
        "income_transactions",
        ["user_id", "income_source_id", "date"],
        unique=True,
        sqlite_where=sa.text("auto_added = 1"),
        postgresql_where=sa.text("auto_added"),
    )
    op.create_index(
        "ix_income_transactions_user_date",
        "income_transactions",
        ["user_id", "date"],
    )
    op.create_index(
        "ix_income_transactions_user_source_date",
        "income_transactions",
        ["user_id", "income_source_id", "date"],
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("description", sa.Text()),
        sa.Column("original_amount_cents", sa.Integer()),
        sa.Column("original_currency", sa.String(length=10)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_user_category_date",
        "expenses",
        ["user_id", "category_id", "date"],
    )

    op.create_table(
        "ledger_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "starting_balance_cents",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_ledger_account_user"),
    )


def downgrade():
    op.drop_table("ledger_accounts")
    op.drop_index("ix_expenses_user_category_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index(
        "ix_income_transactions_user_source_date", table_name="income_transactions"
    )
    op.drop_index("ix_income_transactions_user_date", table_name="income_transactions")
    op.drop_index("uq_income_txn_auto_posting", table_name="income_transactions")
    op.drop_table("income_transactions")
    op.drop_index("ix_income_sources_user_active", table_name="income_sources")
    op.drop_table("income_sources")
    op.drop_table("categories")
    INCOME_FREQUENCY.drop(op.get_bind(), checkfirst=True)
