"""Settlement forecasting schema.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MARKETPLACE_STATUS_FILTER = "status IN ('estimated', 'confirmed')"


def upgrade() -> None:
    payout_model = sa.Enum("daily", "bi_weekly", name="payout_model")
    settlement_status = sa.Enum(
        "forecasted", "estimated", "confirmed", "rolled_over", name="settlement_status"
    )
    draw_source = sa.Enum("manual", "cash_out_detected", name="draw_source")

    op.create_table(
        "seller_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("marketplace_name", sa.String(length=100), nullable=False, server_default="United States"),
        sa.Column("currency_code", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("payout_model", payout_model, nullable=False, server_default="daily"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_seller_accounts_id", "seller_accounts", ["id"])
    op.create_index("ix_seller_accounts_code", "seller_accounts", ["code"], unique=True)

    op.create_table(
        "settlement_periods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("seller_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("settlement_id", sa.String(length=120), nullable=False),
        sa.Column("status", settlement_status, nullable=False),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("payout_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Numeric(24, 2), nullable=False, server_default="0"),
        sa.Column("beginning_balance", sa.Numeric(24, 2), nullable=True),
        sa.Column("currency_code", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("fund_transfer_status", sa.String(length=50), nullable=True),
        sa.Column("forecast_date", sa.Date(), nullable=True),
        sa.Column("source_settlement_id", sa.String(length=120), nullable=True),
        sa.Column("cumulative_available", sa.Numeric(24, 2), nullable=True),
        sa.Column("days_accumulated", sa.Integer(), nullable=True),
        sa.Column("modeling_method", sa.String(length=50), nullable=True),
        sa.Column("forecast_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_settlement_periods_id", "settlement_periods", ["id"])
    op.create_index("ix_settlement_periods_account_id", "settlement_periods", ["account_id"])
    op.create_index("ix_settlement_periods_source_settlement_id", "settlement_periods", ["source_settlement_id"])
    op.create_index("ix_settlement_periods_account_status", "settlement_periods", ["account_id", "status"])
    op.create_index(
        "ix_settlement_periods_forecast_date", "settlement_periods", ["account_id", "forecast_date"]
    )
    op.create_index(
        "uq_settlement_periods_account_settlement",
        "settlement_periods",
        ["account_id", "settlement_id"],
        unique=True,
        postgresql_where=sa.text(MARKETPLACE_STATUS_FILTER),
        sqlite_where=sa.text(MARKETPLACE_STATUS_FILTER),
    )

    op.create_table(
        "daily_draws",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("seller_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("settlement_id", sa.String(length=120), nullable=False),
        sa.Column("draw_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("source", draw_source, nullable=False, server_default="manual"),
        sa.Column("settlement_period_start", sa.Date(), nullable=True),
        sa.Column("settlement_period_end", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_daily_draws_amount_positive"),
    )
    op.create_index("ix_daily_draws_id", "daily_draws", ["id"])
    op.create_index("ix_daily_draws_account_settlement", "daily_draws", ["account_id", "settlement_id"])
    op.create_index("ix_daily_draws_account_date", "daily_draws", ["account_id", "draw_date"])

    op.create_table(
        "forecast_accuracy_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("seller_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("settlement_id", sa.String(length=120), nullable=False),
        sa.Column("settlement_period_start", sa.Date(), nullable=True),
        sa.Column("settlement_period_end", sa.Date(), nullable=False),
        sa.Column("payout_date", sa.Date(), nullable=True),
        sa.Column("days_accumulated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("forecasted_amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("forecasted_amounts_by_day", sa.JSON(), nullable=False),
        sa.Column("actual_amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("difference_amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("difference_percentage", sa.Numeric(12, 6), nullable=False),
        sa.Column("modeling_method", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_forecast_accuracy_log_id", "forecast_accuracy_log", ["id"])
    op.create_index("ix_forecast_accuracy_log_account_id", "forecast_accuracy_log", ["account_id"])
    op.create_index(
        "ix_forecast_accuracy_log_settlement_id", "forecast_accuracy_log", ["settlement_id"], unique=True
    )

    op.create_table(
        "daily_sales_volumes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("seller_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sales_date", sa.Date(), nullable=False),
        sa.Column("net_amount", sa.Numeric(24, 2), nullable=False),
        sa.UniqueConstraint("account_id", "sales_date", name="uq_daily_sales_volumes_account_date"),
    )
    op.create_index("ix_daily_sales_volumes_id", "daily_sales_volumes", ["id"])
    op.create_index("ix_daily_sales_volumes_account_id", "daily_sales_volumes", ["account_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("seller_accounts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("settlement_id", sa.String(length=120), nullable=True),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=120), nullable=False),
        sa.Column("before_state", sa.JSON(), nullable=True),
        sa.Column("after_state", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_id", "audit_logs", ["id"])
    op.create_index("ix_audit_logs_account_id", "audit_logs", ["account_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_account_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_daily_sales_volumes_account_id", table_name="daily_sales_volumes")
    op.drop_index("ix_daily_sales_volumes_id", table_name="daily_sales_volumes")
    op.drop_table("daily_sales_volumes")

    op.drop_index("ix_forecast_accuracy_log_settlement_id", table_name="forecast_accuracy_log")
    op.drop_index("ix_forecast_accuracy_log_account_id", table_name="forecast_accuracy_log")
    op.drop_index("ix_forecast_accuracy_log_id", table_name="forecast_accuracy_log")
    op.drop_table("forecast_accuracy_log")

    op.drop_index("ix_daily_draws_account_date", table_name="daily_draws")
    op.drop_index("ix_daily_draws_account_settlement", table_name="daily_draws")
    op.drop_index("ix_daily_draws_id", table_name="daily_draws")
    op.drop_table("daily_draws")

    op.drop_index("uq_settlement_periods_account_settlement", table_name="settlement_periods")
    op.drop_index("ix_settlement_periods_forecast_date", table_name="settlement_periods")
    op.drop_index("ix_settlement_periods_account_status", table_name="settlement_periods")
    op.drop_index("ix_settlement_periods_source_settlement_id", table_name="settlement_periods")
    op.drop_index("ix_settlement_periods_account_id", table_name="settlement_periods")
    op.drop_index("ix_settlement_periods_id", table_name="settlement_periods")
    op.drop_table("settlement_periods")

    op.drop_index("ix_seller_accounts_code", table_name="seller_accounts")
    op.drop_index("ix_seller_accounts_id", table_name="seller_accounts")
    op.drop_table("seller_accounts")

    sa.Enum(name="draw_source").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="settlement_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="payout_model").drop(op.get_bind(), checkfirst=True)
