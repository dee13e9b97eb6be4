"""create exchange rate, favorite and wealth snapshot tables

Revision ID: 3f8a1c2d9e40
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "3f8a1c2d9e40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "exchange_rate",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="official"),
        sa.Column("rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "date", "currency", "type", name="uq_exchange_rate_date_currency_type"
        ),
    )
    op.create_index(
        "idx_exchange_rate_currency_date", "exchange_rate", ["currency", "date"]
    )

    op.create_table(
        "exchange_rate_favorite",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("exchange_rate_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(
            ["exchange_rate_id"], ["exchange_rate.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "exchange_rate_id", name="uq_favorite_user_exchange_rate"
        ),
        sa.UniqueConstraint("user_id", "order", name="uq_favorite_user_order"),
    )

    # Wealth tables; no-op where the finance tracker already created them
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS asset_account (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id VARCHAR(64) NOT NULL,
            name VARCHAR(255) NOT NULL,
            currency VARCHAR(10) NOT NULL,
            balance NUMERIC(19, 8) NOT NULL
        )
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS asset_snapshot (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            account_id UUID NOT NULL REFERENCES asset_account(id) ON DELETE CASCADE,
            date TIMESTAMPTZ NOT NULL,
            balance NUMERIC(19, 8) NOT NULL,
            balance_in_usd NUMERIC(12, 2) NOT NULL,
            CONSTRAINT uq_asset_snapshot_account_date UNIQUE (account_id, date)
        )
        """
    )


def downgrade() -> None:
    # asset_account / asset_snapshot may predate this revision; leave them
    op.drop_table("exchange_rate_favorite")
    op.drop_index("idx_exchange_rate_currency_date", table_name="exchange_rate")
    op.drop_table("exchange_rate")
