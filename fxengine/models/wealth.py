"""
Wealth tables owned by the finance tracker.

Mapped here only so the snapshot repair tool can read balances and rewrite
balance_in_usd. The engine never creates these rows.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fxengine.database import Base


class AssetAccount(Base):
    __tablename__ = "asset_account"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(19, 8), nullable=False)


class AssetSnapshot(Base):
    __tablename__ = "asset_snapshot"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("asset_account.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Native-currency balance
    balance: Mapped[Decimal] = mapped_column(Numeric(19, 8), nullable=False)
    balance_in_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    account: Mapped[AssetAccount] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("account_id", "date", name="uq_asset_snapshot_account_date"),
    )
