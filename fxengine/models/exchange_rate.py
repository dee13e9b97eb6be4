"""
Exchange rate model: one row per (date, currency, type).

STORAGE CONVENTION (must never change):
  - Fiat currencies:   rate = units of currency per 1 USD  (ARS 1415 → 1415 ARS = 1 USD)
  - Crypto currencies: rate = USD per 1 unit               (BTC 50000 → 1 BTC = 50000 USD)

Which convention applies is decided by fxengine.services.conversion.CurrencyClassifier,
never by the shape of the currency code.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fxengine.database import Base

DEFAULT_RATE_TYPE = "official"

# Bounds of the NUMERIC(18, 6) rate column
RATE_QUANTUM = Decimal("0.000001")
MAX_RATE = Decimal("1000000000000")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExchangeRate(Base):
    __tablename__ = "exchange_rate"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Effective day, stored at 00:00 UTC
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # Rate source tag: official, blue, mep, crypto, ...
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=DEFAULT_RATE_TYPE, server_default=DEFAULT_RATE_TYPE
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "date", "currency", "type", name="uq_exchange_rate_date_currency_type"
        ),
        Index("idx_exchange_rate_currency_date", "currency", "date"),
    )
