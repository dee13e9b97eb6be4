"""
Exchange rate persistence.

Rows are keyed by (date, currency, type). Writes go through a single
INSERT ... ON CONFLICT DO UPDATE so re-running a sync for the same day,
or two syncs racing each other, never duplicates rows.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fxengine.models.exchange_rate import ExchangeRate
from fxengine.services.conversion import (
    BASE_CURRENCY,
    CurrencyClassifier,
    default_classifier,
)

logger = structlog.get_logger()

CRYPTO_RATE_TYPE = "crypto"
BEST_RATE_LOOKBACK_ROWS = 10
MAX_LIST_LIMIT = 1000


@dataclass(frozen=True)
class ParsedRate:
    currency: str
    type: str
    rate: Decimal


@dataclass(frozen=True)
class BestRate:
    rate: Decimal
    type: str


def utc_midnight(day: Optional[date] = None) -> datetime:
    """The stored timestamp for a calendar day: 00:00 UTC."""
    if day is None:
        day = datetime.now(timezone.utc).date()
    elif isinstance(day, datetime):
        day = day.astimezone(timezone.utc).date() if day.tzinfo else day.date()
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def build_upsert_statement(entries: list[ParsedRate], day: datetime):
    now = datetime.now(timezone.utc)
    stmt = pg_insert(ExchangeRate).values(
        [
            {
                "date": day,
                "currency": e.currency,
                "type": e.type,
                "rate": e.rate,
                "created_at": now,
                "updated_at": now,
            }
            for e in entries
        ]
    )
    return stmt.on_conflict_do_update(
        index_elements=[ExchangeRate.date, ExchangeRate.currency, ExchangeRate.type],
        set_={"rate": stmt.excluded.rate, "updated_at": stmt.excluded.updated_at},
    )


async def upsert_rates(
    db: AsyncSession, entries: list[ParsedRate], day: Optional[datetime] = None
) -> int:
    """Upsert all entries for one day in a single statement. Returns the entry count."""
    if not entries:
        return 0
    effective = day or utc_midnight()
    await db.execute(build_upsert_statement(entries, effective))
    logger.info("exchange_rates_upserted", count=len(entries), date=effective.date().isoformat())
    return len(entries)


async def save_manual_rate(
    db: AsyncSession,
    currency: str,
    rate_type: str,
    rate: Decimal,
    day: Optional[date] = None,
) -> ExchangeRate:
    """Administrative manual entry; same upsert path as the sync job."""
    effective = utc_midnight(day)
    entry = ParsedRate(currency=currency.upper(), type=rate_type.lower(), rate=rate)
    await upsert_rates(db, [entry], effective)
    row = await db.execute(
        select(ExchangeRate).where(
            ExchangeRate.date == effective,
            ExchangeRate.currency == entry.currency,
            ExchangeRate.type == entry.type,
        )
        .execution_options(populate_existing=True)
    )
    return row.scalar_one()


def _latest_per_key(rows: Iterable[ExchangeRate], key) -> list[ExchangeRate]:
    # rows arrive newest first; keep the first row seen per key
    seen = set()
    latest = []
    for row in rows:
        k = key(row)
        if k in seen:
            continue
        seen.add(k)
        latest.append(row)
    return latest


async def get_rates_for_currency(
    db: AsyncSession, currency: str, as_of: Optional[datetime] = None
) -> list[ExchangeRate]:
    """Latest stored rate of every type for a currency, ordered by date desc, type asc."""
    q = (
        select(ExchangeRate)
        .where(ExchangeRate.currency == currency.upper())
        .order_by(ExchangeRate.date.desc(), ExchangeRate.type.asc())
    )
    if as_of is not None:
        q = q.where(ExchangeRate.date <= as_of)
    result = await db.execute(q)
    return _latest_per_key(result.scalars().all(), key=lambda r: r.type)


async def get_rate(
    db: AsyncSession, currency: str, rate_type: str
) -> Optional[ExchangeRate]:
    result = await db.execute(
        select(ExchangeRate)
        .where(
            ExchangeRate.currency == currency.upper(),
            ExchangeRate.type == rate_type.lower(),
        )
        .order_by(ExchangeRate.date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_rate_by_id(db: AsyncSession, rate_id) -> Optional[ExchangeRate]:
    result = await db.execute(select(ExchangeRate).where(ExchangeRate.id == rate_id))
    return result.scalar_one_or_none()


async def list_rates(
    db: AsyncSession,
    currency: Optional[str] = None,
    rate_type: Optional[str] = None,
    limit: int = MAX_LIST_LIMIT,
) -> list[ExchangeRate]:
    """Latest row per (currency, type), ordered by currency then type."""
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    q = select(ExchangeRate).order_by(
        ExchangeRate.currency.asc(), ExchangeRate.type.asc(), ExchangeRate.date.desc()
    )
    if currency:
        q = q.where(ExchangeRate.currency == currency.upper())
    if rate_type:
        q = q.where(ExchangeRate.type == rate_type.lower())
    result = await db.execute(q)
    latest = _latest_per_key(result.scalars().all(), key=lambda r: (r.currency, r.type))
    return latest[:limit]


async def get_last_sync(db: AsyncSession) -> Optional[datetime]:
    result = await db.execute(select(func.max(ExchangeRate.date)))
    return result.scalar()


async def get_last_updated_at(db: AsyncSession) -> Optional[datetime]:
    result = await db.execute(select(func.max(ExchangeRate.updated_at)))
    return result.scalar()


async def get_crypto_currencies(db: AsyncSession) -> set[str]:
    result = await db.execute(
        select(ExchangeRate.currency)
        .where(ExchangeRate.type == CRYPTO_RATE_TYPE)
        .distinct()
    )
    return {row[0] for row in result.all()}


async def load_classifier(db: AsyncSession) -> CurrencyClassifier:
    """Configured crypto tickers plus every currency that has a crypto-typed row."""
    return default_classifier.with_currencies(await get_crypto_currencies(db))


def pick_best_rate(rows: list[ExchangeRate]) -> Optional[BestRate]:
    """Priority: crypto > blue > official > first available (rows newest first)."""
    if not rows:
        return None
    for preferred in (CRYPTO_RATE_TYPE, "blue", "official"):
        for row in rows:
            if row.type == preferred:
                return BestRate(rate=Decimal(str(row.rate)), type=row.type)
    first = rows[0]
    return BestRate(rate=Decimal(str(first.rate)), type=first.type)


async def get_best_exchange_rate(
    db: AsyncSession, currency: str, as_of: Optional[datetime] = None
) -> Optional[BestRate]:
    """Best available rate for a currency on or before as_of (defaults to now)."""
    if currency == BASE_CURRENCY:
        return BestRate(rate=Decimal("1"), type="official")

    cutoff = as_of or datetime.now(timezone.utc)
    result = await db.execute(
        select(ExchangeRate)
        .where(ExchangeRate.currency == currency, ExchangeRate.date <= cutoff)
        .order_by(ExchangeRate.date.desc(), ExchangeRate.type.asc())
        .limit(BEST_RATE_LOOKBACK_ROWS)
    )
    best = pick_best_rate(list(result.scalars().all()))
    if best is None:
        logger.warning("exchange_rate_not_found", currency=currency, as_of=cutoff.isoformat())
    return best
