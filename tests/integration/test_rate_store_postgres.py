"""
Integration tests against a real Postgres.

Set TEST_DATABASE_URL (postgresql+asyncpg://...) to run; the tables are
created and dropped around every test, so point it at a scratch database.
"""

import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import fxengine.models  # noqa: F401
from fxengine.database import Base
from fxengine.models.exchange_rate import ExchangeRate
from fxengine.models.favorite import ExchangeRateFavorite
from fxengine.services import favorites_service, rate_store
from fxengine.services.rate_store import ParsedRate

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]

DAY = datetime(2026, 3, 5, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def _count(db) -> int:
    return (await db.execute(select(func.count(ExchangeRate.id)))).scalar()


@pytest.mark.asyncio
async def test_sync_is_idempotent_per_day(db):
    entries = [
        ParsedRate(currency="ARS", type="official", rate=Decimal("1415")),
        ParsedRate(currency="ARS", type="blue", rate=Decimal("1480")),
    ]
    await rate_store.upsert_rates(db, entries, DAY)
    await db.commit()
    await rate_store.upsert_rates(db, entries, DAY)
    await db.commit()
    assert await _count(db) == 2

    # a changed value updates in place
    await rate_store.upsert_rates(
        db, [ParsedRate(currency="ARS", type="blue", rate=Decimal("1500"))], DAY
    )
    await db.commit()
    assert await _count(db) == 2
    row = await rate_store.get_rate(db, "ARS", "blue")
    assert Decimal(str(row.rate)) == Decimal("1500")


@pytest.mark.asyncio
async def test_best_rate_and_crypto_detection(db):
    await rate_store.upsert_rates(
        db,
        [
            ParsedRate(currency="ARS", type="official", rate=Decimal("1415")),
            ParsedRate(currency="ARS", type="blue", rate=Decimal("1480")),
            ParsedRate(currency="SOL", type="crypto", rate=Decimal("150")),
            ParsedRate(currency="PEP", type="crypto", rate=Decimal("0.5")),
        ],
        DAY,
    )
    await db.commit()

    best = await rate_store.get_best_exchange_rate(db, "ARS")
    assert best.type == "blue"
    assert await rate_store.get_best_exchange_rate(db, "VES") is None

    classifier = await rate_store.load_classifier(db)
    assert classifier.is_crypto("PEP") is True
    assert classifier.is_crypto("ARS") is False


@pytest.mark.asyncio
async def test_reorder_never_violates_unique_order(db):
    await rate_store.upsert_rates(
        db,
        [
            ParsedRate(currency="ARS", type="official", rate=Decimal("1415")),
            ParsedRate(currency="ARS", type="blue", rate=Decimal("1480")),
            ParsedRate(currency="BRL", type="official", rate=Decimal("5.1")),
        ],
        DAY,
    )
    rows = (await db.execute(select(ExchangeRate).order_by(ExchangeRate.currency, ExchangeRate.type))).scalars().all()
    a, b, c = (r.id for r in rows)

    for rate_id in (a, b, c):
        assert await favorites_service.toggle_favorite(db, "user-1", rate_id) is True
    await db.commit()

    await favorites_service.reorder_favorites(db, "user-1", [c, a, b])
    await db.commit()

    result = await db.execute(
        select(ExchangeRateFavorite.exchange_rate_id, ExchangeRateFavorite.order)
        .where(ExchangeRateFavorite.user_id == "user-1")
        .order_by(ExchangeRateFavorite.order)
    )
    assert [(rid, order) for rid, order in result.all()] == [(c, 0), (a, 1), (b, 2)]

    # toggling off and back on appends at the end
    assert await favorites_service.toggle_favorite(db, "user-1", a) is False
    assert await favorites_service.toggle_favorite(db, "user-1", a) is True
    await db.commit()
    favorites = await favorites_service.list_favorites(db, "user-1")
    assert [f.exchange_rate_id for f in favorites] == [c, b, a]
