"""
User favorite exchange rates.

(user_id, order) is unique, so reordering is done in two phases inside the
caller's transaction:
  1. every affected row moves to a distinct negative slot (-1 - index)
  2. every affected row moves to its final slot
Writing final orders directly would collide mid-batch with a row that still
holds that order.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fxengine.models.favorite import ExchangeRateFavorite
from fxengine.services import rate_store
from fxengine.services.rate_resolution import FavoriteRate

logger = structlog.get_logger()


class ExchangeRateNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class ReorderPlan:
    temporary: list[tuple[str, int]]
    final: list[tuple[str, int]]


def plan_reorder(current: dict[str, int], requested_ids: Sequence[str]) -> ReorderPlan:
    """
    Compute both phases of a reorder.

    current maps exchange_rate_id → current order for the user's favorites.
    Ids that are not favorites are ignored, duplicates keep their first position.
    When every favorite is listed, orders are compacted to 0..n-1; for a partial
    list the affected rows reuse their own current slots so untouched rows never
    collide.
    """
    affected: list[str] = []
    for rate_id in requested_ids:
        if rate_id in current and rate_id not in affected:
            affected.append(rate_id)

    if len(affected) == len(current):
        slots = list(range(len(affected)))
    else:
        slots = sorted(current[rate_id] for rate_id in affected)

    return ReorderPlan(
        temporary=[(rate_id, -1 - index) for index, rate_id in enumerate(affected)],
        final=list(zip(affected, slots)),
    )


async def list_favorites(db: AsyncSession, user_id: str) -> list[ExchangeRateFavorite]:
    result = await db.execute(
        select(ExchangeRateFavorite)
        .where(ExchangeRateFavorite.user_id == user_id)
        .order_by(ExchangeRateFavorite.order.asc())
    )
    return list(result.scalars().all())


def to_favorite_rates(favorites: Sequence[ExchangeRateFavorite]) -> list[FavoriteRate]:
    return [
        FavoriteRate(
            currency=f.exchange_rate.currency,
            type=f.exchange_rate.type,
            order=f.order,
        )
        for f in favorites
    ]


async def get_favorite_currencies(db: AsyncSession, user_id: str) -> list[str]:
    currencies: list[str] = []
    for favorite in await list_favorites(db, user_id):
        currency = favorite.exchange_rate.currency
        if currency not in currencies:
            currencies.append(currency)
    return currencies


async def toggle_favorite(db: AsyncSession, user_id: str, exchange_rate_id) -> bool:
    """Add or remove a favorite. Returns True when the rate is now a favorite."""
    rate = await rate_store.get_rate_by_id(db, exchange_rate_id)
    if rate is None:
        raise ExchangeRateNotFoundError("Exchange rate not found")

    existing = await db.execute(
        select(ExchangeRateFavorite).where(
            ExchangeRateFavorite.user_id == user_id,
            ExchangeRateFavorite.exchange_rate_id == rate.id,
        )
    )
    favorite = existing.scalar_one_or_none()
    if favorite is not None:
        await db.delete(favorite)
        await db.flush()
        logger.info("favorite_removed", user_id=user_id, exchange_rate_id=str(rate.id))
        return False

    max_order = await db.execute(
        select(func.max(ExchangeRateFavorite.order)).where(
            ExchangeRateFavorite.user_id == user_id
        )
    )
    current_max: Optional[int] = max_order.scalar()
    next_order = (current_max if current_max is not None else -1) + 1

    db.add(
        ExchangeRateFavorite(
            user_id=user_id, exchange_rate_id=rate.id, order=next_order
        )
    )
    await db.flush()
    logger.info(
        "favorite_added", user_id=user_id, exchange_rate_id=str(rate.id), order=next_order
    )
    return True


async def _write_orders(db: AsyncSession, user_id: str, writes: list[tuple[str, int]]):
    for rate_id, order in writes:
        await db.execute(
            update(ExchangeRateFavorite)
            .where(
                ExchangeRateFavorite.user_id == user_id,
                ExchangeRateFavorite.exchange_rate_id == uuid.UUID(rate_id),
            )
            .values(order=order)
        )


async def reorder_favorites(
    db: AsyncSession, user_id: str, exchange_rate_ids: Sequence[str]
) -> ReorderPlan:
    result = await db.execute(
        select(ExchangeRateFavorite.exchange_rate_id, ExchangeRateFavorite.order).where(
            ExchangeRateFavorite.user_id == user_id
        )
    )
    current = {str(rate_id): order for rate_id, order in result.all()}
    plan = plan_reorder(current, [str(i) for i in exchange_rate_ids])

    await _write_orders(db, user_id, plan.temporary)
    await _write_orders(db, user_id, plan.final)

    logger.info("favorites_reordered", user_id=user_id, count=len(plan.final))
    return plan
