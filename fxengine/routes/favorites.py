"""
Favorite exchange rates: /api/v1/favorites

Favorites are per user; their order drives both display ranking and the
default rate preselected for a currency.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fxengine.database import get_db
from fxengine.middleware.auth import get_current_user
from fxengine.routes.exchange_rates import to_response
from fxengine.schemas.favorites import (
    FavoriteResponse,
    ReorderFavoritesRequest,
    ReorderFavoritesResponse,
    ToggleFavoriteResponse,
)
from fxengine.services import favorites_service
from fxengine.services.favorites_service import ExchangeRateNotFoundError

router = APIRouter()


@router.get("", response_model=list[FavoriteResponse])
async def list_favorites(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    favorites = await favorites_service.list_favorites(db, current_user["user_id"])
    return [
        FavoriteResponse(
            id=str(f.exchange_rate_id),
            order=f.order,
            rate=to_response(f.exchange_rate),
        )
        for f in favorites
    ]


@router.get("/currencies", response_model=list[str])
async def favorite_currencies(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await favorites_service.get_favorite_currencies(db, current_user["user_id"])


@router.post("/{exchange_rate_id}/toggle", response_model=ToggleFavoriteResponse)
async def toggle_favorite(
    exchange_rate_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        is_favorite = await favorites_service.toggle_favorite(
            db, current_user["user_id"], exchange_rate_id
        )
    except ExchangeRateNotFoundError:
        raise HTTPException(status_code=404, detail="Exchange rate not found")
    return ToggleFavoriteResponse(is_favorite=is_favorite)


@router.put("/order", response_model=ReorderFavoritesResponse)
async def reorder_favorites(
    body: ReorderFavoritesRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reorder favorites; ids that are not the caller's favorites are ignored."""
    plan = await favorites_service.reorder_favorites(
        db, current_user["user_id"], body.exchange_rate_ids
    )
    return ReorderFavoritesResponse(reordered=len(plan.final))
