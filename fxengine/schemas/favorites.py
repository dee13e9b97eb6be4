import uuid

from pydantic import BaseModel, Field

from fxengine.schemas.exchange_rate import ExchangeRateResponse


class FavoriteResponse(BaseModel):
    id: str
    order: int
    rate: ExchangeRateResponse


class ToggleFavoriteResponse(BaseModel):
    is_favorite: bool


class ReorderFavoritesRequest(BaseModel):
    exchange_rate_ids: list[uuid.UUID] = Field(..., max_length=1000)


class ReorderFavoritesResponse(BaseModel):
    success: bool = True
    reordered: int
