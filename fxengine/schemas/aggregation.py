from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class MoneyItemIn(BaseModel):
    amount: Decimal
    currency: str = Field(..., min_length=3, max_length=10)
    amount_in_usd: Optional[Decimal] = None
    rate: Optional[Decimal] = None

    @field_validator("currency")
    @classmethod
    def upper(cls, v: str) -> str:
        return v.upper()


class AggregateRequest(BaseModel):
    items: list[MoneyItemIn] = Field(default_factory=list, max_length=10000)
    target_currency: str = Field("USD", min_length=3, max_length=10)
    # Falls back to the best stored rate when omitted
    target_rate: Optional[Decimal] = Field(None, gt=0)

    @field_validator("target_currency")
    @classmethod
    def upper(cls, v: str) -> str:
        return v.upper()


class AggregateResponse(BaseModel):
    currency: str
    total: Decimal
    total_in_usd: Decimal
    target_rate: Optional[Decimal] = None
    item_count: int
