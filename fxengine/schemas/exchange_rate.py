import re
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from fxengine.models.exchange_rate import MAX_RATE, RATE_QUANTUM
from fxengine.services.rate_sync import VALID_CURRENCY, VALID_TYPE


class ExchangeRateResponse(BaseModel):
    id: str
    date: datetime
    currency: str
    type: str
    rate: Decimal
    created_at: datetime
    updated_at: datetime


class RateOptionResponse(BaseModel):
    exchange_rate_id: Optional[str] = None
    type: str
    label: str
    rate: Decimal
    date: Optional[datetime] = None


class CurrencyRatesResponse(BaseModel):
    currency: str
    is_crypto: bool
    options: list[RateOptionResponse]
    default: Optional[RateOptionResponse] = None


class ManualRateCreate(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)
    type: str = Field("official", min_length=1, max_length=32)
    rate: Decimal = Field(..., ge=RATE_QUANTUM, lt=MAX_RATE)
    date: Optional[date_type] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.upper()
        if not VALID_CURRENCY.match(v):
            raise ValueError("Currency must be a 3-letter code")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.lower()
        if not VALID_TYPE.match(v):
            raise ValueError("Rate type may only contain a-z, 0-9, '_' and '-'")
        return v


class SyncResponse(BaseModel):
    success: bool = True
    synced: int
    message: str


class LastSyncResponse(BaseModel):
    last_sync: Optional[datetime] = None


class ConversionResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    converted_amount: Decimal
    from_rate: Optional[Decimal] = None
    from_rate_type: Optional[str] = None
    to_rate: Optional[Decimal] = None
    to_rate_type: Optional[str] = None
    display_rate: Decimal
    display_mode: Literal["foreign-to-usd", "usd-to-foreign"]


_CODE = re.compile(r"^[A-Za-z]{3,10}$")


def normalize_currency_param(value: str) -> str:
    if not _CODE.match(value):
        raise ValueError("Invalid currency code")
    return value.upper()
