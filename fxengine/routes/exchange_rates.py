"""
Exchange rates: /api/v1/exchange-rates

Any authenticated user can read rates and convert amounts. Admins maintain
manual entries and may trigger a sync at any time; other users may trigger one
once per RATES_SYNC_COOLDOWN_MINUTES.
"""

from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fxengine.config import settings
from fxengine.database import get_db
from fxengine.middleware.auth import get_current_user, is_admin
from fxengine.middleware.authorization import require_roles
from fxengine.models.exchange_rate import ExchangeRate
from fxengine.schemas.exchange_rate import (
    ConversionResponse,
    CurrencyRatesResponse,
    ExchangeRateResponse,
    LastSyncResponse,
    ManualRateCreate,
    RateOptionResponse,
    SyncResponse,
    normalize_currency_param,
)
from fxengine.services import favorites_service, rate_store
from fxengine.services.conversion import BASE_CURRENCY, convert, get_display_rate
from fxengine.services.rate_resolution import (
    RateOption,
    build_rate_options,
    get_default_rate,
)
from fxengine.services.rate_sync import RateSyncError, cooldown_remaining, sync_exchange_rates

logger = structlog.get_logger()
router = APIRouter()


def to_response(r: ExchangeRate) -> ExchangeRateResponse:
    return ExchangeRateResponse(
        id=str(r.id),
        date=r.date,
        currency=r.currency,
        type=r.type,
        rate=Decimal(str(r.rate)),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _option_response(o: RateOption) -> RateOptionResponse:
    return RateOptionResponse(
        exchange_rate_id=o.exchange_rate_id,
        type=o.type,
        label=o.label,
        rate=o.rate,
        date=o.date,
    )


def _currency(value: str) -> str:
    try:
        return normalize_currency_param(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid currency code '{value}'")


def sync_error_to_http(exc: RateSyncError) -> HTTPException:
    return HTTPException(
        status_code=502 if exc.transient else 422,
        detail={"code": exc.code, "message": f"Sync failed: {exc.message}"},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=list[ExchangeRateResponse])
async def list_exchange_rates(
    currency: Optional[str] = Query(None, min_length=3, max_length=10),
    type: Optional[str] = Query(None, min_length=1, max_length=32),
    limit: int = Query(1000, ge=1, le=1000),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Latest rate for every (currency, type), ordered by currency then type."""
    rows = await rate_store.list_rates(db, currency=currency, rate_type=type, limit=limit)
    return [to_response(r) for r in rows]


@router.get("/last-sync", response_model=LastSyncResponse)
async def last_sync(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return LastSyncResponse(last_sync=await rate_store.get_last_sync(db))


@router.get("/convert", response_model=ConversionResponse)
async def convert_amount(
    amount: Decimal = Query(..., description="Amount in from_currency"),
    from_currency: str = Query(..., min_length=3, max_length=10),
    to_currency: str = Query(..., min_length=3, max_length=10),
    display_mode: Literal["foreign-to-usd", "usd-to-foreign"] = Query("usd-to-foreign"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Convert an amount between currencies with the best stored rates.

    A currency without a stored rate converts to 0 rather than failing, like
    every other read path.
    """
    from_c = _currency(from_currency)
    to_c = _currency(to_currency)
    classifier = await rate_store.load_classifier(db)

    from_best = await rate_store.get_best_exchange_rate(db, from_c)
    to_best = await rate_store.get_best_exchange_rate(db, to_c)
    from_rate = from_best.rate if from_best else None
    to_rate = to_best.rate if to_best else None

    foreign = to_c if from_c == BASE_CURRENCY else from_c
    foreign_rate = to_rate if from_c == BASE_CURRENCY else from_rate

    return ConversionResponse(
        amount=amount,
        from_currency=from_c,
        to_currency=to_c,
        converted_amount=convert(amount, from_c, from_rate, to_c, to_rate, classifier),
        from_rate=from_rate,
        from_rate_type=from_best.type if from_best else None,
        to_rate=to_rate,
        to_rate_type=to_best.type if to_best else None,
        display_rate=get_display_rate(foreign_rate, foreign, display_mode, classifier),
        display_mode=display_mode,
    )


@router.post("/sync", response_model=SyncResponse)
async def trigger_sync(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Manual sync. Non-admins are limited to one run per cooldown window."""
    if not is_admin(current_user):
        remaining = await cooldown_remaining(db)
        if remaining is not None:
            seconds = int(remaining.total_seconds()) + 1
            logger.info("exchange_rate_sync_cooldown", user_id=current_user["user_id"], retry_after=seconds)
            raise HTTPException(
                status_code=http_status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "code": "SYNC_COOLDOWN",
                    "message": (
                        "Rates were synced recently. "
                        f"Try again in {settings.RATES_SYNC_COOLDOWN_MINUTES} minutes."
                    ),
                },
                headers={"Retry-After": str(seconds)},
            )

    try:
        count = await sync_exchange_rates(db)
    except RateSyncError as exc:
        raise sync_error_to_http(exc)

    return SyncResponse(synced=count, message=f"Successfully synced {count} exchange rates")


@router.post("", response_model=ExchangeRateResponse, status_code=http_status.HTTP_201_CREATED)
async def save_manual_rate(
    body: ManualRateCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Create or update a rate by hand. Upserts on (date, currency, type)."""
    row = await rate_store.save_manual_rate(db, body.currency, body.type, body.rate, body.date)
    logger.info(
        "exchange_rate_manual_entry",
        user_id=current_user["user_id"],
        currency=body.currency,
        type=body.type,
    )
    return to_response(row)


@router.get("/{currency}", response_model=CurrencyRatesResponse)
async def get_currency_rates(
    currency: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every rate type for a currency plus the default the user should see preselected."""
    code = _currency(currency)
    rows = await rate_store.get_rates_for_currency(db, code)
    options = build_rate_options(rows)

    favorites = await favorites_service.list_favorites(db, current_user["user_id"])
    default = get_default_rate(options, code, favorites_service.to_favorite_rates(favorites))
    classifier = await rate_store.load_classifier(db)

    return CurrencyRatesResponse(
        currency=code,
        is_crypto=classifier.is_crypto(code),
        options=[_option_response(o) for o in options],
        default=_option_response(default) if default else None,
    )


@router.get("/{currency}/{rate_type}", response_model=ExchangeRateResponse)
async def get_currency_rate_by_type(
    currency: str,
    rate_type: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await rate_store.get_rate(db, _currency(currency), rate_type)
    if row is None:
        raise HTTPException(status_code=404, detail="Exchange rate not found")
    return to_response(row)
