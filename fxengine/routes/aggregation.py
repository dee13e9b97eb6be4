"""
Cross-currency totals: /api/v1/aggregate

Dashboards post the items they want summed and get a total in the requested
currency plus the USD pivot total.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fxengine.database import get_db
from fxengine.middleware.auth import get_current_user
from fxengine.schemas.aggregation import AggregateRequest, AggregateResponse
from fxengine.services import rate_store
from fxengine.services.aggregation import MoneyItem, total_in_currency
from fxengine.services.conversion import BASE_CURRENCY

router = APIRouter()


@router.post("", response_model=AggregateResponse)
async def aggregate(
    body: AggregateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    classifier = await rate_store.load_classifier(db)

    target_rate = body.target_rate
    if target_rate is None and body.target_currency != BASE_CURRENCY:
        best = await rate_store.get_best_exchange_rate(db, body.target_currency)
        target_rate = best.rate if best else None

    # Items with neither a stored USD value nor a rate use the best stored rate
    missing = {
        i.currency for i in body.items
        if i.amount_in_usd is None and i.rate is None and i.currency != BASE_CURRENCY
    }
    best_rates = {}
    for currency in missing:
        best = await rate_store.get_best_exchange_rate(db, currency)
        best_rates[currency] = best.rate if best else None

    items = [
        MoneyItem(
            amount=i.amount,
            currency=i.currency,
            amount_in_usd=i.amount_in_usd,
            rate=i.rate if i.rate is not None else best_rates.get(i.currency),
        )
        for i in body.items
    ]
    result = total_in_currency(items, body.target_currency, target_rate, classifier)
    return AggregateResponse(
        currency=result.currency,
        total=result.total,
        total_in_usd=result.total_in_usd,
        target_rate=target_rate,
        item_count=len(items),
    )
