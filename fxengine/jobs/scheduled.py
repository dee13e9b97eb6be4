# fxengine/jobs/scheduled.py
"""
Scheduled jobs triggered by an external scheduler → API endpoints.

Jobs:
  - sync-exchange-rates: Daily at 09:05 UTC
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fxengine.config import settings
from fxengine.database import get_db
from fxengine.routes.exchange_rates import sync_error_to_http
from fxengine.services.rate_sync import RateSyncError, sync_exchange_rates

logger = structlog.get_logger()
router = APIRouter()


async def _require_internal_auth(request: Request):
    """
    Verify request comes from the scheduler or another internal service.
    Validates X-Internal-Secret header against INTERNAL_JOB_SECRET from settings.
    """
    secret = settings.INTERNAL_JOB_SECRET
    if not secret:
        # In development (DEBUG=True), allow unauthenticated internal calls
        if settings.DEBUG:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="INTERNAL_JOB_SECRET is not configured",
        )
    provided = request.headers.get("X-Internal-Secret")
    if not provided or provided != secret:
        logger.warning("internal_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )


@router.post("/sync-exchange-rates")
async def scheduled_exchange_rate_sync(
    db: AsyncSession = Depends(get_db),
    _auth: None = Depends(_require_internal_auth),
):
    """Daily: pull the oracle snapshot. Failures are left for the next tick."""
    try:
        count = await sync_exchange_rates(db)
    except RateSyncError as exc:
        raise sync_error_to_http(exc)
    return {"synced": count}
