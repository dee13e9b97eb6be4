"""
Exchange rate sync: pulls the oracle snapshot and upserts it for today.

Oracle payload: {"updatedAt": "...", "base": "USD", "rates": {"ARS": 1415.0, "ARS_blue": 1480.0, ...}}
A bare key ("ARS") is the official rate; "<CCY>_<type>" carries a rate type.

Failure model:
  - fetch / payload problems abort the whole run before anything is written
  - a single bad entry is skipped and the run continues
No retries inside one invocation; the next scheduled tick is the retry.
"""

import asyncio
import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fxengine.config import settings
from fxengine.models.exchange_rate import DEFAULT_RATE_TYPE, MAX_RATE, RATE_QUANTUM
from fxengine.services import rate_store
from fxengine.services.rate_store import ParsedRate

logger = structlog.get_logger()

VALID_CURRENCY = re.compile(r"^[A-Z]{3}$")
VALID_TYPE = re.compile(r"^[a-z0-9_-]{1,32}$")


class RateSyncError(Exception):
    """Base class for a sync run that aborted without writing."""

    code = "SYNC_FAILED"
    transient = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SyncTimeoutError(RateSyncError):
    code = "SYNC_TIMEOUT"
    transient = True


class SyncNetworkError(RateSyncError):
    code = "SYNC_NETWORK_ERROR"
    transient = True


class MalformedPayloadError(RateSyncError):
    code = "SYNC_MALFORMED_PAYLOAD"


class EmptyPayloadError(MalformedPayloadError):
    code = "SYNC_EMPTY_PAYLOAD"


class PayloadTooLargeError(MalformedPayloadError):
    code = "SYNC_PAYLOAD_TOO_LARGE"


@dataclass
class ParseResult:
    entries: list[ParsedRate] = field(default_factory=list)
    skipped: int = 0


def parse_rate_key(key: str) -> tuple[str, str]:
    """Split "ARS_blue" into ("ARS", "blue"); a bare key is the official rate."""
    parts = key.split("_")
    if len(parts) == 1:
        return key.upper(), DEFAULT_RATE_TYPE
    return parts[0].upper(), "_".join(parts[1:]).lower()


def _valid_rate(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if value <= 0:
        return None
    rate = Decimal(str(value))
    # must survive NUMERIC(18, 6): no zero after rounding, no integer-part overflow
    if rate >= MAX_RATE or rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP) == 0:
        return None
    return rate


def parse_rates(rates: dict) -> ParseResult:
    """Validate and normalize the oracle's rates object. Invalid entries are skipped."""
    result = ParseResult()
    for key, value in rates.items():
        if not isinstance(key, str):
            result.skipped += 1
            continue
        currency, rate_type = parse_rate_key(key)
        rate = _valid_rate(value)
        if rate is None or not VALID_CURRENCY.match(currency) or not VALID_TYPE.match(rate_type):
            logger.debug("exchange_rate_entry_skipped", key=key, value=repr(value))
            result.skipped += 1
            continue
        result.entries.append(ParsedRate(currency=currency, type=rate_type, rate=rate))
    return result


def validate_payload(data: Any, max_entries: Optional[int] = None) -> ParseResult:
    if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
        raise MalformedPayloadError("Invalid response format: missing or invalid rates object")

    parsed = parse_rates(data["rates"])
    limit = max_entries if max_entries is not None else settings.RATES_MAX_ENTRIES

    if not parsed.entries:
        raise EmptyPayloadError("No valid rate entries found in response")
    if len(parsed.entries) > limit:
        raise PayloadTooLargeError(
            f"Too many rate entries ({len(parsed.entries)}), aborting sync"
        )
    return parsed


async def _get_json(client: httpx.AsyncClient, url: str) -> Any:
    response = await client.get(url, headers={"Accept": "application/json"})
    response.raise_for_status()
    return response.json()


async def fetch_oracle_payload(
    client: Optional[httpx.AsyncClient] = None,
    url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Any:
    """GET the oracle document, bounded by a hard timeout."""
    url = url or settings.RATES_ORACLE_URL
    timeout = timeout if timeout is not None else settings.RATES_FETCH_TIMEOUT_SECONDS
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
    try:
        return await asyncio.wait_for(_get_json(client, url), timeout=timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise SyncTimeoutError(f"Oracle did not respond within {timeout:g}s") from exc
    except httpx.HTTPStatusError as exc:
        raise SyncNetworkError(
            f"Failed to fetch exchange rates: {exc.response.status_code} {exc.response.reason_phrase}"
        ) from exc
    except httpx.HTTPError as exc:
        raise SyncNetworkError(f"Failed to fetch exchange rates: {exc}") from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedPayloadError("Oracle response is not valid JSON") from exc
    finally:
        if owns_client:
            await client.aclose()


async def sync_exchange_rates(
    db: AsyncSession,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Fetch, validate and upsert today's rates. Returns the number of rates synced.

    Raises a RateSyncError subclass on any run-level failure; the store is
    untouched in that case.
    """
    logger.info("exchange_rate_sync_started")
    try:
        data = await fetch_oracle_payload(client)
        parsed = validate_payload(data)
    except RateSyncError as exc:
        logger.error("exchange_rate_sync_failed", code=exc.code, error=exc.message)
        raise

    day = rate_store.utc_midnight(now)
    count = await rate_store.upsert_rates(db, parsed.entries, day)
    logger.info(
        "exchange_rate_sync_complete",
        synced=count,
        skipped=parsed.skipped,
        oracle_updated_at=data.get("updatedAt"),
    )
    return count


async def cooldown_remaining(
    db: AsyncSession, now: Optional[datetime] = None
) -> Optional[timedelta]:
    """
    Time left before a non-admin may trigger another sync, or None when allowed.

    Uses the most recent updated_at in the store, so it holds across processes.
    """
    last = await rate_store.get_last_updated_at(db)
    if last is None:
        return None
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    wait = last + timedelta(minutes=settings.RATES_SYNC_COOLDOWN_MINUTES) - current
    return wait if wait > timedelta(0) else None
