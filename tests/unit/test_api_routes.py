"""
API-level tests for the exchange-rate routes, the internal job and the request
limiter. The database dependency is overridden with an AsyncMock and the
service calls are patched, so the app runs without Postgres.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fxengine.database import get_db
from fxengine.main import app
from fxengine.services.conversion import CurrencyClassifier
from fxengine.services.rate_limiter import InMemoryRateLimiter
from fxengine.services.rate_store import BestRate
from fxengine.services.rate_sync import EmptyPayloadError, SyncNetworkError


@pytest.fixture
def db_session():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def client(db_session):
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# System / auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["db"] == "ok"


@pytest.mark.asyncio
async def test_missing_token_rejected(client):
    response = await client.get("/api/v1/exchange-rates/last-sync")
    assert response.status_code in (401, 403)
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_invalid_token_rejected(client):
    response = await client.get(
        "/api/v1/exchange-rates/last-sync",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_TOKEN_INVALID"


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/no-such-route")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "HTTP_ERROR"


@pytest.mark.asyncio
async def test_wrong_method_uses_error_envelope(client):
    response = await client.delete("/health")
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "HTTP_ERROR"


# ---------------------------------------------------------------------------
# POST /api/v1/exchange-rates/sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_user_sync_blocked_during_cooldown(client, auth_headers):
    with patch(
        "fxengine.routes.exchange_rates.cooldown_remaining",
        new=AsyncMock(return_value=timedelta(minutes=4)),
    ), patch(
        "fxengine.routes.exchange_rates.sync_exchange_rates", new=AsyncMock()
    ) as sync:
        response = await client.post("/api/v1/exchange-rates/sync", headers=auth_headers)

    assert response.status_code == 429
    assert response.json()["error"]["code"] == "SYNC_COOLDOWN"
    assert response.headers["Retry-After"] == "241"
    sync.assert_not_awaited()


@pytest.mark.asyncio
async def test_admin_sync_ignores_cooldown(client, admin_headers):
    cooldown = AsyncMock(return_value=timedelta(minutes=4))
    with patch("fxengine.routes.exchange_rates.cooldown_remaining", new=cooldown), patch(
        "fxengine.routes.exchange_rates.sync_exchange_rates", new=AsyncMock(return_value=42)
    ):
        response = await client.post("/api/v1/exchange-rates/sync", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["synced"] == 42
    cooldown.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_network_failure_is_bad_gateway(client, auth_headers):
    error = SyncNetworkError("Failed to fetch exchange rates: 503 Service Unavailable")
    with patch(
        "fxengine.routes.exchange_rates.cooldown_remaining", new=AsyncMock(return_value=None)
    ), patch(
        "fxengine.routes.exchange_rates.sync_exchange_rates", new=AsyncMock(side_effect=error)
    ):
        response = await client.post("/api/v1/exchange-rates/sync", headers=auth_headers)

    assert response.status_code == 502
    err = response.json()["error"]
    assert err["code"] == "SYNC_NETWORK_ERROR"
    assert err["message"].startswith("Sync failed: Failed to fetch exchange rates")


@pytest.mark.asyncio
async def test_sync_bad_payload_is_unprocessable(client, admin_headers):
    with patch(
        "fxengine.routes.exchange_rates.sync_exchange_rates",
        new=AsyncMock(side_effect=EmptyPayloadError("No valid rate entries found in response")),
    ):
        response = await client.post("/api/v1/exchange-rates/sync", headers=admin_headers)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "SYNC_EMPTY_PAYLOAD"


# ---------------------------------------------------------------------------
# Manual entry / conversion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_manual_rate_requires_admin(client, auth_headers):
    response = await client.post(
        "/api/v1/exchange-rates",
        json={"currency": "ARS", "type": "blue", "rate": "1480"},
        headers=auth_headers,
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"


@pytest.mark.asyncio
async def test_manual_rate_validates_currency(client, admin_headers):
    response = await client.post(
        "/api/v1/exchange-rates",
        json={"currency": "A1S", "type": "blue", "rate": "1480"},
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize("rate", ["0", "0.0000004", "1000000000000", "-3"])
async def test_manual_rate_rejects_values_the_rate_column_cannot_hold(client, admin_headers, rate):
    response = await client.post(
        "/api/v1/exchange-rates",
        json={"currency": "ARS", "type": "blue", "rate": rate},
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_convert_uses_best_rates(client, auth_headers):
    async def best(db, currency, as_of=None):
        return {"ARS": BestRate(rate=Decimal("1415"), type="blue")}.get(currency)

    with patch(
        "fxengine.services.rate_store.get_best_exchange_rate", new=AsyncMock(side_effect=best)
    ), patch(
        "fxengine.services.rate_store.load_classifier",
        new=AsyncMock(return_value=CurrencyClassifier(["BTC"])),
    ):
        response = await client.get(
            "/api/v1/exchange-rates/convert",
            params={"amount": "5000", "from_currency": "ars", "to_currency": "USD"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["from_currency"] == "ARS"
    assert Decimal(str(body["converted_amount"])) == Decimal("3.53")
    assert body["from_rate_type"] == "blue"


@pytest.mark.asyncio
async def test_convert_without_rate_returns_zero(client, auth_headers):
    with patch(
        "fxengine.services.rate_store.get_best_exchange_rate", new=AsyncMock(return_value=None)
    ), patch(
        "fxengine.services.rate_store.load_classifier",
        new=AsyncMock(return_value=CurrencyClassifier()),
    ):
        response = await client.get(
            "/api/v1/exchange-rates/convert",
            params={"amount": "100", "from_currency": "EUR", "to_currency": "ARS"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    assert Decimal(str(response.json()["converted_amount"])) == Decimal("0")


# ---------------------------------------------------------------------------
# Internal job
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_internal_sync_requires_secret(client):
    response = await client.post("/internal/jobs/sync-exchange-rates")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_internal_sync_runs_with_secret(client):
    with patch(
        "fxengine.jobs.scheduled.sync_exchange_rates", new=AsyncMock(return_value=7)
    ):
        response = await client.post(
            "/internal/jobs/sync-exchange-rates",
            headers={"X-Internal-Secret": "test-internal-secret"},
        )
    assert response.status_code == 200
    assert response.json() == {"synced": 7}


# ---------------------------------------------------------------------------
# Request limiter
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_request_limiter_returns_429(client, auth_headers):
    app.state.rate_limiter = InMemoryRateLimiter(limit=1, window_seconds=60)
    try:
        with patch(
            "fxengine.services.rate_store.get_last_sync", new=AsyncMock(return_value=None)
        ):
            first = await client.get("/api/v1/exchange-rates/last-sync", headers=auth_headers)
            second = await client.get("/api/v1/exchange-rates/last-sync", headers=auth_headers)
            health = await client.get("/health")
    finally:
        del app.state.rate_limiter

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.headers["Retry-After"] == "60"
    assert health.status_code == 200
