# fxengine/middleware/rate_limit.py
"""
Per-client request limiting.

The limiter itself lives on app.state.rate_limiter (see
fxengine.services.rate_limiter); this middleware only derives the key and
turns a refusal into a 429.
"""

import base64
import json

from fastapi import Request
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger()

SKIP_PATHS = {"/health"}
SKIP_PREFIXES = ("/internal/",)


def _extract_user_id(request: Request) -> str | None:
    """
    Read the subject from the bearer token payload without verifying it.

    Only used to pick a bucket; authentication happens in the route dependency.
    Fails open; returns None on any decode error.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        token = auth_header.split(" ", 1)[1]
        payload_b64 = token.split(".")[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
        return payload.get("sub")
    except Exception:
        return None


def _client_ip(request: Request) -> str:
    # Use X-Forwarded-For when running behind a reverse proxy
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_key(request: Request) -> str:
    identity = _extract_user_id(request) or _client_ip(request)
    return f"rl:{identity}:{request.url.path}"


async def rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if path in SKIP_PATHS or path.startswith(SKIP_PREFIXES):
        return await call_next(request)

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return await call_next(request)

    key = rate_limit_key(request)
    if not await limiter.allow(key):
        logger.warning("rate_limited", key=key, limit=limiter.limit)
        return JSONResponse(
            status_code=429,
            content={"error": {"code": "RATE_LIMITED", "message": "Too many requests"}},
            headers={"Retry-After": str(limiter.window_seconds)},
        )

    return await call_next(request)
