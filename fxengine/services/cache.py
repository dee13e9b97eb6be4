from __future__ import annotations
# fxengine/services/cache.py
from typing import Optional

import httpx
from fxengine.config import settings


class UpstashClient:
    """Minimal Upstash Redis REST client; only the commands the rate limiter needs."""

    def __init__(self, url: str = "", token: str = "", http: Optional[httpx.AsyncClient] = None):
        self.url = url or settings.UPSTASH_REDIS_REST_URL
        self.headers = {"Authorization": f"Bearer {token or settings.UPSTASH_REDIS_REST_TOKEN}"}
        self._http = http

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _client(self) -> httpx.AsyncClient:
        # Reused across calls to avoid a TLS handshake per Redis command
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(2.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._http

    async def pipeline(self, commands: list[list]) -> list:
        r = await self._client().post(
            f"{self.url}/pipeline", headers=self.headers, json=commands
        )
        r.raise_for_status()
        return r.json()

    async def ping(self) -> bool:
        r = await self._client().get(f"{self.url}/ping", headers=self.headers)
        return r.json().get("result") == "PONG"

    async def aclose(self):
        if self._http is not None:
            await self._http.aclose()


cache = UpstashClient()
