from __future__ import annotations

from typing import Any

import httpx

from tbv.config import settings
from tbv.errors import NetworkError


class HttpClient:
    def __init__(
        self,
        *,
        timeout_sec: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_sec
        self._headers = {"User-Agent": user_agent or settings.user_agent}
        self._transport = transport

    def _client(self, **headers: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            headers={**self._headers, **headers},
            transport=self._transport,
        )

    async def get_bytes(self, url: str) -> bytes:
        try:
            async with self._client() as client:
                r = await client.get(url)
                r.raise_for_status()
                return r.content
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"GET {url} failed: {e}") from e

    async def get_json(self, url: str) -> Any:
        try:
            async with self._client(Accept="application/json") as client:
                r = await client.get(url)
                r.raise_for_status()
                return r.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise NetworkError(f"GET {url} returned invalid JSON: {e}") from e
