"""HTTP client for the Nango proxy.

Nango owns the OAuth tokens of the Google and Zoho connections: it stores
them, refreshes them and injects them into proxied calls. A tenant's
``BackendCredential`` only carries the Nango ``connection_id`` and
``provider_config_key``.

Calls to a provider API go through the **Nango Proxy**::

    proxy = nango_client.proxy(connection_id, provider_config_key)
    resp = await proxy.request("GET", "/calendar/v3/calendars/primary/events")

Nango resolves the provider base URL and adds the correct auth header.
"""

from __future__ import annotations

from typing import Any

import httpx

from app.config import get_settings


class NangoProxy:
    """Pre-bound proxy for a specific Nango connection.

    Calls go to ``{NANGO_URL}/proxy/{endpoint}`` with the ``Connection-Id``
    and ``Provider-Config-Key`` headers.
    """

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        connection_id: str,
        provider_config_key: str,
        timeout: float,
    ) -> None:
        self._base_url = base_url
        self._secret_key = secret_key
        self._timeout = timeout
        self.connection_id = connection_id
        self.provider_config_key = provider_config_key

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Connection-Id": self.connection_id,
            "Provider-Config-Key": self.provider_config_key,
        }

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict | None = None,
        json: Any = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Send one request through the proxy.

        Raises ``httpx.HTTPStatusError`` on a non-2xx answer.
        """
        h = {**self._headers, **(headers or {})}
        if json is not None:
            h.setdefault("Content-Type", "application/json")
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.request(
                method,
                f"{self._base_url}/proxy{endpoint}",
                headers=h,
                params=params,
                json=json,
            )
            resp.raise_for_status()
            return resp


class NangoClient:
    """Factory for connection-bound Nango proxies."""

    def __init__(self) -> None:
        settings = get_settings()
        self.base_url = settings.nango_url.rstrip("/")
        self.secret_key = settings.nango_secret_key
        self.timeout = settings.backend_timeout_seconds

    def proxy(self, connection_id: str, provider_config_key: str) -> NangoProxy:
        """Return a :class:`NangoProxy` bound to *connection_id*."""
        return NangoProxy(
            base_url=self.base_url,
            secret_key=self.secret_key,
            connection_id=connection_id,
            provider_config_key=provider_config_key,
            timeout=self.timeout,
        )


# Global instance
nango_client = NangoClient()
