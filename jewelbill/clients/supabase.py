from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from jewelbill.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)

JsonPayload = Dict[str, Any] | List[Dict[str, Any]]


class SupabaseClient:
    """Async HTTP client for the Supabase REST (PostgREST) and auth endpoints."""

    def __init__(
        self,
        base_url: str | None,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/") if base_url else None
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self.use_mock_data = use_mock_data or not self._base_url
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            self._headers.update({
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            })
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data and self._base_url:
            self._client = self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.use_mock_data or not self._base_url:
            raise RuntimeError("HTTP client requested while running in mock mode")
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, Any] | None = None,
        payload: JsonPayload | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        if self.use_mock_data:
            raise RuntimeError("Real HTTP call requested while mock mode is enabled")
        client = await self._ensure_client()
        try:
            response = await client.request(
                method, path, params=params, json=payload, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error_code, message = _parse_error_body(exc.response)
            logger.error(
                "Supabase returned %s for %s %s: %s",
                exc.response.status_code,
                method,
                path,
                message,
            )
            raise DownstreamServiceError(
                message,
                status_code=exc.response.status_code,
                error_code=error_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach Supabase: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach Supabase", status_code=None, cause=exc
            ) from exc

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get(
        self, path: str, params: Dict[str, Any] | None = None
    ) -> Any:
        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        payload: JsonPayload,
        *,
        params: Dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        return await self._request(
            "POST", path, params=params, payload=payload, headers=headers
        )

    async def patch(
        self,
        path: str,
        payload: Dict[str, Any],
        *,
        params: Dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        return await self._request(
            "PATCH", path, params=params, payload=payload, headers=headers
        )

    async def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        """Invoke a Postgres function exposed through PostgREST."""

        return await self._request("POST", f"/rest/v1/rpc/{function}", payload=params)

    async def get_user(self, access_token: str) -> Dict[str, Any] | None:
        """Resolve a user access token through the auth endpoint."""

        client = await self._ensure_client()
        try:
            response = await client.get(
                "/auth/v1/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.RequestError as exc:
            logger.exception("Unable to reach Supabase auth: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach Supabase auth", status_code=None, cause=exc
            ) from exc
        if response.status_code in (401, 403):
            return None
        if response.is_error:
            error_code, message = _parse_error_body(response)
            raise DownstreamServiceError(
                message, status_code=response.status_code, error_code=error_code
            )
        return response.json()

    async def simulate_latency(self) -> None:
        """Allow services to await for latency even when mocking responses."""

        await asyncio.sleep(0)


def _parse_error_body(response: httpx.Response) -> tuple[Optional[str], str]:
    """Extract the PostgREST ``code`` and ``message`` from an error response."""

    try:
        body = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"
    if not isinstance(body, dict):
        return None, str(body)
    code = body.get("code")
    message = body.get("message") or body.get("msg") or body.get("error") or str(body)
    return (str(code) if code is not None else None), str(message)
