# src/tasklink/remote/client.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..core.errors import ErrorKind, GatewayResponse, error_message_from

logger = logging.getLogger(__name__)

HeadersProvider = Callable[[], dict[str, str]]


def _make_timeout_obj(total_s: float) -> httpx.Timeout:
    # Each phase gets the whole budget; the overall cap is enforced in request().
    return httpx.Timeout(total_s, connect=min(total_s, 10.0))


class ApiClient:
    """
    JSON-over-HTTPS client for the remote task store.

    Every call:
    - carries `Authorization: Bearer <token>` when a session exists (headers_provider),
    - is bounded by a fixed total timeout (timeout -> transport failure),
    - returns a GatewayResponse instead of raising:
        * no response obtained            -> TRANSPORT
        * response is not {success, ...}  -> PROTOCOL
        * {success: false, error}         -> APPLICATION (server message kept)

    The underlying httpx.AsyncClient is created lazily and reused.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        headers_provider: HeadersProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = max(0.001, float(timeout_seconds))
        self._headers_provider = headers_provider
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_s

    def set_headers_provider(self, provider: HeadersProvider | None) -> None:
        self._headers_provider = provider

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=_make_timeout_obj(self._timeout_s),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self, *, auth: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if auth and self._headers_provider is not None:
            try:
                headers.update(self._headers_provider())
            except Exception:
                logger.exception("Auth headers provider failed; sending request without credentials")
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        files: Any = None,
        auth: bool = True,
    ) -> GatewayResponse[Any]:
        client = self._get_client()
        headers = self._headers(auth=auth)

        logger.debug("API request: %s %s", method, path)
        try:
            async with asyncio.timeout(self._timeout_s):
                response = await client.request(method, path, json=json, files=files, headers=headers)
        except (TimeoutError, httpx.TimeoutException):
            logger.warning("API timeout after %.1fs: %s %s", self._timeout_s, method, path)
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        except httpx.HTTPError as e:
            logger.warning("API transport error: %s %s (%s)", method, path, e.__class__.__name__)
            return GatewayResponse.failure(ErrorKind.TRANSPORT)

        logger.debug("API response: %s %s %s", response.status_code, method, path)

        try:
            body = response.json()
        except ValueError:
            logger.warning(
                "API response is not JSON: %s %s status=%s", method, path, response.status_code
            )
            return GatewayResponse.failure(ErrorKind.PROTOCOL)

        if not isinstance(body, dict) or "success" not in body:
            logger.warning("API response has no envelope: %s %s", method, path)
            return GatewayResponse.failure(ErrorKind.PROTOCOL)

        if body.get("success") is not True:
            message = error_message_from(body.get("error") or body.get("message"))
            logger.info("API rejected %s %s: %s", method, path, message)
            return GatewayResponse.failure(ErrorKind.APPLICATION, message)

        return GatewayResponse.success(body.get("data"))
