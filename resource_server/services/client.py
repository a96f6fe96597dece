"""
UpstreamClient - read-only async HTTP client for the upstream MAAS API.

Implements the fetch collaborator used by resource pipelines:

    async fetch(endpoint, params=None, signal=None) -> Any

Non-success responses raise UpstreamError (RateLimitError for 429).
Transport failures (timeouts, refused connections, DNS) propagate as the
httpx exceptions they are; the pipeline classifies them.
"""

from collections.abc import Mapping
from typing import Any, Protocol

import httpx
from loguru import logger

from resource_server.services.abort import AbortSignal
from resource_server.services.errors import RateLimitError, UpstreamError


class Fetcher(Protocol):
    """Read-only fetch collaborator."""

    async def __call__(
        self,
        endpoint: str,
        params: Mapping[str, str] | None = None,
        signal: AbortSignal | None = None,
    ) -> Any: ...


class UpstreamClient:
    """
    HTTP client for the upstream API.

    Usage:
        async with UpstreamClient("http://maas.local:5240/MAAS") as client:
            machine = await client.fetch("/machines/abc123/")
    """

    API_PREFIX = "/api/2.0"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/") + self.API_PREFIX
        self._timeout = timeout
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers=self._headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    async def fetch(
        self,
        endpoint: str,
        params: Mapping[str, str] | None = None,
        signal: AbortSignal | None = None,
    ) -> Any:
        """
        GET an endpoint and decode its JSON body.

        Args:
            endpoint: Path below the API prefix, e.g. "/machines/abc123/"
            params: Query parameters
            signal: Abort signal; aborting cancels the in-flight request

        Returns:
            Decoded JSON body (None for an empty body)

        Raises:
            UpstreamError: Non-success status
            RateLimitError: HTTP 429
            RequestAbortedError: Signal fired before the response arrived
        """
        logger.debug(f"GET request to {endpoint} params={dict(params or {})}")
        if signal is not None:
            signal.raise_if_aborted()
            return await signal.guard(self._get(endpoint, params))
        return await self._get(endpoint, params)

    async def _get(self, endpoint: str, params: Mapping[str, str] | None) -> Any:
        client = await self._get_http_client()
        response = await client.get(endpoint, params=dict(params) if params else None)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._to_upstream_error(e.response) from e

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _to_upstream_error(response: httpx.Response) -> UpstreamError:
        status = response.status_code
        if status == 429:
            return RateLimitError(_parse_retry_after(response.headers.get("Retry-After")))

        body = response.text[:200]
        code = "not_found" if status == 404 else f"http_{status}"
        return UpstreamError(
            status,
            code,
            message=f"HTTP {status}: {body}" if body else None,
            details={"body": body} if body else None,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("UpstreamClient closed")

    async def __aenter__(self) -> "UpstreamClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
