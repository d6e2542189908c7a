"""
HTTP client utilities for depresolve.

This module provides a thin asynchronous HTTP client around a shared
``httpx.AsyncClient`` connection pool. It performs exactly one request per
call and classifies every failure as a :class:`NetworkError` whose
``transient`` flag tells the caller whether retrying may help. Retry,
backoff and admission control live in the metadata fetcher, which owns the
per-package concurrency budget.
"""

from __future__ import annotations

import httpx
from typing import Any, Dict, Optional, cast

from depresolve.__version__ import __version__
from depresolve.constants import DEFAULT_TIMEOUT, USER_AGENT_TEMPLATE
from depresolve.exceptions import NetworkError
from depresolve.utils.logger import get_logger

logger = get_logger("http")

# Statuses worth retrying besides 5xx
_TRANSIENT_STATUSES = frozenset({408, 425, 429})


def is_transient_status(status_code: int) -> bool:
    """Return True if a response with *status_code* may succeed on retry."""
    return status_code >= 500 or status_code in _TRANSIENT_STATUSES


class HTTPClient:
    """Asynchronous HTTP client sharing one connection pool.

    Args:
        timeout: Per-request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates.
        user_agent: Custom User-Agent header value.
        max_connections: Upper bound on pooled connections.

    Example:
        >>> async with HTTPClient() as client:
        ...     data = await client.get_json("https://pypi.org/pypi/requests/json")
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        max_connections: int = 64,
    ) -> None:
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.max_connections = max_connections

        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HTTPClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> None:
        """Initialize the underlying httpx client if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json",
                },
                limits=httpx.Limits(max_connections=self.max_connections),
            )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Perform a single GET request.

        Raises:
            NetworkError: On transport failure or a 4xx/5xx response.
                ``transient`` is set for timeouts, connection failures,
                rate limiting and server errors.
        """
        await self._ensure_client()
        assert self._client is not None

        clean_url = url.strip().strip("\"'")

        try:
            response = await self._client.get(clean_url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(
                f"Request timed out: {clean_url}",
                url=clean_url,
                transient=True,
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"Network error for {clean_url}: {exc}",
                url=clean_url,
                transient=True,
            ) from exc

        if response.status_code >= 400:
            status = response.status_code
            transient = is_transient_status(status)
            logger.debug(
                "HTTP %d for %s (%s)",
                status,
                clean_url,
                "transient" if transient else "permanent",
            )
            message = (
                f"Resource not found: {clean_url}"
                if status == 404
                else f"HTTP {status} error for {clean_url}"
            )
            raise NetworkError(
                message,
                url=clean_url,
                status_code=status,
                response_body=response.text,
                transient=transient,
            )

        return response

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Fetch a URL and parse the response as a JSON object."""
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc

        if not isinstance(data, dict):
            raise NetworkError(
                f"Expected JSON object from {url}",
                url=url,
                response_body=response.text,
            )

        return cast(Dict[str, Any], data)
