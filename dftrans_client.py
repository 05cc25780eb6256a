"""Async client for the DFTrans real-time GPS operations feed."""
from __future__ import annotations

import time
from typing import Any, List, Optional

import httpx

from errors import UpstreamDecodeError, UpstreamHTTPError, UpstreamTransportError
from settings import DFTRANS_GPS_URL, Settings

USER_AGENT = "Mozilla/5.0 (compatible; DFBusProxy/1.0)"
BODY_EXCERPT_CHARS = 200
DFTRANS_HTTP_LIMITS = httpx.Limits(max_keepalive_connections=20, max_connections=128)


class DFTransClient:
    """Fetches the operator list with nested vehicle positions, one attempt per call."""

    def __init__(
        self,
        url: str = DFTRANS_GPS_URL,
        timeout: float = 10.0,
        connect_timeout: float = 5.0,
        verify_tls: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._verify_tls = verify_tls
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_env(cls, settings: Optional[Settings] = None) -> "DFTransClient":
        """Build a ``DFTransClient`` from ``Settings.from_env()`` (or the given settings)."""
        settings = settings or Settings.from_env()
        return cls(
            url=settings.upstream_url,
            timeout=settings.upstream_timeout_s,
            connect_timeout=settings.upstream_connect_timeout_s,
            verify_tls=settings.upstream_verify_tls,
        )

    @property
    def url(self) -> str:
        return self._url

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=DFTRANS_HTTP_LIMITS,
                verify=self._verify_tls,
                transport=self._transport,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_operators(self) -> List[Any]:
        """GET the operations feed and return the decoded operator list.

        Raises ``UpstreamTransportError``, ``UpstreamHTTPError`` or
        ``UpstreamDecodeError``; nothing is retried here.
        """
        client = await self._ensure_client()
        started = time.perf_counter()
        print(f"[fetch] -> {self._url}")
        try:
            response = await client.get(self._url)
        except httpx.TransportError as exc:
            self._log_failure(started, exc)
            raise UpstreamTransportError(f"GET {self._url} failed: {exc!r}") from exc
        except httpx.DecodingError as exc:
            # Body could not be decompressed (bad Content-Encoding)
            self._log_failure(started, exc)
            raise UpstreamDecodeError(f"Could not decode response body: {exc}") from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        print(f"[fetch] <- {response.status_code} {response.reason_phrase} ({elapsed_ms:.0f}ms)")

        if not response.is_success:
            error = UpstreamHTTPError(response.status_code, response.text[:BODY_EXCERPT_CHARS])
            self._log_failure(started, error)
            raise error

        try:
            payload = response.json()
        except ValueError as exc:
            self._log_failure(started, exc)
            raise UpstreamDecodeError(f"Response body is not JSON: {exc}") from exc

        if not isinstance(payload, list):
            error = UpstreamDecodeError(
                f"Expected a list of operators, got {type(payload).__name__}"
            )
            self._log_failure(started, error)
            raise error
        for index, operator in enumerate(payload):
            if not isinstance(operator, dict):
                error = UpstreamDecodeError(
                    f"Operator entry {index} is {type(operator).__name__}, not an object"
                )
                self._log_failure(started, error)
                raise error
        return payload

    def _log_failure(self, started: float, exc: Exception) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        print(f"[fetch] failed after {elapsed_ms:.0f}ms: {exc!r}")
