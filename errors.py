"""Exception hierarchy for the bus GPS proxy."""

from __future__ import annotations


class BusProxyError(Exception):
    """Base exception for all proxy errors."""


class UpstreamError(BusProxyError):
    """The DFTrans GPS endpoint could not produce a usable payload."""


class UpstreamTransportError(UpstreamError):
    """Connection failure, timeout or TLS failure talking to upstream."""


class UpstreamHTTPError(UpstreamError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, body_excerpt: str = "") -> None:
        self.status_code = status_code
        self.body_excerpt = body_excerpt
        message = f"Upstream error {status_code}"
        if body_excerpt:
            message = f"{message}: {body_excerpt}"
        super().__init__(message)


class UpstreamDecodeError(UpstreamError):
    """Body is not JSON or not a list of operator objects."""


class CacheBackendError(BusProxyError):
    """The external cache backend could not be reached or returned garbage."""


class UpstreamUnavailable(BusProxyError):
    """No fresh data could be fetched and there is no cached value to fall back on."""


__all__ = [
    "BusProxyError",
    "UpstreamError",
    "UpstreamTransportError",
    "UpstreamHTTPError",
    "UpstreamDecodeError",
    "CacheBackendError",
    "UpstreamUnavailable",
]
