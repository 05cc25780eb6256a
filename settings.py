"""Static configuration for the bus GPS proxy, read from the environment once at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

DFTRANS_GPS_URL = "https://www.sistemas.dftrans.df.gov.br/service/gps/operacoes"

# Lines served by the original deployment when filtering was switched on
DEFAULT_ALLOWED_LINES: Tuple[str, ...] = (
    "0.195", "147.5", "147.6", "180.1", "180.2",
    "181.2", "181.4", "8002", "106.2", "0.147",
    "2207", "2209",
)

ROOT_DIR = Path(__file__).resolve().parent
DEFAULT_PUBLIC_DIR = ROOT_DIR / "public"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


def _env_lines(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    upstream_url: str = DFTRANS_GPS_URL
    upstream_timeout_s: float = 10.0
    upstream_connect_timeout_s: float = 5.0
    upstream_verify_tls: bool = False
    cache_duration_s: float = 5.0
    cache_single_flight: bool = True
    line_filter_enabled: bool = False
    allowed_lines: Tuple[str, ...] = DEFAULT_ALLOWED_LINES
    redis_url: Optional[str] = None
    port: int = 5000
    public_dir: Path = field(default=DEFAULT_PUBLIC_DIR)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables:
        * ``DFTRANS_GPS_URL`` - upstream endpoint, defaults to the DFTrans operations feed.
        * ``UPSTREAM_TIMEOUT_S`` / ``UPSTREAM_CONNECT_TIMEOUT_S`` - request budget.
        * ``UPSTREAM_VERIFY_TLS`` - verify the upstream certificate chain (off by default).
        * ``CACHE_DURATION_S`` - freshness window in seconds.
        * ``CACHE_SINGLE_FLIGHT`` - share one upstream call between concurrent cache misses.
        * ``LINE_FILTER_ENABLED`` / ``LINE_FILTER_LINES`` - allow-list of line ids (comma separated).
        * ``KV_URL`` or ``REDIS_URL`` - back the cache with Redis instead of process memory.
        * ``PORT`` - listening port.
        * ``PUBLIC_DIR`` - directory with ``index.html`` and static assets.
        """

        redis_url = (os.getenv("KV_URL") or os.getenv("REDIS_URL") or "").strip()
        public_dir = (os.getenv("PUBLIC_DIR") or "").strip()
        port_raw = (os.getenv("PORT") or "").strip()
        try:
            port = int(port_raw) if port_raw else 5000
        except ValueError:
            raise RuntimeError(f"PORT must be an integer, got {port_raw!r}") from None

        return cls(
            upstream_url=(os.getenv("DFTRANS_GPS_URL") or "").strip() or DFTRANS_GPS_URL,
            upstream_timeout_s=_env_float("UPSTREAM_TIMEOUT_S", 10.0),
            upstream_connect_timeout_s=_env_float("UPSTREAM_CONNECT_TIMEOUT_S", 5.0),
            upstream_verify_tls=_env_flag("UPSTREAM_VERIFY_TLS", False),
            cache_duration_s=_env_float("CACHE_DURATION_S", 5.0),
            cache_single_flight=_env_flag("CACHE_SINGLE_FLIGHT", True),
            line_filter_enabled=_env_flag("LINE_FILTER_ENABLED", False),
            allowed_lines=_env_lines("LINE_FILTER_LINES", DEFAULT_ALLOWED_LINES),
            redis_url=redis_url or None,
            port=port,
            public_dir=Path(public_dir) if public_dir else DEFAULT_PUBLIC_DIR,
        )
