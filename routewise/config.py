"""
Configuration for RouteWise.

Settings are read from environment variables, with a ``.env`` file in
the working directory loaded first if present (variables already set in
the shell win). The engine itself never reads the environment: callers
build a ``Settings`` once with ``load_settings()`` and pass it in.

Variables:
    MAPBOX_ACCESS_TOKEN            – Mapbox token; empty disables the provider.
    MAPBOX_BASE_URL                – Mapbox API root.
    ROUTEWISE_PROVIDER_TIMEOUT_S   – Per-request timeout in seconds.
    ROUTEWISE_MATRIX_CONCURRENCY   – Simultaneous provider calls (1–8).
    ROUTEWISE_EXACT_MAX_STOPS      – Largest tour solved by exhaustive search (2–10).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MAPBOX_BASE_URL = "https://api.mapbox.com"
DEFAULT_PROVIDER_TIMEOUT_S = 10.0
DEFAULT_MATRIX_CONCURRENCY = 4
MAX_MATRIX_CONCURRENCY = 8
DEFAULT_EXACT_MAX_STOPS = 8
MAX_EXACT_MAX_STOPS = 10


@dataclass(frozen=True)
class Settings:
    mapbox_access_token: str = ""
    mapbox_base_url: str = DEFAULT_MAPBOX_BASE_URL
    provider_timeout_s: float = DEFAULT_PROVIDER_TIMEOUT_S
    matrix_concurrency: int = DEFAULT_MATRIX_CONCURRENCY
    exact_max_stops: int = DEFAULT_EXACT_MAX_STOPS

    @property
    def provider_enabled(self) -> bool:
        return bool(self.mapbox_access_token)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Read settings from the environment (and ``env_file`` or ``.env``).

    Raises:
        ValueError: if a numeric variable cannot be parsed.
    """
    load_dotenv(env_file, override=False)
    concurrency = _env_int("ROUTEWISE_MATRIX_CONCURRENCY", DEFAULT_MATRIX_CONCURRENCY)
    exact_max_stops = _env_int("ROUTEWISE_EXACT_MAX_STOPS", DEFAULT_EXACT_MAX_STOPS)
    return Settings(
        mapbox_access_token=os.getenv("MAPBOX_ACCESS_TOKEN", "").strip(),
        mapbox_base_url=os.getenv("MAPBOX_BASE_URL", DEFAULT_MAPBOX_BASE_URL).rstrip("/"),
        provider_timeout_s=_env_float("ROUTEWISE_PROVIDER_TIMEOUT_S", DEFAULT_PROVIDER_TIMEOUT_S),
        matrix_concurrency=max(1, min(concurrency, MAX_MATRIX_CONCURRENCY)),
        exact_max_stops=max(2, min(exact_max_stops, MAX_EXACT_MAX_STOPS)),
    )
