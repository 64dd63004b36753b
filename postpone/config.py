from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

BACKENDS = ("redis", "rest", "memory")


@dataclass(slots=True)
class AppConfig:
    store_backend: str
    redis_url: str
    store_prefix: str
    backend_url: str | None
    backend_api_key: str | None
    backend_timeout: float
    host: str
    port: int


def _parse_int(raw: str | None, default: int) -> int:
    raw = (raw or "").strip()
    try:
        return int(raw) if raw else default
    except Exception:
        return default


def _parse_float(raw: str | None, default: float) -> float:
    raw = (raw or "").strip()
    try:
        value = float(raw) if raw else default
    except Exception:
        return default
    return value if value > 0 else default


def load_config(env: dict[str, str] | None = None) -> AppConfig:
    e: dict[str, Any] = dict(os.environ)
    if env:
        e.update(env)
    backend = (e.get("STORE_BACKEND") or "redis").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"STORE_BACKEND must be one of {', '.join(BACKENDS)}; got {backend!r}")
    port = _parse_int(e.get("PORT"), 8000)
    return AppConfig(
        store_backend=backend,
        redis_url=e.get("REDIS_URL") or "redis://localhost:6379/0",
        store_prefix=(e.get("STORE_PREFIX") or "postpone").rstrip(":"),
        backend_url=(e.get("BACKEND_URL") or "").strip() or None,
        backend_api_key=e.get("BACKEND_API_KEY") or None,
        backend_timeout=_parse_float(e.get("BACKEND_TIMEOUT"), 10.0),
        host=e.get("HOST", "127.0.0.1"),
        port=port if 0 < port < 65536 else 8000,
    )


__all__ = ["AppConfig", "BACKENDS", "load_config"]
