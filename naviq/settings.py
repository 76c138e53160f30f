"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(slots=True)
class Settings:
    """Runtime configuration.

    Every field maps to an environment variable:
    - GEMINI_API_KEY: enables the Gemini collaborators when set.
    - NAVIQ_GEMINI_MODEL: model used for every AI call.
    - NAVIQ_AI_TIMEOUT_S: upper bound for one disambiguation call.
    - NAVIQ_HISTORY_TTL_S: conversation inactivity window.
    - NAVIQ_MAX_CANDIDATES: shortlist size handed to the disambiguator.
    - NAVIQ_CORS_ORIGINS: `*` or a comma separated origin list.
    - NAVIQ_LOG_LEVEL: root logging level.
    - API_HOST, API_PORT, API_RELOAD: uvicorn bind address and reload mode.
    """

    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    ai_timeout_s: float = 8.0
    history_ttl_s: float = 3600.0
    max_candidates: int = 15
    cors_origins: str = "*"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    @property
    def ai_enabled(self) -> bool:
        return bool(self.gemini_api_key)

    @classmethod
    def from_env(cls) -> Settings:
        settings = cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", "").strip(),
            gemini_model=os.getenv("NAVIQ_GEMINI_MODEL", "gemini-2.5-flash").strip() or "gemini-2.5-flash",
            ai_timeout_s=_float_env("NAVIQ_AI_TIMEOUT_S", 8.0),
            history_ttl_s=_float_env("NAVIQ_HISTORY_TTL_S", 3600.0),
            max_candidates=_int_env("NAVIQ_MAX_CANDIDATES", 15),
            cors_origins=os.getenv("NAVIQ_CORS_ORIGINS", "*").strip() or "*",
            log_level=os.getenv("NAVIQ_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            api_host=os.getenv("API_HOST", "0.0.0.0").strip() or "0.0.0.0",
            api_port=_int_env("API_PORT", 8000),
            api_reload=os.getenv("API_RELOAD", "false").strip().lower() in ("1", "true", "yes"),
        )
        if settings.ai_timeout_s <= 0:
            raise ValueError("NAVIQ_AI_TIMEOUT_S must be > 0")
        if settings.history_ttl_s <= 0:
            raise ValueError("NAVIQ_HISTORY_TTL_S must be > 0")
        if settings.max_candidates <= 0:
            raise ValueError("NAVIQ_MAX_CANDIDATES must be > 0")
        if not 0 < settings.api_port < 65536:
            raise ValueError("API_PORT must be between 1 and 65535")
        return settings
