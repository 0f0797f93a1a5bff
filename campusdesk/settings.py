"""Centralised configuration for the ask pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(slots=True)
class Settings:
    """Derive service configuration from the environment."""

    environment: str = field(default_factory=lambda: os.environ.get("CAMPUSDESK_ENV", "production").strip().lower())
    data_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("CAMPUSDESK_DATA_DIR", "database")).expanduser()
    )

    gemini_api_key: Optional[str] = field(default_factory=lambda: _env_str("GEMINI_API_KEY"))
    gemini_classifier_model: str = field(
        default_factory=lambda: os.environ.get("GEMINI_CLASSIFIER_MODEL", "gemini-1.5-flash")
    )
    gemini_direct_models: Tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "GEMINI_DIRECT_MODELS", "gemini-1.5-flash,gemini-pro,models/gemini-1.5-flash"
        )
    )
    gemini_timeout: float = field(default_factory=lambda: _env_float("GEMINI_TIMEOUT", 30.0))

    rag_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "RAG_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
    )
    rag_model: str = field(default_factory=lambda: os.environ.get("RAG_MODEL", "gemini-2.5-flash"))
    rag_query_timeout: float = field(default_factory=lambda: _env_float("RAG_QUERY_TIMEOUT", 45.0))

    ask_deadline_seconds: float = field(default_factory=lambda: _env_float("ASK_DEADLINE_SECONDS", 120.0))
    grounding_response_cap: int = field(default_factory=lambda: _env_int("GROUNDING_RESPONSE_CAP", 10))
    provider_log_response_chars: int = field(default_factory=lambda: _env_int("PROVIDER_LOG_RESPONSE_CHARS", 500))
    persistence_queue_size: int = field(default_factory=lambda: _env_int("PERSISTENCE_QUEUE_SIZE", 1000))

    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").strip().upper())
    log_requests: bool = field(default_factory=lambda: _env_bool("LOG_REQUESTS", True))

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def load_settings(**overrides) -> Settings:
    """Build a fresh ``Settings`` instance, applying keyword overrides."""

    settings = Settings()
    for key, value in overrides.items():
        if not hasattr(settings, key):
            raise TypeError(f"unknown setting: {key}")
        setattr(settings, key, value)
    if not isinstance(settings.data_dir, Path):
        settings.data_dir = Path(settings.data_dir)
    return settings


__all__ = ["Settings", "load_settings"]
