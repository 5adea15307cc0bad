"""Configuration management for the formula OCR service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _get_base_dir() -> Path:
    """Project root, used for the .env file and the log file."""
    return Path(__file__).resolve().parents[1]


# Try to load .env file if python-dotenv is available
try:
    from dotenv import load_dotenv

    env_path = _get_base_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)
except ImportError:
    # python-dotenv not installed, skip .env loading
    pass


# Credential sources, first non-empty wins
API_KEY_SOURCES = ("OPENAI_API_KEY", "GEMINI_API_KEY", "API_KEY")

DEFAULT_ENDPOINTS = (
    "https://api.openai.com/v1/chat/completions",
    "https://openai.api2d.net/v1/chat/completions",
)

DEFAULT_MEDIA_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})


def resolve_api_key(environ: Mapping[str, str] | None = None) -> Optional[str]:
    """Return the first non-empty API key among the known sources."""
    environ = os.environ if environ is None else environ
    for name in API_KEY_SOURCES:
        value = (environ.get(name) or "").strip()
        if value:
            return value
    return None


def _parse_endpoints(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_ENDPOINTS
    endpoints = tuple(url.strip() for url in raw.split(",") if url.strip())
    return endpoints or DEFAULT_ENDPOINTS


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class Settings:
    """Application settings."""

    base_dir: Path = _get_base_dir()
    host: str = os.getenv("FORMULA_OCR_HOST", "127.0.0.1")
    port: int = int(os.getenv("FORMULA_OCR_PORT", "8000"))
    log_level: str = os.getenv("FORMULA_OCR_LOG_LEVEL", "INFO")

    api_key: str | None = resolve_api_key()
    model: str = os.getenv("FORMULA_OCR_MODEL", "gemini-2.0-flash-exp")
    endpoints: tuple[str, ...] = _parse_endpoints(os.getenv("FORMULA_OCR_ENDPOINTS"))

    attempts_per_endpoint: int = int(os.getenv("FORMULA_OCR_ATTEMPTS", "3"))
    attempt_timeout: float = _env_float("FORMULA_OCR_ATTEMPT_TIMEOUT", 20.0)
    backoff_min: float = _env_float("FORMULA_OCR_BACKOFF_MIN", 1.0)
    backoff_max: float = _env_float("FORMULA_OCR_BACKOFF_MAX", 3.0)
    processing_timeout: float = _env_float("FORMULA_OCR_PROCESSING_TIMEOUT", 90.0)

    max_upload_bytes: int = int(os.getenv("FORMULA_OCR_MAX_UPLOAD_BYTES", str(3 * 1024 * 1024)))
    allowed_media_types: frozenset[str] = DEFAULT_MEDIA_TYPES
    max_tokens: int = 500
    temperature: float = 0


settings = Settings()
