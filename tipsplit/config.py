# tipsplit/config.py
from __future__ import annotations

import logging
import os
from typing import List, Optional

from dotenv import load_dotenv, find_dotenv

from tipsplit.schemas import EngineConfig

load_dotenv(find_dotenv(usecwd=True))

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Engine knobs
# -----------------------------------------------------------------------------

_ROUNDING_CHOICES = {"nearest", "up"}
_SOURCE_CHOICES = {"external", "uploaded"}
_DEDUPE_CHOICES = {"name", "record"}


def _env_choice(name: str, default: str, choices: set) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    if raw not in choices:
        logger.warning("Ignoring %s=%r (expected one of %s); using %r", name, raw, sorted(choices), default)
        return default
    return raw


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("Ignoring non-numeric %s; using %s", name, default)
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("Ignoring non-integer %s; using %s", name, default)
        return default


def get_engine_config() -> EngineConfig:
    """
    Read the engine configuration from the environment.
    Read on every call so tests (and operators) can flip env vars at runtime.
    """
    return EngineConfig(
        payout_rounding=_env_choice("PAYOUT_ROUNDING", "nearest", _ROUNDING_CHOICES),
        regular_period_source=_env_choice("REGULAR_PERIOD_SOURCE", "uploaded", _SOURCE_CHOICES),
        dedupe=_env_choice("EXTRACT_DEDUPE", "name", _DEDUPE_CHOICES),
    )


# -----------------------------------------------------------------------------
# OCR transport (Azure Document Intelligence)
# -----------------------------------------------------------------------------

AZURE_DOCINTEL_ENDPOINT: str = (os.getenv("AZURE_DOCINTEL_ENDPOINT") or "").rstrip("/")
AZURE_DOCINTEL_KEY: Optional[str] = os.getenv("AZURE_DOCINTEL_KEY")
AZURE_DOCINTEL_API_VERSION: str = os.getenv("AZURE_DOCINTEL_API_VERSION", "2024-11-30")
AZURE_DOCINTEL_MODEL: str = os.getenv("AZURE_DOCINTEL_MODEL", "prebuilt-layout")

OCR_POLL_INTERVAL_SECONDS: float = _env_float("OCR_POLL_INTERVAL_SECONDS", 1.0)
OCR_MAX_POLL_ATTEMPTS: int = _env_int("OCR_MAX_POLL_ATTEMPTS", 30)
OCR_HTTP_TIMEOUT_SECONDS: float = _env_float("OCR_HTTP_TIMEOUT_SECONDS", 30.0)


# -----------------------------------------------------------------------------
# HTTP surface
# -----------------------------------------------------------------------------

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


def cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]
