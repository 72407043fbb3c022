from __future__ import annotations

"""Settings loaded from environment variables.

``get_settings`` reads the ``TRENDLAB_*`` variables once and caches the
resulting ``Settings`` object.  Tests may call ``reset_settings_cache`` to
force a reload after changing the environment at runtime.
"""

from dataclasses import dataclass
import logging
import os
from functools import lru_cache


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    out_dir: str | None = None
    log_level: str = "INFO"
    std_resid_threshold: float = 2.0
    max_workers: int = 1


@lru_cache()
def get_settings() -> Settings:
    """Return settings loaded from environment variables."""

    out_dir = os.getenv("TRENDLAB_OUT_DIR") or None
    log_level = os.getenv("TRENDLAB_LOG_LEVEL", "INFO").upper()
    threshold = float(os.getenv("TRENDLAB_STD_RESID_THRESHOLD", "2.0"))
    max_workers = int(os.getenv("TRENDLAB_MAX_WORKERS", "1"))
    return Settings(
        out_dir=out_dir,
        log_level=log_level,
        std_resid_threshold=threshold,
        max_workers=max(max_workers, 1),
    )


def reset_settings_cache() -> None:
    """Clear the settings cache (mainly for tests)."""

    get_settings.cache_clear()


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger for command line runs."""

    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
