"""
blockhtml configuration -- all environment variables in one place.

Read from environment at import time. Every value has a default, so the
library works without any environment set up.
"""

from __future__ import annotations

import os


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


class Settings:
    """Library defaults from environment variables."""

    # Conversion
    CSS_FRAMEWORK: str = os.environ.get("BLOCKHTML_CSS_FRAMEWORK", "none")
    CONTENT_HANDLING: str = os.environ.get("BLOCKHTML_CONTENT_HANDLING", "raw")

    # SSR pass
    EAGER_MEDIA_COUNT: int = _int_env("BLOCKHTML_EAGER_MEDIA_COUNT", 2)

    # Incremental rendering
    INITIAL_RENDER_COUNT: int = _int_env("BLOCKHTML_INITIAL_RENDER_COUNT", 10)
    INCREMENTAL_BATCH_SIZE: int = _int_env("BLOCKHTML_INCREMENTAL_BATCH_SIZE", 10)

    # Hydration
    HYDRATION_STRATEGY: str = os.environ.get("BLOCKHTML_HYDRATION_STRATEGY", "viewport")
    IDLE_TIMEOUT: float = _float_env("BLOCKHTML_IDLE_TIMEOUT", 2.0)  # seconds
    PRIORITY_BOOST: int = 100  # added to units listed in priority_blocks


# Singleton instance
settings = Settings()
