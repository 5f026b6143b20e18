"""Configuration management.

`.env` is loaded at import time (override the path with `LIVEDASH_ENV_PATH`).
The YAML config is loaded on first use and cached:

    from livedash.config import get_config
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from livedash.config.loader import default_config_path, load_config
from livedash.config.schema import DashboardConfig, LiveDashConfig

# Project root (relative to this file)
_project_root = Path(__file__).parent.parent.parent

# Load .env (allow override for tests)
_env_path = os.getenv("LIVEDASH_ENV_PATH")
_dotenv_path = Path(_env_path).expanduser() if _env_path else _project_root / ".env"
if not _dotenv_path.is_absolute():
    _dotenv_path = (_project_root / _dotenv_path).resolve()

load_dotenv(_dotenv_path)

_config: Optional[LiveDashConfig] = None


def get_config(path: Optional[Path] = None) -> LiveDashConfig:
    """Return the process-wide config, loading it on first call."""
    global _config  # noqa: PLW0603 - Process-wide config cache
    if _config is None:
        _config = load_config(path or default_config_path())
    return _config


def reset_config() -> None:
    """Drop the cached config (tests only)."""
    global _config  # noqa: PLW0603
    _config = None


__all__ = ["DashboardConfig", "LiveDashConfig", "get_config", "load_config", "reset_config"]
