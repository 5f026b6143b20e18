import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from livedash.config.schema import LiveDashConfig
from livedash.utils import expand_env_vars

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.livedash/livedash.yml"


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if hasattr(model, "model_extra") and model.model_extra:
        logger.warning("Unknown keys in %s at %s: %s", path, config_path, list(model.model_extra.keys()))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)
        elif isinstance(field_value, dict):
            for key, value in field_value.items():
                if isinstance(value, BaseModel):
                    _warn_unknown_keys(value, f"{path}.{field_name}.{key}", config_path)
        elif isinstance(field_value, list):
            for index, value in enumerate(field_value):
                if isinstance(value, BaseModel):
                    _warn_unknown_keys(value, f"{path}.{field_name}[{index}]", config_path)


def default_config_path() -> Path:
    """Config path from `LIVEDASH_CONFIG`, else the per-user default."""
    return Path(os.getenv("LIVEDASH_CONFIG") or DEFAULT_CONFIG_PATH).expanduser()


def load_config(path: Optional[Path] = None) -> LiveDashConfig:
    """Load and validate configuration from a YAML file.

    A missing or unreadable file yields the defaults. Invalid values raise
    pydantic's `ValidationError`.
    """
    if path is None:
        path = default_config_path()
    if not path.exists():
        logger.debug("No config file at %s; using defaults", path)
        return LiveDashConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to read config file %s: %s", path, e)
        return LiveDashConfig()

    expanded = expand_env_vars(raw)
    model = LiveDashConfig.model_validate(expanded)
    _warn_unknown_keys(model, "root", path)
    return model
