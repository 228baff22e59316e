"""
Runtime configuration.

Sources, lowest to highest priority:

  1. Field defaults on CompanionConfig
  2. ``companion.yaml`` in the working directory, or the file named by
     ``DND_COMPANION_CONFIG``
  3. Environment variables (a ``.env`` file is loaded first)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .export import EXPORT_FORMAT_VERSION

logger = logging.getLogger("dnd-companion")

DEFAULT_CONFIG_FILE = "companion.yaml"

ENV_STORAGE_DIR = "DND_COMPANION_STORAGE_DIR"
ENV_LOG_LEVEL = "DND_COMPANION_LOG_LEVEL"
ENV_CONFIG_FILE = "DND_COMPANION_CONFIG"


class CompanionConfig(BaseModel):
    """Settings for storage location and logging."""

    storage_dir: Path = Field(
        default=Path("dnd_data"),
        description="Directory holding characters, notes and relationships",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level name (DEBUG, INFO, WARNING, ERROR)",
    )
    export_format_version: str = Field(
        default=EXPORT_FORMAT_VERSION,
        description="Version stamped into character exports",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level


def _read_yaml(path: Path) -> dict:
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"⚠️ Config file {path} is not a mapping, ignoring it")
        return {}
    return data


def load_config(config_file: str | Path | None = None) -> CompanionConfig:
    """Build the configuration from defaults, YAML and environment.

    Args:
        config_file: Explicit YAML path. Falls back to ``DND_COMPANION_CONFIG``
            and then ``companion.yaml`` in the working directory.

    Returns:
        The validated CompanionConfig.

    Raises:
        pydantic.ValidationError: A configured value is invalid.
    """
    if not load_dotenv():
        logger.debug("📄 No .env file found, using process environment only")

    values: dict = {}

    path = Path(config_file or os.getenv(ENV_CONFIG_FILE) or DEFAULT_CONFIG_FILE)
    if path.exists():
        values.update(_read_yaml(path))
        logger.debug(f"📄 Loaded config file {path}")
    elif config_file or os.getenv(ENV_CONFIG_FILE):
        logger.warning(f"⚠️ Config file {path} not found, using defaults")

    if storage_dir := os.getenv(ENV_STORAGE_DIR):
        values["storage_dir"] = storage_dir
    if log_level := os.getenv(ENV_LOG_LEVEL):
        values["log_level"] = log_level

    config = CompanionConfig(**values)
    config.storage_dir = config.storage_dir.expanduser().resolve()
    logger.debug(f"📂 Data path: {config.storage_dir}")
    return config


def configure_logging(config: CompanionConfig) -> None:
    """Apply the configured level to the package loggers."""
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logging.getLogger("dnd-companion").setLevel(config.log_level)
