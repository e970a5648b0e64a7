"""Persisted user settings (last used directory, resolution, patch file)."""

import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from respatch.fileio import PathLike, write_text
from respatch.models import U16_MAX

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "settings.yml"


class Settings(BaseModel):
    """Represents saved settings"""

    game_dir: Optional[str] = None
    patch_file: Optional[str] = None
    backup_dir: str = "backups"
    width: Optional[int] = Field(default=None, ge=0, le=U16_MAX)
    height: Optional[int] = Field(default=None, ge=0, le=U16_MAX)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def load_settings(path: PathLike = DEFAULT_SETTINGS_FILE) -> Settings:
    """Load settings from a YAML file.

    Returns default settings if the file doesn't exist or is empty.

    Raises:
        ValueError: If the file exists but is not valid settings YAML
    """
    path = Path(path)
    if not path.exists():
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (IOError, OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to load settings from {path}: {e}") from e

    if not data:
        return Settings()
    if not isinstance(data, dict):
        raise ValueError(f"Failed to load settings from {path}: expected a mapping")
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid settings in {path}: {e}") from e


def save_settings(settings: Settings, path: PathLike = DEFAULT_SETTINGS_FILE) -> None:
    """Write settings to a YAML file, leaving out unset values"""
    text = yaml.dump(settings.model_dump(exclude_none=True), default_flow_style=False)
    write_text(path, text)
    logger.debug("Saved settings to %s", path)
