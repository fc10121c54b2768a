"""
Load and save the JSON configuration file.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..models.config import FullConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = Path("storage/config.json")


def get_config(path: Optional[Path] = None) -> FullConfig:
    """Load configuration from file or return defaults."""
    config_file = Path(path) if path else CONFIG_FILE
    if config_file.exists():
        try:
            with open(config_file) as f:
                data = json.load(f)
                return FullConfig(**data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid config file {config_file}, using defaults: {e}")
    return FullConfig()


def save_config(config: FullConfig, path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    config_file = Path(path) if path else CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config.model_dump(mode="json"), f, indent=2)
