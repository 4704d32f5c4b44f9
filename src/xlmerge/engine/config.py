"""Load merge configuration from YAML."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from xlmerge.contracts.config import MergeConfig
from xlmerge.io.fileops import read_text_safe

CONFIG_FILENAME = "xlmerge.yaml"


def load_config(path: str | Path) -> MergeConfig:
    """Load a merge config from a YAML file. Raises ValueError when invalid."""
    try:
        data = yaml.safe_load(read_text_safe(path))
    except yaml.YAMLError as e:
        raise ValueError(f"Cannot parse config {path}: {e}") from e
    if data is None:
        return MergeConfig()
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping/object.")
    try:
        return MergeConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid config {path}: {e}") from e


def load_config_from_dir(directory: str | Path) -> MergeConfig | None:
    """Try to load xlmerge.yaml from a directory. Returns None if not found."""
    path = Path(directory) / CONFIG_FILENAME
    if path.exists():
        return load_config(path)
    return None
