"""Configuration file loading utilities for FusionEngine."""

import json
import logging
from pathlib import Path

import yaml

from .exceptions import FusionConfigError
from .models import FusionOptions

logger = logging.getLogger(__name__)


def load_options_from_file(file_path: str | Path) -> FusionOptions:
    """
    Load fusion options from JSON or YAML file.

    Args:
        file_path: Path to configuration file (.json or .yaml/.yml)

    Returns:
        FusionOptions instance, clamped into valid ranges

    Raises:
        FileNotFoundError: If file doesn't exist
        FusionConfigError: If file format is unsupported or invalid
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    suffix = file_path.suffix.lower()

    if suffix == ".json":
        options_dict = _load_json(file_path)
    elif suffix in [".yaml", ".yml"]:
        options_dict = _load_yaml(file_path)
    else:
        raise FusionConfigError(
            f"Unsupported configuration file format: {suffix}. "
            "Supported formats: .json, .yaml, .yml"
        )

    if not isinstance(options_dict, dict):
        raise FusionConfigError("Configuration file must contain a mapping")

    options = FusionOptions.from_dict(options_dict).normalized()
    logger.info(f"Loaded fusion options from {file_path}")
    return options


def _load_json(file_path: Path) -> object:
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise FusionConfigError(f"Invalid JSON in configuration file: {e}")


def _load_yaml(file_path: Path) -> object:
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise FusionConfigError(f"Invalid YAML in configuration file: {e}")


def save_options_to_file(
    options: FusionOptions,
    file_path: str | Path,
    format: str = "json"
) -> None:
    """
    Save fusion options to file.

    Args:
        options: Options to save
        file_path: Path to save options
        format: File format ('json' or 'yaml')

    Raises:
        FusionConfigError: If format is unsupported
    """
    if format not in ("json", "yaml"):
        raise FusionConfigError(f"Unsupported format: {format}. Use 'json' or 'yaml'")

    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    options_dict = options.to_dict()

    with open(file_path, "w", encoding="utf-8") as f:
        if format == "json":
            json.dump(options_dict, f, indent=2)
        else:
            yaml.safe_dump(options_dict, f, default_flow_style=False)

    logger.info(f"Saved fusion options to {file_path}")
