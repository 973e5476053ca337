"""
Configuration loading.

The engine accepts an already-parsed mapping; reading JSON or YAML from disk
is only offered for the developer CLI and tests.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .errors import ConfigurationError, ErrorContext
from .ir import FormConfig

logger = logging.getLogger(__name__)

YAML_SUFFIXES = frozenset({".yaml", ".yml"})


def _pointer(loc: tuple[int | str, ...]) -> str:
    parts: list[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        else:
            parts.append(f".{item}" if parts else str(item))
    return "".join(parts)


def load_config(data: Mapping[str, Any], source: str | None = None) -> FormConfig:
    """Build a FormConfig from a parsed mapping.

    Raises:
        ConfigurationError: If the mapping does not match the configuration schema.
    """
    try:
        return FormConfig.model_validate(data)
    except ValidationError as e:
        problems = [f"{_pointer(err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()]
        context = ErrorContext(source=source) if source else None
        raise ConfigurationError(
            "Configuration does not match the schema", problems=problems, context=context
        ) from e


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML document into a mapping."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration: {e}") from e

    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping at the top level")
    return data


def load_config_file(path: Path | str) -> FormConfig:
    """Load and validate a configuration file (JSON, or YAML by suffix)."""
    path = Path(path)
    logger.debug("Loading configuration from %s", path)
    return load_config(read_config_file(path), source=str(path))
