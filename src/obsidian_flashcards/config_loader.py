"""Config loader utilities."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config_settings import Config
from .exceptions import ConfigurationError
from .utils.logging import get_logger

CONFIG_ENV_VAR = "OBSIDIAN_FLASHCARDS_CONFIG"

_config: Config | None = None

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def normalize_key(key: str) -> str:
    """Map a plugin-style camelCase key onto the Config field name.

    ``inlineID`` -> ``inline_id``, ``defaultAnkiTag`` -> ``default_anki_tag``.
    """
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _find_config_file(config_path: Path | None) -> Path | None:
    logger = get_logger(__name__)
    candidate_paths: list[Path] = []

    if config_path:
        candidate_paths.append(config_path.expanduser())
    else:
        env_path = os.getenv(CONFIG_ENV_VAR)
        if env_path:
            candidate_paths.append(Path(env_path).expanduser())
        candidate_paths.append(Path.cwd() / "config.yaml")

    for candidate in candidate_paths:
        if candidate.exists():
            logger.debug("config_file_found", config_path=str(candidate))
            return candidate

    if config_path:
        msg = f"Config file not found: {config_path}"
        raise ConfigurationError(msg, suggestion="Check the --config path")

    logger.debug(
        "config_file_not_found", searched_paths=[str(p) for p in candidate_paths]
    )
    return None


def load_config(config_path: Path | None = None, **overrides: Any) -> Config:
    """Load configuration from config.yaml, environment and keyword overrides.

    Keyword overrides win over the YAML file, which wins over the environment.

    Raises:
        ConfigurationError: If the file is unreadable or a value is invalid
    """
    logger = get_logger(__name__)
    resolved_path = _find_config_file(config_path)

    yaml_data: dict[str, Any] = {}
    if resolved_path:
        try:
            with open(resolved_path, encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            msg = f"Failed to parse config file: {resolved_path}"
            raise ConfigurationError(
                msg,
                suggestion=(
                    "Check YAML syntax (indentation, colons, quotes). "
                    f"Original error: {e}"
                ),
            ) from e
        if not isinstance(yaml_data, dict):
            msg = f"Config file must contain a mapping: {resolved_path}"
            raise ConfigurationError(msg)

    config_kwargs = {normalize_key(str(k)): v for k, v in yaml_data.items()}
    config_kwargs.update({normalize_key(k): v for k, v in overrides.items()})

    try:
        config = Config(**config_kwargs)
    except ValidationError as e:
        logger.error(
            "config_validation_error",
            error=str(e),
            config_path=str(resolved_path) if resolved_path else None,
        )
        msg = f"Invalid configuration: {e}"
        raise ConfigurationError(msg) from e

    config.validate_config()
    logger.info(
        "config_loaded",
        vault_path=str(config.vault_path),
        anki_connect_url=config.anki_connect_url,
        config_path=str(resolved_path) if resolved_path else None,
    )
    return config


def get_config() -> Config:
    """Get singleton config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Config) -> None:
    """Set singleton config instance (for testing)."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset global config instance (for testing only)."""
    global _config
    _config = None


__all__ = [
    "Config",
    "get_config",
    "load_config",
    "normalize_key",
    "reset_config",
    "set_config",
]
