"""Shared utilities for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from rich.console import Console

from ..anki.client import AnkiClient
from ..config import Config, load_config, set_config
from ..obsidian.vault import VaultStore
from ..utils.logging import configure_logging, get_logger

# Shared console for all commands
console = Console()


def get_config_and_logger(
    config_path: Path | None = None,
    log_level: str | None = None,
    vault_path: Path | None = None,
    verbose: bool = False,
) -> tuple[Config, Any]:
    """Load configuration and configure logging for one command.

    Args:
        config_path: Optional path to config file
        log_level: Console log level; defaults to the configured one
        vault_path: Optional vault override
        verbose: Show all log messages on terminal
    """
    overrides: dict[str, Any] = {}
    if vault_path is not None:
        overrides["vault_path"] = vault_path
    config = load_config(config_path, **overrides)
    set_config(config)

    configure_logging(
        log_level or config.log_level,
        log_file=config.log_file,
        verbose=verbose,
    )
    return config, get_logger("cli")


def build_client(config: Config) -> AnkiClient:
    return AnkiClient.from_config(config)


def build_store(config: Config) -> VaultStore:
    return VaultStore(config.vault_path)


def vault_relative(path: Path, config: Config) -> str:
    """Turn a CLI path argument into a vault-relative POSIX path."""
    if path.is_absolute():
        try:
            return path.resolve().relative_to(config.vault_path).as_posix()
        except ValueError:
            return path.as_posix()
    return path.as_posix()
