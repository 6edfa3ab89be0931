"""Settings model for the flashcards sync."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Config(BaseSettings):
    """Sync configuration using pydantic-settings.

    Field names are the snake_case forms of the plugin settings
    (``contextAwareMode`` -> ``context_aware_mode``).
    """

    model_config = SettingsConfigDict(
        env_prefix="OBSIDIAN_FLASHCARDS_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Vault
    vault_path: Path = Field(
        default=Path(), validate_default=True, description="Path to Obsidian vault"
    )
    vault_name: str | None = Field(
        default=None,
        description="Vault name used in obsidian:// source links (default: folder name)",
    )

    # AnkiConnect
    anki_connect_url: str = Field(
        default="http://127.0.0.1:8765", description="AnkiConnect URL"
    )
    anki_connect_version: int = Field(default=6, description="AnkiConnect API version")
    anki_connect_timeout: float = Field(
        default=10.0, gt=0, description="Request timeout in seconds"
    )
    anki_connect_permission: bool = Field(
        default=False,
        description="Run the requestPermission handshake before other calls",
    )

    # Card extraction
    context_aware_mode: bool = Field(
        default=True, description="Prefix fronts with the heading breadcrumb"
    )
    source_support: bool = Field(
        default=False, description="Append a back-link to the source note"
    )
    code_highlight_support: bool = Field(
        default=False, description="Highlight fenced code with Pygments"
    )
    inline_id: bool = Field(
        default=False,
        description="Write new ^id markers at the end of the card line instead of a new line",
    )
    context_separator: str = Field(default=" > ", description="Breadcrumb join string")
    flashcards_tag: str = Field(
        default="card", description="Tag marking block cards and batch documents"
    )
    inline_separator: str = Field(default="::", description="Inline card separator")
    inline_separator_reverse: str = Field(
        default=":::", description="Inline separator producing a reversed twin"
    )

    # Decks and tags
    deck: str = Field(default="Default", description="Fixed deck name")
    folder_based_deck: bool = Field(
        default=True, description="One deck per vault folder, created on demand"
    )
    default_anki_tag: str = Field(
        default="obsidian", description="Tag stamped on every created note"
    )

    # Anki note types
    basic_model_name: str = Field(default="Basic")
    basic_front_field: str = Field(default="Front")
    basic_back_field: str = Field(default="Back")
    cloze_model_name: str = Field(default="Cloze")
    cloze_text_field: str = Field(default="Text")
    cloze_extra_field: str = Field(default="Back Extra")

    # Runtime
    liveness_interval: float = Field(
        default=15.0, gt=0, description="Seconds between connectivity pings"
    )
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Path | None = Field(default=None, description="Optional JSON log file")

    @field_validator("vault_path", mode="before")
    @classmethod
    def parse_vault_path(cls, v: Any) -> Path:
        """Convert string to an absolute Path."""
        if v is None or v == "":
            return Path().resolve()
        if isinstance(v, (str, Path)):
            return Path(v).expanduser().resolve()
        msg = f"vault_path must be string or Path, got {type(v).__name__}"
        raise ValueError(msg)

    @field_validator("flashcards_tag", mode="before")
    @classmethod
    def strip_tag_hash(cls, v: Any) -> Any:
        """Accept the tag with or without its leading '#'."""
        if isinstance(v, str):
            return v.strip().lstrip("#")
        return v

    @property
    def effective_vault_name(self) -> str:
        """Vault name for source links."""
        return self.vault_name or self.vault_path.name

    def validate_config(self) -> None:
        """Cross-field validation, run once at load time.

        Raises:
            ConfigurationError: If any setting is unusable
        """
        for name in ("inline_separator", "inline_separator_reverse", "context_separator"):
            if not getattr(self, name):
                msg = f"{name} must not be empty"
                raise ConfigurationError(msg, suggestion=f"Set {name} in config.yaml")

        if self.inline_separator == self.inline_separator_reverse:
            msg = (
                "inline_separator and inline_separator_reverse must differ: "
                f"{self.inline_separator!r}"
            )
            raise ConfigurationError(
                msg, suggestion="Use '::' and ':::' (the defaults)"
            )

        for name in ("flashcards_tag", "default_anki_tag"):
            value = getattr(self, name)
            if not value or any(ch.isspace() for ch in value):
                msg = f"{name} must be a single non-empty tag: {value!r}"
                raise ConfigurationError(
                    msg, suggestion=f"Remove whitespace from {name}"
                )

        if not self.deck.strip():
            msg = "deck must not be empty"
            raise ConfigurationError(msg, suggestion="Set deck, e.g. 'Default'")


__all__ = ["Config"]
