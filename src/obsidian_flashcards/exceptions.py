"""Centralized exception hierarchy for obsidian-flashcards.

All custom exceptions inherit from ObsidianFlashcardsError, so callers can
catch every sync-related failure with a single except clause.

Exception Hierarchy:
    ObsidianFlashcardsError (base)
     ConfigurationError - Configuration loading/validation errors
     DocumentError - Document store errors
        DocumentNotFoundError - Source document does not exist
        RewriteConflictError - Document changed on disk before rewrite
     DuplicateIdentityError - Two cards in one document share an id
     AnkiError - Anki-related errors
        AnkiConnectError - AnkiConnect communication errors
           AnkiTransportError - Remote unreachable / timeout / malformed reply
           AnkiRejectedError - Remote answered with an error for one request
              AnkiPermissionError - Permission handshake denied

Usage Examples:
    try:
        note_id = await client.add_note(note)
    except AnkiRejectedError as e:
        logger.warning("note_rejected", error=str(e))
    except AnkiTransportError:
        # Anki is down, stop talking to it for this document
        raise
"""

from typing import Any


class ObsidianFlashcardsError(Exception):
    """Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        suggestion: Optional suggestion for resolving the error
        context: Additional context for debugging (e.g., file paths, note ids)
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with the suggestion if available."""
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "message": self.message,
            "suggestion": self.suggestion,
            "context": self.context,
            "type": type(self).__name__,
        }


# Configuration Errors


class ConfigurationError(ObsidianFlashcardsError):
    """Configuration loading or validation errors.

    Raised when:
    - Config file is missing or malformed
    - Configuration values fail validation
    """


class DuplicateIdentityError(ObsidianFlashcardsError):
    """Two or more cards in one document carry the same identifier."""

    def __init__(self, duplicate_ids: list[int], source_path: str = ""):
        self.duplicate_ids = sorted(set(duplicate_ids))
        ids = ", ".join(str(i) for i in self.duplicate_ids)
        super().__init__(
            f"Duplicate card id(s) {ids}",
            suggestion="Remove the copied ^id marker so the card is re-created",
            context={"source_path": source_path, "duplicate_ids": self.duplicate_ids},
        )


# Document Errors


class DocumentError(ObsidianFlashcardsError):
    """Document store errors."""


class DocumentNotFoundError(DocumentError):
    """Raised when a requested document does not exist in the vault."""


class RewriteConflictError(DocumentError):
    """The document changed on disk between read and rewrite.

    The rewrite is abandoned for this pass; remote mutations already applied
    are kept and the ids are embedded on the next sync.
    """


# Anki Errors


class AnkiError(ObsidianFlashcardsError):
    """Anki-related errors."""


class AnkiConnectError(AnkiError):
    """AnkiConnect communication errors."""


class AnkiTransportError(AnkiConnectError):
    """AnkiConnect could not be reached or replied with garbage.

    Raised when:
    - Connection refused / Anki is not running
    - Request timed out
    - HTTP status error
    - Response is not the expected JSON envelope
    """


class AnkiRejectedError(AnkiConnectError):
    """AnkiConnect answered a well-formed response with a non-null error.

    Raised when:
    - Note is a duplicate or empty
    - Payload is malformed (unknown deck, model or field)
    """


class AnkiPermissionError(AnkiRejectedError):
    """AnkiConnect denied the permission handshake."""


__all__ = [
    "AnkiConnectError",
    "AnkiError",
    "AnkiPermissionError",
    "AnkiRejectedError",
    "AnkiTransportError",
    "ConfigurationError",
    "DocumentError",
    "DocumentNotFoundError",
    "DuplicateIdentityError",
    "ObsidianFlashcardsError",
    "RewriteConflictError",
]
