"""AnkiConnect client and note rendering."""

from .client import AnkiClient
from .http_client import AnkiHttpClient
from .note_builder import NoteBuilder, build_note, source_tag

__all__ = [
    "AnkiClient",
    "AnkiHttpClient",
    "NoteBuilder",
    "build_note",
    "source_tag",
]
