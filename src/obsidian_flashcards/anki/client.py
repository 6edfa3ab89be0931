"""AnkiConnect operations used by the sync."""

from __future__ import annotations

from types import TracebackType
from typing import Any, Literal, cast

from ..config_settings import Config
from ..exceptions import AnkiPermissionError, AnkiRejectedError, AnkiTransportError
from ..models import AnkiNote, RemoteNote
from ..utils.logging import get_logger
from .http_client import AnkiHttpClient

logger = get_logger(__name__)


def _quote(value: str) -> str:
    """Quote a value for an Anki search query."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class AnkiClient:
    """Typed wrapper over the AnkiConnect actions the sync needs."""

    def __init__(self, http_client: AnkiHttpClient):
        self._http_client = http_client
        self._known_decks: set[str] = set()

    @classmethod
    def from_config(cls, config: Config) -> AnkiClient:
        return cls(
            AnkiHttpClient(
                config.anki_connect_url,
                version=config.anki_connect_version,
                timeout=config.anki_connect_timeout,
            )
        )

    async def ping(self) -> bool:
        """True if AnkiConnect answers; never raises."""
        try:
            await self.version()
        except (AnkiTransportError, AnkiRejectedError) as e:
            logger.debug("anki_ping_failed", error=str(e))
            return False
        return True

    async def version(self) -> int:
        return cast("int", await self._http_client.invoke("version"))

    async def request_permission(self) -> dict[str, Any]:
        """Run the AnkiConnect permission handshake.

        Raises:
            AnkiPermissionError: If the user denied access
        """
        result = cast(
            "dict[str, Any]", await self._http_client.invoke("requestPermission")
        )
        if not isinstance(result, dict) or result.get("permission") != "granted":
            msg = "AnkiConnect permission denied"
            raise AnkiPermissionError(
                msg,
                suggestion="Accept the permission prompt in Anki and sync again",
            )
        logger.info("anki_permission_granted", version=result.get("version"))
        return result

    async def deck_names(self) -> list[str]:
        return cast("list[str]", await self._http_client.invoke("deckNames"))

    async def create_deck(self, deck_name: str) -> int:
        deck_id = cast(
            "int", await self._http_client.invoke("createDeck", {"deck": deck_name})
        )
        logger.info("deck_created", deck=deck_name, deck_id=deck_id)
        return deck_id

    async def ensure_deck(self, deck_name: str) -> None:
        """Create ``deck_name`` unless it already exists."""
        if deck_name in self._known_decks:
            return
        existing = await self.deck_names()
        self._known_decks.update(existing)
        if deck_name not in self._known_decks:
            await self.create_deck(deck_name)
            self._known_decks.add(deck_name)

    async def find_note_ids(self, query: str) -> list[int]:
        return cast(
            "list[int]", await self._http_client.invoke("findNotes", {"query": query})
        )

    async def notes_info(self, note_ids: list[int]) -> list[dict[str, Any]]:
        if not note_ids:
            return []
        return cast(
            "list[dict[str, Any]]",
            await self._http_client.invoke("notesInfo", {"notes": note_ids}),
        )

    async def find_notes_by_deck_and_tag(
        self, deck_name: str, tag: str
    ) -> list[RemoteNote]:
        """Notes in ``deck_name`` (and its subdecks) carrying ``tag``."""
        query = f"deck:{_quote(deck_name)} tag:{_quote(tag)}"
        note_ids = await self.find_note_ids(query)
        infos = await self.notes_info(note_ids)
        notes = []
        for info in infos:
            # notesInfo returns {} for ids deleted in the meantime
            if not info or "noteId" not in info:
                continue
            notes.append(
                RemoteNote(
                    external_id=int(info["noteId"]),
                    deck_name=deck_name,
                    fields={
                        name: field.get("value", "")
                        for name, field in info.get("fields", {}).items()
                    },
                    tags=tuple(info.get("tags", [])),
                    model_name=info.get("modelName", ""),
                )
            )
        logger.debug(
            "remote_notes_found", deck=deck_name, tag=tag, count=len(notes)
        )
        return notes

    async def add_note(self, note: AnkiNote) -> int:
        payload = {
            "deckName": note.deck_name,
            "modelName": note.model_name,
            "fields": note.fields,
            "tags": list(note.tags),
            "options": {"allowDuplicate": True},
        }
        note_id = await self._http_client.invoke("addNote", {"note": payload})
        if note_id is None:
            msg = "AnkiConnect returned no id for the new note"
            raise AnkiRejectedError(msg, context={"deck": note.deck_name})
        return int(note_id)

    async def update_note_fields(self, note_id: int, fields: dict[str, str]) -> None:
        await self._http_client.invoke(
            "updateNoteFields", {"note": {"id": note_id, "fields": fields}}
        )

    async def add_tags(self, note_ids: list[int], tags: list[str]) -> None:
        if not note_ids or not tags:
            return
        await self._http_client.invoke(
            "addTags", {"notes": note_ids, "tags": " ".join(tags)}
        )

    async def delete_notes(self, note_ids: list[int]) -> None:
        if not note_ids:
            return
        await self._http_client.invoke("deleteNotes", {"notes": note_ids})

    async def close(self) -> None:
        await self._http_client.aclose()

    async def __aenter__(self) -> AnkiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        await self.close()
        return False
