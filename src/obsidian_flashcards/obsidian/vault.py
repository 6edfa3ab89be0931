"""Vault-backed document store.

Reads notes into immutable ``SourceDocument`` snapshots and writes them back
with an optimistic check that the file did not change in between.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from ..exceptions import DocumentError, DocumentNotFoundError, RewriteConflictError
from ..models import SourceDocument
from ..utils.logging import get_logger
from .metadata import extract_metadata

logger = get_logger(__name__)

IGNORED_DIRS = frozenset({".obsidian", ".trash", ".git"})


class VaultStore:
    """Markdown notes under a vault directory, addressed by relative path."""

    def __init__(self, vault_path: Path):
        self.vault_path = Path(vault_path)

    def _resolve(self, path: str) -> Path:
        full = (self.vault_path / path).resolve()
        if not full.is_relative_to(self.vault_path.resolve()):
            msg = f"Path escapes the vault: {path}"
            raise DocumentError(msg, context={"path": path})
        return full

    def _relative(self, full: Path) -> str:
        return full.relative_to(self.vault_path).as_posix()

    def _read_text(self, path: str) -> str:
        full = self._resolve(path)
        if not full.is_file():
            msg = f"Note not found: {path}"
            raise DocumentNotFoundError(
                msg,
                suggestion="Paths are relative to the vault root",
                context={"path": path, "vault": str(self.vault_path)},
            )
        try:
            with open(full, encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Failed to read note: {path}"
            raise DocumentError(msg, context={"path": path, "error": str(e)}) from e

    def read_sync(self, path: str) -> SourceDocument:
        text = self._read_text(path)
        metadata = extract_metadata(text)
        return SourceDocument(
            path=path,
            text=text,
            headings=tuple(metadata.headings),
            tags=tuple(metadata.tags),
            deck_override=metadata.deck_override,
            frontmatter_error=metadata.frontmatter_error,
        )

    async def read(self, path: str) -> SourceDocument:
        """Snapshot a note with its headings, tags and deck override."""
        return await asyncio.to_thread(self.read_sync, path)

    def list_documents_sync(self) -> list[str]:
        if not self.vault_path.is_dir():
            logger.warning("vault_not_found", vault_path=str(self.vault_path))
            return []

        paths = []
        for md_file in self.vault_path.rglob("*.md"):
            relative = md_file.relative_to(self.vault_path)
            if any(part in IGNORED_DIRS for part in relative.parts[:-1]):
                continue
            if md_file.is_file():
                paths.append(relative.as_posix())
        paths.sort()
        logger.debug("discovered_notes", count=len(paths), vault=str(self.vault_path))
        return paths

    async def list_documents(self) -> list[str]:
        return await asyncio.to_thread(self.list_documents_sync)

    def files_with_tag_sync(self, tag: str) -> list[str]:
        matches = []
        for path in self.list_documents_sync():
            try:
                document = self.read_sync(path)
            except DocumentError as e:
                logger.warning("note_unreadable", path=path, error=str(e))
                continue
            if document.has_tag(tag):
                matches.append(path)
        logger.info("tagged_notes_found", tag=tag, count=len(matches))
        return matches

    async def files_with_tag(self, tag: str) -> list[str]:
        """Notes carrying ``tag`` in frontmatter or inline, in path order."""
        return await asyncio.to_thread(self.files_with_tag_sync, tag)

    def write_sync(self, path: str, new_text: str, expected_text: str) -> None:
        current = self._read_text(path)
        if current != expected_text:
            logger.warning("rewrite_conflict", path=path)
            msg = f"Note changed on disk during sync: {path}"
            raise RewriteConflictError(
                msg,
                suggestion="Run the sync again to embed the new card ids",
                context={"path": path},
            )
        full = self._resolve(path)
        try:
            with open(full, "w", encoding="utf-8", newline="") as f:
                f.write(new_text)
        except OSError as e:
            msg = f"Failed to write note: {path}"
            raise DocumentError(msg, context={"path": path, "error": str(e)}) from e
        logger.info("note_rewritten", path=path)

    async def write(self, path: str, new_text: str, expected_text: str) -> None:
        """Replace a note's text if it still equals ``expected_text``.

        Raises:
            RewriteConflictError: If the note changed since it was read
        """
        await asyncio.to_thread(self.write_sync, path, new_text, expected_text)
