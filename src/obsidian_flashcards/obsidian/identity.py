"""Card identity: reading, checking and embedding ``^<note id>`` markers.

A card's remote note id lives in the note text right after the card, either
at the end of the card's last line (``Q::A ^1700000000001``) or on a line of
its own directly below it. Reversed twins share one marker holding both ids
in slot order.

Anki note ids are creation timestamps in milliseconds, so a marker holds
exactly 13 digits. Shorter forms such as ``c ^2`` are note content.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from collections.abc import Iterable

from ..exceptions import DuplicateIdentityError
from ..models import FlashcardCandidate, SourceDocument
from ..utils.logging import get_logger
from .metadata import FENCE_RE

logger = get_logger(__name__)

TRAILING_IDS_RE = re.compile(r"(?:[ \t]+\^\d{13})+[ \t]*$")
MARKER_LINE_RE = re.compile(r"^[ \t]*\^\d{13}(?:[ \t]+\^\d{13})*[ \t]*$")
ID_RE = re.compile(r"\^(\d{13})")


def _strip_eol(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


def split_trailing_ids(line: str) -> tuple[str, list[int]]:
    """Split ``"Q::A ^1 ^2"`` into ``("Q::A", [1, 2])``."""
    body, _ = _strip_eol(line)
    match = TRAILING_IDS_RE.search(body)
    if not match:
        return body, []
    return body[: match.start()], [int(i) for i in ID_RE.findall(match.group(0))]


def marker_line_ids(line: str) -> list[int] | None:
    """Ids on a marker-only line, or None if the line is anything else."""
    body, _ = _strip_eol(line)
    if not MARKER_LINE_RE.match(body):
        return None
    return [int(i) for i in ID_RE.findall(body)]


def is_marker_line(line: str) -> bool:
    return marker_line_ids(line) is not None


def format_marker(ids: Iterable[int]) -> str:
    return " ".join(f"^{i}" for i in ids)


def ids_at(lines: list[str], end_line: int) -> list[int]:
    """Ids attached to a card whose last content line is ``end_line``."""
    if not 0 <= end_line < len(lines):
        return []
    _, trailing = split_trailing_ids(lines[end_line])
    if trailing:
        return trailing
    if end_line + 1 < len(lines):
        return marker_line_ids(lines[end_line + 1]) or []
    return []


class IdentityResolver:
    """Reads embedded ids for candidates and splices new ones into the text."""

    def __init__(self, inline_id: bool = False):
        self.inline_id = inline_id

    def resolve(
        self, candidates: list[FlashcardCandidate], document: SourceDocument
    ) -> list[FlashcardCandidate]:
        """Attach embedded ids to candidates.

        Raises:
            DuplicateIdentityError: If two candidates carry the same id
        """
        lines = document.text.splitlines(keepends=True)
        resolved = []
        for candidate in candidates:
            ids = ids_at(lines, candidate.source_location.end_line)
            slot = candidate.source_location.slot
            external_id = ids[slot] if slot < len(ids) else None
            resolved.append(candidate.with_external_id(external_id))

        counts = Counter(c.external_id for c in resolved if c.external_id is not None)
        duplicates = [i for i, n in counts.items() if n > 1]
        if duplicates:
            logger.warning(
                "duplicate_card_ids",
                source_path=document.path,
                duplicate_ids=sorted(duplicates),
            )
            raise DuplicateIdentityError(duplicates, source_path=document.path)

        logger.debug(
            "identities_resolved",
            source_path=document.path,
            known=len(counts),
            new=len(resolved) - len(counts),
        )
        return resolved

    def embed(
        self,
        text: str,
        candidates: list[FlashcardCandidate],
        changed: set[tuple[int, int]],
    ) -> str:
        """Write the ids of ``candidates`` at the spans listed in ``changed``.

        Only text at the insertion point changes. A span is rewritten only
        when every candidate at it has an id, so marker slots stay aligned.
        """
        if not changed:
            return text

        by_span: dict[tuple[int, int], list[FlashcardCandidate]] = defaultdict(list)
        for candidate in candidates:
            by_span[candidate.source_location.span].append(candidate)

        lines = text.splitlines(keepends=True)
        for span in sorted(changed, key=lambda s: s[1], reverse=True):
            group = sorted(by_span.get(span, []), key=lambda c: c.source_location.slot)
            if not group or any(c.external_id is None for c in group):
                logger.debug("marker_rewrite_skipped", span=span)
                continue
            marker = format_marker(c.external_id for c in group)
            self._write_marker(lines, span[1], marker)

        return "".join(lines)

    def _write_marker(self, lines: list[str], end_line: int, marker: str) -> None:
        body, eol = _strip_eol(lines[end_line])
        content, trailing = split_trailing_ids(lines[end_line])
        if trailing:
            lines[end_line] = f"{content} {marker}{eol}"
            return

        if end_line + 1 < len(lines) and is_marker_line(lines[end_line + 1]):
            _, next_eol = _strip_eol(lines[end_line + 1])
            lines[end_line + 1] = f"{marker}{next_eol}"
            return

        # a marker after a closing fence would keep the code block open
        if self.inline_id and not FENCE_RE.match(body):
            lines[end_line] = f"{body} {marker}{eol}"
            return

        newline = eol or _guess_newline(lines)
        lines[end_line] = body + newline
        lines.insert(end_line + 1, f"{marker}{eol}")


def _guess_newline(lines: list[str]) -> str:
    for line in lines:
        if line.endswith("\r\n"):
            return "\r\n"
        if line.endswith("\n"):
            return "\n"
    return "\n"
