"""Heading, tag and frontmatter metadata for Obsidian notes.

Mirrors what Obsidian's metadata cache hands to plugins: ordered headings and
the note's tags (frontmatter ``tags`` plus inline ``#tags``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import frontmatter
import yaml

from ..models import Heading
from ..utils.logging import get_logger

logger = get_logger(__name__)

FENCE_RE = re.compile(r"^[ \t]{0,3}(`{3,}|~{3,})")
HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*$")
# Obsidian tags need at least one non-digit character
TAG_RE = re.compile(r"(?<![\w/&#`])#([\w/-]*[^\W\d][\w/-]*)")
INLINE_CODE_RE = re.compile(r"`[^`\n]*`")

DECK_KEY = "cards-deck"


@dataclass
class LineScan:
    """Per-line classification of a note."""

    prose: list[bool]  # False for frontmatter and fenced code lines
    frontmatter_end: int = 0  # first line after the frontmatter block
    unterminated_fence: int | None = None  # line of an unclosed fence


@dataclass
class DocumentMetadata:
    """Cached metadata for one note."""

    headings: list[Heading] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    deck_override: str | None = None
    frontmatter_error: str | None = None


def frontmatter_end(lines: list[str]) -> int:
    """Index of the first line after a leading ``---`` block, or 0."""
    if not lines or lines[0].rstrip("\r\n").strip() != "---":
        return 0
    for i in range(1, len(lines)):
        if lines[i].rstrip("\r\n").strip() in ("---", "..."):
            return i + 1
    return 0


def scan_lines(lines: list[str]) -> LineScan:
    """Classify lines as prose or not (frontmatter, fenced code)."""
    fm_end = frontmatter_end(lines)
    prose = [False] * fm_end
    fence: str | None = None
    fence_start: int | None = None

    for i in range(fm_end, len(lines)):
        line = lines[i]
        match = FENCE_RE.match(line)
        if fence is None:
            if match:
                fence = match.group(1)
                fence_start = i
                prose.append(False)
            else:
                prose.append(True)
        else:
            prose.append(False)
            if match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
                fence = None
                fence_start = None

    return LineScan(
        prose=prose,
        frontmatter_end=fm_end,
        unterminated_fence=fence_start,
    )


def strip_inline_code(line: str) -> str:
    return INLINE_CODE_RE.sub("", line)


def find_tags(line: str) -> list[str]:
    """Inline ``#tags`` on a line, without the leading '#'."""
    return TAG_RE.findall(strip_inline_code(line))


def parse_heading(line: str) -> tuple[int, str] | None:
    match = HEADING_RE.match(line.rstrip("\r\n"))
    if not match:
        return None
    return len(match.group(1)), match.group(2)


def _normalize_tag_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[,\s]+", value)
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None]
    else:
        items = [str(value)]
    return [item.strip().lstrip("#") for item in items if item.strip().lstrip("#")]


def extract_metadata(text: str) -> DocumentMetadata:
    """Compute headings, tags and deck override for a note.

    Broken frontmatter YAML is recorded in ``frontmatter_error`` rather than
    raised; the body is still scanned.
    """
    metadata = DocumentMetadata()
    lines = text.splitlines()
    scan = scan_lines(lines)

    if scan.frontmatter_end:
        try:
            post = frontmatter.loads(text)
            data = post.metadata or {}
        except yaml.YAMLError as e:
            logger.warning("frontmatter_parse_failed", error=str(e))
            metadata.frontmatter_error = getattr(e, "problem", None) or type(e).__name__
            data = {}
        metadata.tags.extend(_normalize_tag_list(data.get("tags", data.get("tag"))))
        deck = data.get(DECK_KEY)
        if deck:
            metadata.deck_override = str(deck).strip()

    for i, line in enumerate(lines):
        if not scan.prose[i]:
            continue
        heading = parse_heading(line)
        if heading:
            level, heading_text = heading
            metadata.headings.append(Heading(level=level, text=heading_text, line=i))
        for tag in find_tags(line):
            if tag not in metadata.tags:
                metadata.tags.append(tag)

    return metadata
