"""Flashcard parser for Obsidian notes.

Recognized syntax:

- Inline cards: ``front::back`` and ``front:::back`` (adds a reversed twin).
- Block cards: a line ending with ``#card`` (or ``#card/reverse``) followed
  by the answer lines up to the next blank line.
- Heading cards: ``## Question #card`` with the section body as answer.
- Cloze: a block whose answer holds ``{{c1::...}}`` or ``==...==``, or a
  single tagged line holding them.

Parsing is best-effort: lines that look like cards but are unusable are
recorded as skips and never raise.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from pathlib import PurePosixPath
from urllib.parse import quote

from ..config_settings import Config
from ..models import (
    CardKind,
    FlashcardCandidate,
    Heading,
    ParseResult,
    ParseSkip,
    SourceDocument,
    SourceLocation,
)
from ..utils.logging import get_logger
from .identity import is_marker_line, split_trailing_ids
from .metadata import INLINE_CODE_RE, scan_lines

logger = get_logger(__name__)

LIST_MARKER_RE = re.compile(r"^[ \t]*(?:[-+*]|\d+[.)])[ \t]+")
TRAILING_TAGS_RE = re.compile(r"(?:(?:^|[ \t]+)#[\w/-]*[^\W\d][\w/-]*)+[ \t]*$")
TAG_TOKEN_RE = re.compile(r"#([\w/-]+)")
CLOZE_RE = re.compile(r"\{\{c\d+::.+?\}\}|==[^=\n]+==")

REVERSE_SUFFIXES = ("/reverse", "-reverse", "/reversed", "-reversed")


def split_trailing_tags(text: str) -> tuple[str, list[str]]:
    """Split ``"What? #card #math"`` into ``("What?", ["card", "math"])``."""
    match = TRAILING_TAGS_RE.search(text)
    if not match:
        return text.rstrip(), []
    return text[: match.start()].rstrip(), TAG_TOKEN_RE.findall(match.group(0))


def has_cloze(text: str) -> bool:
    return bool(CLOZE_RE.search(text))


def deck_for(document: SourceDocument, config: Config) -> str:
    """Deck for a note: frontmatter override, folder path, or fixed deck."""
    if document.deck_override:
        return document.deck_override
    if config.folder_based_deck and document.folder:
        return "::".join(PurePosixPath(document.folder).parts)
    return config.deck


def source_link(document: SourceDocument, config: Config) -> str:
    """Markdown back-link that opens the note in Obsidian."""
    url = (
        f"obsidian://open?vault={quote(config.effective_vault_name, safe='')}"
        f"&file={quote(document.path, safe='')}"
    )
    return f"[{document.name}]({url})"


class CardParser:
    """Turns a note into an ordered list of flashcard candidates."""

    def __init__(self, config: Config):
        self.config = config
        tag = config.flashcards_tag.lower()
        self._card_tags = {tag}
        self._reverse_tags = {tag + suffix for suffix in REVERSE_SUFFIXES}
        separators = sorted(
            {config.inline_separator, config.inline_separator_reverse},
            key=len,
            reverse=True,
        )
        self._separator_re = re.compile("|".join(re.escape(s) for s in separators))

    def parse(self, document: SourceDocument) -> ParseResult:
        """Extract candidates; headings come from ``document.headings``."""
        result = ParseResult()
        lines = document.text.splitlines()
        scan = scan_lines(lines)
        if document.frontmatter_error:
            result.errors.append(f"Invalid frontmatter: {document.frontmatter_error}")
        if scan.unterminated_fence is not None:
            result.errors.append(
                f"Unterminated code fence at line {scan.unterminated_fence + 1}"
            )

        deck = deck_for(document, self.config)
        heading_at = {h.line: h for h in document.headings}
        headings: list[tuple[int, str]] = []

        i = scan.frontmatter_end
        while i < len(lines):
            if not scan.prose[i] or is_marker_line(lines[i]):
                i += 1
                continue

            content, _ = split_trailing_ids(lines[i])
            heading = heading_at.get(i)

            if heading:
                level = heading.level
                title, tags = split_trailing_tags(split_trailing_ids(heading.text)[0])
                while headings and headings[-1][0] >= level:
                    headings.pop()
                context = self._context(headings)
                headings.append((level, title))
                if self._card_tag(tags):
                    i = self._parse_heading_card(
                        lines, heading_at, i, title, tags, context, deck, result
                    )
                    continue
                i += 1
                continue

            stripped = LIST_MARKER_RE.sub("", content, count=1)
            front, tags = split_trailing_tags(stripped)
            if self._card_tag(tags) and not self._has_separator(front):
                i = self._parse_block_card(
                    lines,
                    scan.prose,
                    heading_at,
                    i,
                    front,
                    tags,
                    self._context(headings),
                    deck,
                    result,
                )
                continue

            self._parse_inline_card(i, stripped, self._context(headings), deck, result)
            i += 1

        if self.config.source_support:
            link = source_link(document, self.config)
            result.candidates = [
                _with_back(c, f"{c.back_text}\n\n{link}" if c.back_text else link)
                for c in result.candidates
            ]

        logger.debug(
            "note_parsed",
            source_path=document.path,
            cards=len(result.candidates),
            skipped=len(result.skips),
            errors=len(result.errors),
        )
        return result

    # -- syntax families --------------------------------------------------

    def _find_separator(self, content: str) -> re.Match[str] | None:
        # separators inside inline code or cloze deletions do not count
        masked = content
        for pattern in (INLINE_CODE_RE, CLOZE_RE):
            masked = pattern.sub(lambda m: "\0" * len(m.group(0)), masked)
        return self._separator_re.search(masked)

    def _has_separator(self, content: str) -> bool:
        return self._find_separator(content) is not None

    def _parse_inline_card(
        self,
        line_no: int,
        content: str,
        context: str | None,
        deck: str,
        result: ParseResult,
    ) -> None:
        match = self._find_separator(content)
        if not match:
            return

        front = content[: match.start()].strip()
        back, tags = split_trailing_tags(content[match.end():].strip())
        back = back.strip()
        if not front or not back:
            result.skips.append(ParseSkip(line_no, "empty front or back"))
            logger.debug("candidate_skipped", line=line_no + 1, reason="empty segment")
            return

        location = SourceLocation(line_no, line_no)
        result.candidates.append(
            self._candidate(CardKind.BASIC, front, back, location, context, tags, deck)
        )
        if match.group(0) == self.config.inline_separator_reverse:
            result.candidates.append(
                self._candidate(
                    CardKind.REVERSED,
                    back,
                    front,
                    SourceLocation(line_no, line_no, slot=1),
                    context,
                    tags,
                    deck,
                )
            )

    def _parse_block_card(
        self,
        lines: list[str],
        prose: list[bool],
        heading_at: Mapping[int, Heading],
        start: int,
        front: str,
        tags: list[str],
        context: str | None,
        deck: str,
        result: ParseResult,
    ) -> int:
        end = start
        j = start + 1
        while j < len(lines):
            line = lines[j]
            if prose[j]:
                if not line.strip() or is_marker_line(line) or j in heading_at:
                    break
                if self._card_tag(split_trailing_tags(split_trailing_ids(line)[0])[1]):
                    break
            end = j
            j += 1

        back = _join_back(lines, start + 1, end)
        if not front.strip():
            result.skips.append(ParseSkip(start, "empty front"))
            return end + 1

        location = SourceLocation(start, end)
        if not back:
            if has_cloze(front):
                result.candidates.append(
                    self._candidate(CardKind.INLINE, front, "", location, context, tags, deck)
                )
            else:
                result.skips.append(ParseSkip(start, "empty back"))
                logger.debug("candidate_skipped", line=start + 1, reason="empty back")
            return end + 1

        self._emit_block(front, back, location, context, tags, deck, result)
        return end + 1

    def _parse_heading_card(
        self,
        lines: list[str],
        heading_at: Mapping[int, Heading],
        start: int,
        front: str,
        tags: list[str],
        context: str | None,
        deck: str,
        result: ParseResult,
    ) -> int:
        j = start + 1
        while j < len(lines) and j not in heading_at:
            j += 1
        next_heading = j

        # last content line, ignoring trailing blanks and marker lines
        end = next_heading - 1
        while end > start and (not lines[end].strip() or is_marker_line(lines[end])):
            end -= 1

        back = _join_back(lines, start + 1, end)
        if not front.strip() or not back:
            result.skips.append(ParseSkip(start, "empty heading card"))
            return next_heading

        self._emit_block(front, back, SourceLocation(start, end), context, tags, deck, result)
        return next_heading

    def _emit_block(
        self,
        front: str,
        back: str,
        location: SourceLocation,
        context: str | None,
        tags: list[str],
        deck: str,
        result: ParseResult,
    ) -> None:
        if has_cloze(back):
            result.candidates.append(
                self._candidate(CardKind.CLOZE, front, back, location, context, tags, deck)
            )
            return

        result.candidates.append(
            self._candidate(CardKind.MULTILINE, front, back, location, context, tags, deck)
        )
        if self._reverse_tag(tags):
            twin = SourceLocation(location.start_line, location.end_line, slot=1)
            result.candidates.append(
                self._candidate(CardKind.REVERSED, back, front, twin, context, tags, deck)
            )

    # -- helpers ----------------------------------------------------------

    def _card_tag(self, tags: list[str]) -> bool:
        lowered = {t.lower() for t in tags}
        return bool(lowered & (self._card_tags | self._reverse_tags))

    def _reverse_tag(self, tags: list[str]) -> bool:
        return bool({t.lower() for t in tags} & self._reverse_tags)

    def _context(self, headings: list[tuple[int, str]]) -> str | None:
        if not self.config.context_aware_mode or not headings:
            return None
        return self.config.context_separator.join(text for _, text in headings)

    def _candidate(
        self,
        kind: CardKind,
        front: str,
        back: str,
        location: SourceLocation,
        context: str | None,
        tags: list[str],
        deck: str,
    ) -> FlashcardCandidate:
        source_tags = tuple(
            t for t in dict.fromkeys(tags) if not self._card_tag([t])
        )
        if context:
            front = f"{context}\n{front}"
        return FlashcardCandidate(
            kind=kind,
            front_text=front.strip(),
            back_text=back,
            deck_name=deck,
            source_location=location,
            context_path=context,
            source_tags=source_tags,
        )


def _join_back(lines: list[str], start: int, end: int) -> str:
    if start > end:
        return ""
    body = (split_trailing_ids(line)[0].rstrip() for line in lines[start : end + 1])
    return "\n".join(body).strip("\n")


def _with_back(candidate: FlashcardCandidate, back: str) -> FlashcardCandidate:
    return replace(candidate, back_text=back)


def parse(document: SourceDocument, config: Config) -> ParseResult:
    """Extract flashcard candidates from a note (pure, deterministic)."""
    return CardParser(config).parse(document)
