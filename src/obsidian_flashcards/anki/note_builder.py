"""Build Anki note payloads from flashcard candidates."""

from __future__ import annotations

import hashlib
import re

from ..config_settings import Config
from ..models import AnkiNote, CardKind, FlashcardCandidate
from .markdown_converter import MarkdownConverter

REVERSED_TAG = "reversed"

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def source_tag(path: str, config: Config) -> str:
    """Tag shared by every note synced from ``path``.

    The readable slug is capped; the hash keeps tags unique per path.
    """
    stem = path.rsplit("/", 1)[-1].removesuffix(".md")
    slug = _SLUG_RE.sub("-", stem.lower()).strip("-")[:40] or "note"
    digest = hashlib.sha256(path.encode("utf-8")).hexdigest()[:8]
    return f"{config.default_anki_tag}-src-{slug}-{digest}"


def note_tags(candidate: FlashcardCandidate, config: Config, src_tag: str) -> tuple[str, ...]:
    tags = [config.default_anki_tag, src_tag, *candidate.source_tags]
    if candidate.kind is CardKind.REVERSED:
        tags.append(REVERSED_TAG)
    # Anki tags cannot contain spaces
    return tuple(dict.fromkeys(t.replace(" ", "_") for t in tags if t))


class NoteBuilder:
    """Maps candidates onto the configured Basic and Cloze note types."""

    def __init__(self, config: Config, converter: MarkdownConverter | None = None):
        self.config = config
        self.converter = converter or MarkdownConverter(
            highlight_code=config.code_highlight_support
        )

    def fields(self, candidate: FlashcardCandidate) -> dict[str, str]:
        cfg = self.config
        if candidate.kind is CardKind.CLOZE:
            text = f"{candidate.front_text}\n\n{candidate.back_text}"
            return {
                cfg.cloze_text_field: self.converter.cloze_to_html(text),
                cfg.cloze_extra_field: "",
            }
        if candidate.kind is CardKind.INLINE:
            return {
                cfg.cloze_text_field: self.converter.cloze_to_html(candidate.front_text),
                cfg.cloze_extra_field: self.converter.to_html(candidate.back_text),
            }
        return {
            cfg.basic_front_field: self.converter.to_html(candidate.front_text),
            cfg.basic_back_field: self.converter.to_html(candidate.back_text),
        }

    def model_name(self, candidate: FlashcardCandidate) -> str:
        if candidate.kind.is_cloze:
            return self.config.cloze_model_name
        return self.config.basic_model_name

    def build(self, candidate: FlashcardCandidate, src_tag: str) -> AnkiNote:
        return AnkiNote(
            deck_name=candidate.deck_name,
            model_name=self.model_name(candidate),
            fields=self.fields(candidate),
            tags=note_tags(candidate, self.config, src_tag),
        )


def build_note(candidate: FlashcardCandidate, config: Config, src_tag: str) -> AnkiNote:
    return NoteBuilder(config).build(candidate, src_tag)
