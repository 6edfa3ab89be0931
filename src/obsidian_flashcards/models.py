"""Data models for the flashcards sync."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath


class CardKind(str, Enum):
    """Kind of an extracted flashcard."""

    BASIC = "basic"  # front::back
    REVERSED = "reversed"  # swapped twin of a reversible card
    CLOZE = "cloze"  # block card whose back holds cloze deletions
    MULTILINE = "multiline"  # tagged block or heading-bounded card
    INLINE = "inline"  # single tagged line with cloze deletions

    @property
    def is_cloze(self) -> bool:
        return self in (CardKind.CLOZE, CardKind.INLINE)


@dataclass(frozen=True)
class Heading:
    """A heading from the document's metadata cache."""

    level: int
    text: str
    line: int  # 0-based


@dataclass(frozen=True)
class SourceDocument:
    """Immutable snapshot of one note at parse time."""

    path: str  # vault-relative, POSIX separators
    text: str
    headings: tuple[Heading, ...] = ()
    tags: tuple[str, ...] = ()
    deck_override: str | None = None  # frontmatter `cards-deck`
    frontmatter_error: str | None = None  # unreadable frontmatter YAML

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def folder(self) -> str:
        parent = PurePosixPath(self.path).parent
        return "" if str(parent) == "." else str(parent)

    def has_tag(self, tag: str) -> bool:
        wanted = tag.lstrip("#").lower()
        return any(t.lstrip("#").lower() == wanted for t in self.tags)


@dataclass(frozen=True)
class SourceLocation:
    """Line span of a card in the document (0-based, inclusive).

    Reversed twins share the span and are told apart by ``slot``.
    """

    start_line: int
    end_line: int
    slot: int = 0

    @property
    def span(self) -> tuple[int, int]:
        return (self.start_line, self.end_line)


@dataclass(frozen=True)
class FlashcardCandidate:
    """One flashcard extracted from source text."""

    kind: CardKind
    front_text: str
    back_text: str
    deck_name: str
    source_location: SourceLocation
    context_path: str | None = None
    source_tags: tuple[str, ...] = ()
    external_id: int | None = None

    def with_external_id(self, external_id: int | None) -> FlashcardCandidate:
        return replace(self, external_id=external_id)


@dataclass(frozen=True)
class ParseSkip:
    """A line that looked like a card but produced none."""

    line: int
    reason: str


@dataclass
class ParseResult:
    """Output of the card parser.

    ``skips`` are silent; ``errors`` are structural problems that
    callers may surface, though parsing still returns what it could extract.
    """

    candidates: list[FlashcardCandidate] = field(default_factory=list)
    skips: list[ParseSkip] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RemoteNote:
    """The remote store's view of a previously synced card."""

    external_id: int
    deck_name: str
    fields: dict[str, str]
    tags: tuple[str, ...] = ()
    model_name: str = ""


@dataclass(frozen=True)
class AnkiNote:
    """Payload for creating or updating a remote note."""

    deck_name: str
    model_name: str
    fields: dict[str, str]
    tags: tuple[str, ...] = ()


class OperationType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class SyncOperation:
    """One remote mutation produced by reconciliation."""

    type: OperationType
    candidate: FlashcardCandidate | None = None
    external_id: int | None = None
    reason: str | None = None

    @classmethod
    def create(
        cls, candidate: FlashcardCandidate, reason: str | None = None
    ) -> SyncOperation:
        return cls(OperationType.CREATE, candidate=candidate, reason=reason)

    @classmethod
    def update(cls, external_id: int, candidate: FlashcardCandidate) -> SyncOperation:
        return cls(OperationType.UPDATE, candidate=candidate, external_id=external_id)

    @classmethod
    def delete(cls, external_id: int) -> SyncOperation:
        return cls(OperationType.DELETE, external_id=external_id)


@dataclass
class SyncPlan:
    """Ordered operations for one document: creates and updates, then deletes."""

    operations: list[SyncOperation] = field(default_factory=list)
    unchanged: int = 0

    @property
    def creates(self) -> list[SyncOperation]:
        return [op for op in self.operations if op.type is OperationType.CREATE]

    @property
    def updates(self) -> list[SyncOperation]:
        return [op for op in self.operations if op.type is OperationType.UPDATE]

    @property
    def deletes(self) -> list[SyncOperation]:
        return [op for op in self.operations if op.type is OperationType.DELETE]

    def count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for op in self.operations:
            counts[op.type.value] = counts.get(op.type.value, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self.operations)


@dataclass
class SyncOutcome:
    """Result of one document's sync pass, rendered as one line."""

    path: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    failed: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.errors

    def summary(self) -> str:
        line = (
            f"{self.path}: {self.created} created, {self.updated} updated, "
            f"{self.deleted} deleted, {self.skipped} skipped"
        )
        if self.failed:
            line += " (sync failed)"
        if self.errors:
            line += f"; error: {self.errors[0]}"
        return line
