"""Per-document sync passes and tag-driven batch runs."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from ..anki.client import AnkiClient
from ..anki.note_builder import NoteBuilder, source_tag
from ..config_settings import Config
from ..exceptions import (
    AnkiRejectedError,
    AnkiTransportError,
    ObsidianFlashcardsError,
    RewriteConflictError,
)
from ..models import (
    FlashcardCandidate,
    OperationType,
    RemoteNote,
    SourceDocument,
    SyncOperation,
    SyncOutcome,
    SyncPlan,
)
from ..obsidian.identity import IdentityResolver
from ..obsidian.parser import CardParser, deck_for
from ..obsidian.vault import VaultStore
from ..utils.logging import get_logger
from .reconciler import reconcile

logger = get_logger(__name__)

BATCH_START = "Start complete Anki sync"
BATCH_FINISH = "Finished complete Anki sync"


class SyncState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    RESOLVING = "resolving"
    RECONCILING = "reconciling"
    EXECUTING = "executing"
    REWRITING = "rewriting"
    FAILED = "failed"


class SyncOrchestrator:
    """Drives parse, resolve, reconcile, execute and rewrite for notes.

    Passes run one at a time and never raise: every failure ends up in the
    ``SyncOutcome`` of the document it happened in.
    """

    def __init__(
        self,
        config: Config,
        client: AnkiClient,
        store: VaultStore,
        report: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.client = client
        self.store = store
        self.report = report
        self.parser = CardParser(config)
        self.resolver = IdentityResolver(inline_id=config.inline_id)
        self.builder = NoteBuilder(config)
        self.state = SyncState.IDLE
        self._batch_running = False
        self._permission_granted = False

    @property
    def batch_running(self) -> bool:
        return self._batch_running

    def _set_state(self, state: SyncState) -> None:
        logger.debug("sync_state_changed", old=self.state.value, new=state.value)
        self.state = state

    def _emit(self, line: str) -> str:
        if self.report:
            self.report(line)
        return line

    # -- public entry points ----------------------------------------------

    async def sync_one_document(self, path: str) -> list[str]:
        """Sync one note and return its summary line."""
        outcome = await self.sync_document(path)
        return [self._emit(outcome.summary())]

    async def sync_by_tag(self, tag: str | None = None) -> list[str]:
        """Sync every note carrying ``tag`` (default: the flashcards tag).

        A second call while a batch is running is ignored and returns no lines.
        """
        if self._batch_running:
            logger.info("batch_sync_ignored", reason="batch already running")
            return []

        self._batch_running = True
        try:
            tag = tag or self.config.flashcards_tag
            lines = [self._emit(BATCH_START)]
            logger.info("batch_sync_started", tag=tag)
            try:
                paths = await self.store.files_with_tag(tag)
            except ObsidianFlashcardsError as e:
                logger.error("batch_listing_failed", tag=tag, error=e.message)
                lines.append(self._emit(f"Batch sync failed: {e.message}"))
                return lines

            total = len(paths)
            failed = 0
            for i, path in enumerate(paths, start=1):
                outcome = await self.sync_document(path)
                failed += outcome.failed
                lines.append(self._emit(f"Note {i} of {total}: {outcome.summary()}"))

            lines.append(self._emit(BATCH_FINISH))
            logger.info("batch_sync_finished", tag=tag, notes=total, failed=failed)
            return lines
        finally:
            self._batch_running = False

    # -- one pass ---------------------------------------------------------

    async def sync_document(self, path: str) -> SyncOutcome:
        outcome = SyncOutcome(path=path)
        try:
            await self._run_pass(path, outcome)
        except ObsidianFlashcardsError as e:
            self._mark_failed(outcome, e.message, e)
        except Exception as e:
            logger.exception("sync_pass_crashed", source_path=path)
            self._mark_failed(outcome, f"Unexpected error: {e}", e)
        return outcome

    def _mark_failed(self, outcome: SyncOutcome, message: str, error: Exception) -> None:
        self._set_state(SyncState.FAILED)
        outcome.failed = True
        outcome.errors.insert(0, message)
        if isinstance(error, ObsidianFlashcardsError):
            details = error.to_dict()
        else:
            details = {"message": message, "type": type(error).__name__}
        logger.error("sync_pass_failed", source_path=outcome.path, **details)

    async def _run_pass(self, path: str, outcome: SyncOutcome) -> None:
        logger.debug("sync_pass_started", source_path=path)
        self._set_state(SyncState.PARSING)
        document = await self.store.read(path)
        parsed = self.parser.parse(document)
        outcome.skipped = len(parsed.skips)
        outcome.errors.extend(parsed.errors)

        self._set_state(SyncState.RESOLVING)
        candidates = self.resolver.resolve(parsed.candidates, document)

        self._set_state(SyncState.RECONCILING)
        await self._ensure_permission()
        src_tag = source_tag(path, self.config)
        remote = await self._remote_notes(document, candidates, src_tag)
        plan = reconcile(candidates, remote, lambda c: self.builder.build(c, src_tag))
        logger.debug(
            "sync_plan_ready",
            source_path=path,
            unchanged=plan.unchanged,
            **plan.count_by_type(),
        )

        self._set_state(SyncState.EXECUTING)
        identified, changed, transport_error = await self._execute(
            plan, candidates, src_tag, outcome
        )

        self._set_state(SyncState.REWRITING)
        if changed:
            await self._rewrite(document, identified, changed, outcome)

        if transport_error is not None:
            raise transport_error

        self._set_state(SyncState.IDLE)
        logger.info(
            "sync_pass_completed",
            source_path=path,
            created=outcome.created,
            updated=outcome.updated,
            deleted=outcome.deleted,
            unchanged=plan.unchanged,
            errors=len(outcome.errors),
        )

    async def _ensure_permission(self) -> None:
        if not self.config.anki_connect_permission or self._permission_granted:
            return
        await self.client.request_permission()
        self._permission_granted = True

    async def _remote_notes(
        self,
        document: SourceDocument,
        candidates: list[FlashcardCandidate],
        src_tag: str,
    ) -> list[RemoteNote]:
        decks = list(
            dict.fromkeys(
                [deck_for(document, self.config), *(c.deck_name for c in candidates)]
            )
        )
        notes: dict[int, RemoteNote] = {}
        for deck in decks:
            if candidates:
                await self.client.ensure_deck(deck)
            for note in await self.client.find_notes_by_deck_and_tag(deck, src_tag):
                notes.setdefault(note.external_id, note)
        return list(notes.values())

    async def _execute(
        self,
        plan: SyncPlan,
        candidates: list[FlashcardCandidate],
        src_tag: str,
        outcome: SyncOutcome,
    ) -> tuple[list[FlashcardCandidate], set[tuple[int, int]], AnkiTransportError | None]:
        """Apply operations in plan order.

        A rejected operation is reported and skipped; a transport failure
        stops the remaining operations and is returned to the caller so ids
        created so far can still be embedded.
        """
        identified = list(candidates)
        index = {
            (c.source_location.span, c.source_location.slot): i
            for i, c in enumerate(candidates)
        }
        changed: set[tuple[int, int]] = set()

        for op in plan.operations:
            try:
                await self._apply(op, src_tag, outcome, identified, index, changed)
            except AnkiRejectedError as e:
                logger.warning(
                    "sync_operation_rejected",
                    source_path=outcome.path,
                    operation=op.type.value,
                    note_id=op.external_id,
                    error=e.message,
                )
                outcome.errors.append(e.message)
            except AnkiTransportError as e:
                logger.warning(
                    "anki_unreachable",
                    source_path=outcome.path,
                    operation=op.type.value,
                    error=e.message,
                )
                return identified, changed, e

        return identified, changed, None

    async def _apply(
        self,
        op: SyncOperation,
        src_tag: str,
        outcome: SyncOutcome,
        identified: list[FlashcardCandidate],
        index: dict[tuple[tuple[int, int], int], int],
        changed: set[tuple[int, int]],
    ) -> None:
        if op.type is OperationType.CREATE:
            assert op.candidate is not None
            note = self.builder.build(op.candidate, src_tag)
            note_id = await self.client.add_note(note)
            location = op.candidate.source_location
            i = index[(location.span, location.slot)]
            identified[i] = identified[i].with_external_id(note_id)
            changed.add(location.span)
            outcome.created += 1
            logger.debug(
                "note_created", note_id=note_id, deck=note.deck_name, reason=op.reason
            )
        elif op.type is OperationType.UPDATE:
            assert op.candidate is not None and op.external_id is not None
            note = self.builder.build(op.candidate, src_tag)
            await self.client.update_note_fields(op.external_id, note.fields)
            await self.client.add_tags([op.external_id], list(note.tags))
            outcome.updated += 1
            logger.debug("note_updated", note_id=op.external_id)
        else:
            assert op.external_id is not None
            await self.client.delete_notes([op.external_id])
            outcome.deleted += 1
            logger.debug("note_deleted", note_id=op.external_id)

    async def _rewrite(
        self,
        document: SourceDocument,
        identified: list[FlashcardCandidate],
        changed: set[tuple[int, int]],
        outcome: SyncOutcome,
    ) -> None:
        new_text = self.resolver.embed(document.text, identified, changed)
        if new_text == document.text:
            return
        try:
            await self.store.write(document.path, new_text, document.text)
        except RewriteConflictError as e:
            outcome.errors.append(e.message)
