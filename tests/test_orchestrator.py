"""Tests for per-document sync passes and batch runs."""

import asyncio

import pytest

from obsidian_flashcards.obsidian.vault import VaultStore
from obsidian_flashcards.sync.orchestrator import (
    BATCH_FINISH,
    BATCH_START,
    SyncOrchestrator,
    SyncState,
)
from tests.fixtures import FakeAnkiClient

FIRST_ID = 1_700_000_000_000


class GatedStore(VaultStore):
    """VaultStore whose tag lookup waits until released."""

    def __init__(self, vault_path) -> None:
        super().__init__(vault_path)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def files_with_tag(self, tag: str) -> list[str]:
        self.entered.set()
        await self.release.wait()
        return await super().files_with_tag(tag)


class BrokenStore(VaultStore):
    async def files_with_tag(self, tag: str) -> list[str]:
        raise RuntimeError("disk on fire")


class TestSyncOneDocument:
    """Tests for a single sync pass."""

    async def test_creates_and_embeds_ids(self, orchestrator, fake_anki, write_note) -> None:
        path = write_note("note.md", "Q::A\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 1 created, 0 updated, 0 deleted, 0 skipped"]
        assert path.read_text() == f"Q::A\n^{FIRST_ID}\n"
        note = fake_anki.notes[FIRST_ID]
        assert note["deck"] == "Default"
        assert note["fields"] == {"Front": "<p>Q</p>", "Back": "<p>A</p>"}
        assert note["tags"][0] == "obsidian"
        assert note["tags"][1].startswith("obsidian-src-note-")
        assert orchestrator.state is SyncState.IDLE

    async def test_resync_is_idempotent(self, orchestrator, fake_anki, write_note) -> None:
        write_note("note.md", "# Topic\nQ1::A1\nQ2 #card\nline\n\nX:::Y\n")

        await orchestrator.sync_one_document("note.md")
        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 0 created, 0 updated, 0 deleted, 0 skipped"]
        assert fake_anki.mutations == 4

    async def test_edited_card_is_updated(self, orchestrator, fake_anki, write_note) -> None:
        path = write_note("note.md", "Q::A\n")
        await orchestrator.sync_one_document("note.md")
        path.write_text(f"Q::B\n^{FIRST_ID}\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 0 created, 1 updated, 0 deleted, 0 skipped"]
        assert fake_anki.notes[FIRST_ID]["fields"]["Back"] == "<p>B</p>"

    async def test_removed_card_is_deleted(self, orchestrator, fake_anki, write_note) -> None:
        path = write_note("note.md", "Q1::A1\nQ2::A2\n")
        await orchestrator.sync_one_document("note.md")
        assert path.read_text() == f"Q1::A1\n^{FIRST_ID}\nQ2::A2\n^{FIRST_ID + 1}\n"
        path.write_text(f"Q1::A1\n^{FIRST_ID}\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 0 created, 0 updated, 1 deleted, 0 skipped"]
        assert set(fake_anki.notes) == {FIRST_ID}

    async def test_duplicate_ids_abort_without_mutations(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        write_note("note.md", "Q1::A1 ^1600000000005\nQ2::A2 ^1600000000005\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert "(sync failed)" in lines[0]
        assert "Duplicate card id(s) 1600000000005" in lines[0]
        assert fake_anki.mutations == 0
        assert fake_anki.calls == []
        assert orchestrator.state is SyncState.FAILED

    async def test_rejected_card_does_not_stop_others(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        path = write_note("note.md", "Q1::BAD\nQ2::A2\n")
        fake_anki.reject_text = "BAD"

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == [
            "note.md: 1 created, 0 updated, 0 deleted, 0 skipped; "
            "error: AnkiConnect error: cannot create note because it is empty"
        ]
        assert path.read_text() == f"Q1::BAD\nQ2::A2\n^{FIRST_ID}\n"
        assert orchestrator.state is SyncState.IDLE

    async def test_transport_failure_keeps_created_ids(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        path = write_note("note.md", "Q1::A1\nQ2::A2\nQ3::A3\n")
        fake_anki.fail_after_adds = 1

        lines = await orchestrator.sync_one_document("note.md")

        assert lines[0].startswith("note.md: 1 created, 0 updated, 0 deleted, 0 skipped (sync failed)")
        assert "Connection error" in lines[0]
        assert path.read_text() == f"Q1::A1\n^{FIRST_ID}\nQ2::A2\nQ3::A3\n"
        assert orchestrator.state is SyncState.FAILED

        fake_anki.unreachable = False
        fake_anki.fail_after_adds = None
        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 2 created, 0 updated, 0 deleted, 0 skipped"]
        assert len(fake_anki.notes) == 3

    async def test_stale_id_is_replaced(self, orchestrator, fake_anki, write_note) -> None:
        path = write_note("note.md", "Q::A ^1600000000999\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 1 created, 0 updated, 0 deleted, 0 skipped"]
        assert path.read_text() == f"Q::A ^{FIRST_ID}\n"

    async def test_superscript_content_is_kept(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        path = write_note("note.md", "Square of c::c ^2\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 1 created, 0 updated, 0 deleted, 0 skipped"]
        assert path.read_text() == f"Square of c::c ^2\n^{FIRST_ID}\n"
        assert "^2" in fake_anki.notes[FIRST_ID]["fields"]["Back"]

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 0 created, 0 updated, 0 deleted, 0 skipped"]

    async def test_inline_marker_after_code_block(
        self, make_config, fake_anki, store, write_note
    ) -> None:
        config = make_config(context_aware_mode=False, inline_id=True)
        orchestrator = SyncOrchestrator(config, fake_anki, store)
        path = write_note("note.md", "How to print? #card\n```python\nprint(1)\n```\n")

        await orchestrator.sync_one_document("note.md")

        assert path.read_text() == (
            f"How to print? #card\n```python\nprint(1)\n```\n^{FIRST_ID}\n"
        )

    async def test_broken_frontmatter_is_reported(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        write_note("note.md", "---\ntags: [card\n---\nQ::A\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines[0].startswith(
            "note.md: 1 created, 0 updated, 0 deleted, 0 skipped; error: Invalid frontmatter: "
        )
        assert orchestrator.state is SyncState.IDLE
        assert len(fake_anki.notes) == 1

    async def test_rewrite_conflict_keeps_remote_changes(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        path = write_note("note.md", "Q::A\n")
        fake_anki.on_add = lambda note: path.write_text("edited meanwhile\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == [
            "note.md: 1 created, 0 updated, 0 deleted, 0 skipped; "
            "error: Note changed on disk during sync: note.md"
        ]
        assert path.read_text() == "edited meanwhile\n"
        assert len(fake_anki.notes) == 1

    async def test_skips_are_counted(self, orchestrator, write_note) -> None:
        write_note("note.md", "Q::\nQ2::A2\n")

        lines = await orchestrator.sync_one_document("note.md")

        assert lines == ["note.md: 1 created, 0 updated, 0 deleted, 1 skipped"]

    async def test_missing_note_is_reported(self, orchestrator) -> None:
        lines = await orchestrator.sync_one_document("missing.md")

        assert lines == [
            "missing.md: 0 created, 0 updated, 0 deleted, 0 skipped (sync failed); "
            "error: Note not found: missing.md"
        ]

    async def test_folder_deck_is_created(self, orchestrator, fake_anki, write_note) -> None:
        write_note("Lang/Spanish/verbs.md", "ser::to be\n")

        await orchestrator.sync_one_document("Lang/Spanish/verbs.md")

        assert "Lang::Spanish" in fake_anki.decks
        assert fake_anki.notes[FIRST_ID]["deck"] == "Lang::Spanish"

    async def test_report_callback_receives_lines(
        self, config, fake_anki, store, write_note
    ) -> None:
        write_note("note.md", "Q::A\n")
        seen: list[str] = []
        orchestrator = SyncOrchestrator(config, fake_anki, store, report=seen.append)

        lines = await orchestrator.sync_one_document("note.md")

        assert seen == lines


class TestPermission:
    async def test_handshake_runs_once(self, make_config, fake_anki, store, write_note) -> None:
        config = make_config(context_aware_mode=False, anki_connect_permission=True)
        orchestrator = SyncOrchestrator(config, fake_anki, store)
        write_note("a.md", "Q::A\n")
        write_note("b.md", "Q::B\n")

        await orchestrator.sync_one_document("a.md")
        await orchestrator.sync_one_document("b.md")

        assert fake_anki.permission_requests == 1

    async def test_denied_permission_fails_pass(
        self, make_config, fake_anki, store, write_note
    ) -> None:
        config = make_config(anki_connect_permission=True)
        orchestrator = SyncOrchestrator(config, fake_anki, store)
        fake_anki.deny_permission = True
        write_note("a.md", "Q::A\n")

        lines = await orchestrator.sync_one_document("a.md")

        assert "(sync failed); error: AnkiConnect permission denied" in lines[0]
        assert fake_anki.mutations == 0


class TestSyncByTag:
    """Tests for tag-driven batch runs."""

    async def test_batch_lines(self, orchestrator, write_note) -> None:
        write_note("a.md", "---\ntags: [card]\n---\nQ::A\n")
        write_note("b.md", "Inline tag #card\n\nX::Y\n")
        write_note("c.md", "Untagged::note\n")

        lines = await orchestrator.sync_by_tag()

        assert lines == [
            BATCH_START,
            "Note 1 of 2: a.md: 1 created, 0 updated, 0 deleted, 0 skipped",
            "Note 2 of 2: b.md: 1 created, 0 updated, 0 deleted, 1 skipped",
            BATCH_FINISH,
        ]

    async def test_unreachable_anki_fails_each_note_independently(
        self, orchestrator, fake_anki, write_note
    ) -> None:
        for i in range(1, 6):
            write_note(f"n{i}.md", f"---\ntags: card\n---\nQ{i}::A{i}\n")
        fake_anki.unreachable = True

        lines = await orchestrator.sync_by_tag("card")

        assert lines[0] == BATCH_START
        assert lines[-1] == BATCH_FINISH
        notes = lines[1:-1]
        assert len(notes) == 5
        for i, line in enumerate(notes, start=1):
            assert line.startswith(f"Note {i} of 5: n{i}.md: 0 created")
            assert "(sync failed); error: Connection error to AnkiConnect" in line
        # every note tried to reach Anki on its own
        assert len(fake_anki.calls) == 5
        assert not orchestrator.batch_running

    async def test_second_batch_is_ignored(self, config, fake_anki, vault, write_note) -> None:
        write_note("a.md", "Q::A #card\n")
        store = GatedStore(vault)
        orchestrator = SyncOrchestrator(config, fake_anki, store)

        first = asyncio.create_task(orchestrator.sync_by_tag())
        await store.entered.wait()
        assert orchestrator.batch_running

        assert await orchestrator.sync_by_tag() == []

        store.release.set()
        lines = await first
        assert lines[0] == BATCH_START
        assert lines[-1] == BATCH_FINISH
        assert len(fake_anki.notes) == 1
        assert not orchestrator.batch_running

    async def test_guard_released_after_crash(self, config, fake_anki, vault) -> None:
        orchestrator = SyncOrchestrator(config, fake_anki, BrokenStore(vault))

        with pytest.raises(RuntimeError):
            await orchestrator.sync_by_tag()

        assert not orchestrator.batch_running

    async def test_no_tagged_notes(self, orchestrator) -> None:
        assert await orchestrator.sync_by_tag() == [BATCH_START, BATCH_FINISH]
