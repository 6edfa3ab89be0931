"""Tests for the reconciliation diff."""

from obsidian_flashcards.anki.note_builder import NoteBuilder
from obsidian_flashcards.models import (
    CardKind,
    FlashcardCandidate,
    OperationType,
    RemoteNote,
    SourceLocation,
)
from obsidian_flashcards.sync.reconciler import (
    MODEL_CHANGED,
    STALE_ID,
    fields_equal,
    reconcile,
)


def _candidate(line: int, front: str, back: str, external_id=None) -> FlashcardCandidate:
    return FlashcardCandidate(
        kind=CardKind.BASIC,
        front_text=front,
        back_text=back,
        deck_name="Default",
        source_location=SourceLocation(line, line),
        external_id=external_id,
    )


def _remote(note_id: int, front: str, back: str, model: str = "Basic") -> RemoteNote:
    return RemoteNote(
        external_id=note_id,
        deck_name="Default",
        fields={"Front": f"<p>{front}</p>", "Back": f"<p>{back}</p>"},
        model_name=model,
    )


class TestReconcile:
    """Tests for create/update/delete decisions."""

    def _build(self, config):
        builder = NoteBuilder(config)
        return lambda c: builder.build(c, "src")

    def test_new_candidates_are_created(self, config) -> None:
        plan = reconcile([_candidate(0, "Q", "A")], [], self._build(config))

        assert [op.type for op in plan.operations] == [OperationType.CREATE]
        assert plan.operations[0].reason is None

    def test_unchanged_note_is_suppressed(self, config) -> None:
        plan = reconcile(
            [_candidate(0, "Q", "A", external_id=1)],
            [_remote(1, "Q", "A")],
            self._build(config),
        )

        assert len(plan) == 0
        assert plan.unchanged == 1

    def test_whitespace_drift_counts_as_equal(self, config) -> None:
        remote = RemoteNote(
            external_id=1,
            deck_name="Default",
            fields={"Front": "<p>Q</p>\n", "Back": "<p>A</p>  "},
            model_name="Basic",
        )

        plan = reconcile([_candidate(0, "Q", "A", 1)], [remote], self._build(config))

        assert plan.unchanged == 1

    def test_changed_note_is_updated(self, config) -> None:
        plan = reconcile(
            [_candidate(0, "Q", "B", external_id=1)],
            [_remote(1, "Q", "A")],
            self._build(config),
        )

        assert [(op.type, op.external_id) for op in plan.operations] == [
            (OperationType.UPDATE, 1)
        ]

    def test_orphaned_remote_note_is_deleted(self, config) -> None:
        plan = reconcile(
            [_candidate(0, "Q", "A", external_id=1)],
            [_remote(1, "Q", "A"), _remote(2, "Gone", "X")],
            self._build(config),
        )

        assert [(op.type, op.external_id) for op in plan.operations] == [
            (OperationType.DELETE, 2)
        ]

    def test_stale_id_is_recreated(self, config) -> None:
        plan = reconcile([_candidate(0, "Q", "A", external_id=99)], [], self._build(config))

        assert plan.operations[0].type is OperationType.CREATE
        assert plan.operations[0].reason == STALE_ID

    def test_note_type_change_recreates(self, config) -> None:
        plan = reconcile(
            [_candidate(0, "Q", "A", external_id=1)],
            [_remote(1, "Q", "A", model="Cloze")],
            self._build(config),
        )

        assert [(op.type, op.reason, op.external_id) for op in plan.operations] == [
            (OperationType.CREATE, MODEL_CHANGED, None),
            (OperationType.DELETE, None, 1),
        ]

    def test_deletes_come_last(self, config) -> None:
        plan = reconcile(
            [
                _candidate(0, "New", "A"),
                _candidate(1, "Q", "Changed", external_id=2),
                _candidate(2, "Another", "B"),
            ],
            [_remote(3, "Old", "X"), _remote(2, "Q", "A"), _remote(1, "Older", "Y")],
            self._build(config),
        )

        assert [op.type for op in plan.operations] == [
            OperationType.CREATE,
            OperationType.UPDATE,
            OperationType.CREATE,
            OperationType.DELETE,
            OperationType.DELETE,
        ]
        assert [op.external_id for op in plan.deletes] == [1, 3]
        assert plan.count_by_type() == {"create": 2, "update": 1, "delete": 2}

    def test_idempotent_after_apply(self, config) -> None:
        build = self._build(config)
        candidates = [_candidate(0, "Q1", "A1"), _candidate(1, "Q2", "A2")]

        first = reconcile(candidates, [], build)
        remote = []
        identified = []
        for note_id, op in enumerate(first.creates, start=10):
            note = build(op.candidate)
            remote.append(
                RemoteNote(note_id, "Default", note.fields, note.tags, note.model_name)
            )
            identified.append(op.candidate.with_external_id(note_id))

        second = reconcile(identified, remote, build)

        assert len(second) == 0
        assert second.unchanged == 2


def test_fields_equal_treats_missing_as_empty() -> None:
    assert fields_equal({"Front": "x", "Back": ""}, {"Front": "x"})
    assert not fields_equal({"Front": "x"}, {"Front": "y"})
