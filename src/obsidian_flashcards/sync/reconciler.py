"""Diff local flashcard candidates against the remote notes of one document."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from ..anki.markdown_converter import normalize_field
from ..models import AnkiNote, FlashcardCandidate, RemoteNote, SyncOperation, SyncPlan
from ..utils.logging import get_logger

logger = get_logger(__name__)

STALE_ID = "stale id"
MODEL_CHANGED = "note type changed"


def fields_equal(local: dict[str, str], remote: dict[str, str]) -> bool:
    """Compare note fields after normalization.

    Fields missing on the remote side count as empty.
    """
    return all(
        normalize_field(value) == normalize_field(remote.get(name, ""))
        for name, value in local.items()
    )


def reconcile(
    candidates: Sequence[FlashcardCandidate],
    remote_notes: Sequence[RemoteNote],
    build: Callable[[FlashcardCandidate], AnkiNote],
) -> SyncPlan:
    """Compute the operations that make the remote match ``candidates``.

    Creates and updates come first in candidate order, deletes last in
    ascending id order. Updates whose normalized fields already match are
    suppressed and counted as ``unchanged``.
    """
    remote_by_id = {note.external_id: note for note in remote_notes}
    plan = SyncPlan()
    deletes: list[SyncOperation] = []
    kept_ids: set[int] = set()

    for candidate in candidates:
        if candidate.external_id is None:
            plan.operations.append(SyncOperation.create(candidate))
            continue

        remote = remote_by_id.get(candidate.external_id)
        if remote is None:
            logger.debug("stale_card_id", external_id=candidate.external_id)
            plan.operations.append(SyncOperation.create(candidate, reason=STALE_ID))
            continue

        note = build(candidate)
        if remote.model_name and remote.model_name != note.model_name:
            plan.operations.append(SyncOperation.create(candidate, reason=MODEL_CHANGED))
            continue

        kept_ids.add(remote.external_id)
        if fields_equal(note.fields, remote.fields):
            plan.unchanged += 1
        else:
            plan.operations.append(SyncOperation.update(remote.external_id, candidate))

    for external_id in sorted(remote_by_id):
        if external_id not in kept_ids:
            deletes.append(SyncOperation.delete(external_id))

    plan.operations.extend(deletes)
    logger.debug(
        "reconcile_complete",
        unchanged=plan.unchanged,
        **plan.count_by_type(),
    )
    return plan
