"""Per-word mastery ledger.

One ``WordRecord`` exists per distinct normalised word of a speech. Records
are immutable snapshots; every transform returns a new record so the
session update can be computed in full before anything is written.

Recovery debt: a word that failed while hidden must earn
``3 * hidden_miss_count + 2 * hidden_hesitate_count`` correct readings
before it may disappear again. Words that fail while hidden often enough
become anchors and stay visible as cue words.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from rehearsal.config import settings
from rehearsal.services.classifier import HARD, JUNK, MEDIUM

logger = logging.getLogger(__name__)

CORRECT = "correct"
MISSED = "missed"
HESITATED = "hesitated"

# Consecutive correct readings needed before a word may be hidden.
REQUIRED_STREAK = {JUNK: 2, MEDIUM: 3, HARD: 5}
# Net correct readings (correct minus errors) needed before hiding.
REQUIRED_NET_CORRECT = 2


@dataclass(frozen=True)
class AnchorPolicy:
    miss_threshold: int = 2
    hesitate_threshold: int = 3
    release_after_streak: int | None = None  # None = anchors are permanent

    @classmethod
    def from_settings(cls) -> "AnchorPolicy":
        return cls(
            miss_threshold=settings.anchor_miss_threshold,
            hesitate_threshold=settings.anchor_hesitate_threshold,
            release_after_streak=settings.anchor_release_streak,
        )


@dataclass(frozen=True)
class WordRecord:
    word: str
    classification: str = MEDIUM
    ends_segment: bool = False
    correct_count: int = 0
    missed_count: int = 0
    hesitated_count: int = 0
    hidden_miss_count: int = 0
    hidden_hesitate_count: int = 0
    consecutive_correct: int = 0
    is_anchor: bool = False

    @property
    def error_count(self) -> int:
        return self.missed_count + self.hesitated_count

    @property
    def recovery_needed(self) -> int:
        return 3 * self.hidden_miss_count + 2 * self.hidden_hesitate_count


def record_attempt(
    record: WordRecord,
    outcome: str,
    was_hidden: bool,
    policy: AnchorPolicy | None = None,
) -> WordRecord:
    """Apply one reading of the word and return the updated record."""
    policy = policy or AnchorPolicy()

    if outcome == CORRECT:
        updated = replace(
            record,
            correct_count=record.correct_count + 1,
            consecutive_correct=record.consecutive_correct + 1,
        )
        return _maybe_release(updated, policy)

    if outcome == MISSED:
        updated = replace(
            record,
            missed_count=record.missed_count + 1,
            consecutive_correct=0,
        )
        if was_hidden:
            updated = replace(updated, hidden_miss_count=updated.hidden_miss_count + 1)
            if updated.hidden_miss_count >= policy.miss_threshold:
                updated = _promote(updated)
        return updated

    if outcome == HESITATED:
        updated = replace(
            record,
            hesitated_count=record.hesitated_count + 1,
            consecutive_correct=0,
        )
        if was_hidden:
            updated = replace(
                updated, hidden_hesitate_count=updated.hidden_hesitate_count + 1
            )
            if updated.hidden_hesitate_count >= policy.hesitate_threshold:
                updated = _promote(updated)
        return updated

    raise ValueError(f"Unknown outcome: {outcome!r}")


def _promote(record: WordRecord) -> WordRecord:
    if not record.is_anchor:
        logger.info(
            "Word %r pinned as anchor (hidden misses=%d, hidden hesitations=%d)",
            record.word,
            record.hidden_miss_count,
            record.hidden_hesitate_count,
        )
    return replace(record, is_anchor=True)


def _maybe_release(record: WordRecord, policy: AnchorPolicy) -> WordRecord:
    if (
        not record.is_anchor
        or policy.release_after_streak is None
        or record.consecutive_correct < policy.release_after_streak
    ):
        return record
    logger.info(
        "Anchor %r released after %d consecutive correct readings",
        record.word,
        record.consecutive_correct,
    )
    # Failure history goes with the pin so the anchor thresholds stay consistent.
    return replace(
        record, is_anchor=False, hidden_miss_count=0, hidden_hesitate_count=0
    )


def is_recovering(record: WordRecord) -> bool:
    """True while the word still owes correct readings after hidden failures."""
    if record.hidden_miss_count == 0 and record.hidden_hesitate_count == 0:
        return False
    return record.correct_count < record.recovery_needed


def eligible_for_hiding(record: WordRecord) -> bool:
    if record.is_anchor or is_recovering(record):
        return False
    if record.correct_count - record.error_count < REQUIRED_NET_CORRECT:
        return False
    return record.consecutive_correct >= REQUIRED_STREAK[record.classification]
