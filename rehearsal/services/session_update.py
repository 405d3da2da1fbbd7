"""Apply a finished practice session to a speech.

Reads the speech, its ledger and phrases, runs the visibility selector and
writes every change back in one commit. Sessions for the same speech are
serialised by an in-process lock; the speech row's version column catches
writers in other processes. Either the whole delta is committed or nothing.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from rehearsal.config import settings
from rehearsal.models import PracticeSession, Speech, SpeechPhrase, SpeechSegment, WordMastery
from rehearsal.services.mastery import AnchorPolicy
from rehearsal.services.phrases import chunk_words
from rehearsal.services.rendering import (
    parse_hidden_indices,
    review_delay_minutes,
    tokenize,
    visibility_percent,
)
from rehearsal.services.summary import summarize_session
from rehearsal.services.visibility import VisibilityResult, select_visibility

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SessionUpdateError(Exception):
    status_code = 400


class SpeechNotFoundError(SessionUpdateError):
    status_code = 404


class SegmentNotFoundError(SessionUpdateError):
    status_code = 404


class InvalidSessionError(SessionUpdateError):
    status_code = 400


class ConcurrentSessionError(SessionUpdateError):
    status_code = 409


# ---------------------------------------------------------------------------
# Per-speech locks
# ---------------------------------------------------------------------------

# An entry lives only while some session holds or waits on the lock.
_speech_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()


def speech_lock(speech_id: int) -> asyncio.Lock:
    lock = _speech_locks.get(speech_id)
    if lock is None:
        lock = _speech_locks[speech_id] = asyncio.Lock()
    return lock


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionOutcome:
    speech_id: int
    version: int
    result: VisibilityResult
    message: str
    segment: Optional[dict[str, Any]] = None
    hidden_at_start: frozenset[int] = field(default_factory=frozenset)

    def to_dict(self) -> dict[str, Any]:
        result = self.result
        return {
            "speech_id": self.speech_id,
            "version": self.version,
            "annotated_text": result.annotated_text,
            "visibility_percent": result.visibility_percent,
            "hidden_count": len(result.hidden),
            "total_words": result.total_words,
            "hidden_indices": sorted(result.hidden),
            "newly_hidden": list(result.newly_hidden),
            "revealed": list(result.revealed),
            "forced_visible": sorted(result.forced_visible),
            "newly_anchored": list(result.newly_anchored),
            "newly_anchored_count": len(result.newly_anchored),
            "anchor_indices": list(result.anchor_indices),
            "segment": self.segment,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_indices(name: str, values: Optional[Iterable[Any]], word_count: int) -> set[int]:
    if values is None:
        return set()
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise InvalidSessionError(f"{name} must be a list of word indices")
    indices: set[int] = set()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidSessionError(f"{name} contains a non-integer index: {value!r}")
        if not 0 <= value < word_count:
            raise InvalidSessionError(
                f"{name} index {value} is out of range for {word_count} words"
            )
        indices.add(value)
    return indices


async def load_speech(db: AsyncSession, speech_id: int) -> Speech:
    result = await db.execute(select(Speech).where(Speech.id == speech_id))
    speech = result.scalar_one_or_none()
    if speech is None:
        raise SpeechNotFoundError(f"Speech {speech_id} not found")
    return speech


async def _load_segment(db: AsyncSession, speech_id: int, segment_id: int) -> SpeechSegment:
    result = await db.execute(select(SpeechSegment).where(SpeechSegment.id == segment_id))
    segment = result.scalar_one_or_none()
    if segment is None:
        raise SegmentNotFoundError(f"Segment {segment_id} not found")
    if segment.speech_id != speech_id:
        raise InvalidSessionError(
            f"Segment {segment_id} does not belong to speech {speech_id}"
        )
    return segment


async def ensure_phrases(
    db: AsyncSession, speech: Speech, words: list[str]
) -> list[SpeechPhrase]:
    """Return the speech's phrases, generating them the first time only."""
    result = await db.execute(
        select(SpeechPhrase)
        .where(SpeechPhrase.speech_id == speech.id)
        .order_by(SpeechPhrase.start_word_index)
    )
    phrases = list(result.scalars().all())
    if phrases or not words:
        return phrases

    phrases = [SpeechPhrase.from_chunk(speech.id, chunk) for chunk in chunk_words(words)]
    db.add_all(phrases)
    logger.info("Generated %d phrase chunks for speech %s", len(phrases), speech.id)
    return phrases


def _update_segment(
    segment: SpeechSegment,
    result: VisibilityResult,
    word_count: int,
    now: dt.datetime,
) -> dict[str, Any]:
    span = [i for i in segment.indices if 0 <= i < word_count]
    hidden_in_segment = sum(1 for i in span if i in result.hidden)
    percent = visibility_percent(len(span), hidden_in_segment)
    delay = review_delay_minutes(percent)
    anchors = [i for i in result.anchor_indices if i in segment.indices]

    segment.visibility_percent = percent
    segment.anchor_indices_json = json.dumps(anchors)
    segment.next_review_at = now + dt.timedelta(minutes=delay)
    segment.times_practiced = (segment.times_practiced or 0) + 1
    segment.is_mastered = percent <= settings.mastered_visibility
    segment.last_practiced_at = now

    return {
        "segment_id": segment.id,
        "visibility_percent": percent,
        "review_delay_minutes": delay,
        "next_review_at": segment.next_review_at.isoformat(),
        "is_mastered": segment.is_mastered,
        "anchor_indices": anchors,
        "times_practiced": segment.times_practiced,
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def apply_session(
    db: AsyncSession,
    speech_id: int,
    missed_indices: Optional[Iterable[int]] = None,
    hesitated_indices: Optional[Iterable[int]] = None,
    hidden_indices: Optional[Iterable[int]] = None,
    segment_id: Optional[int] = None,
    expected_version: Optional[int] = None,
    policy: Optional[AnchorPolicy] = None,
    now: Optional[dt.datetime] = None,
) -> SessionOutcome:
    """
    Apply one finished practice session to *speech_id* and commit.

    *hidden_indices* is the hidden set the learner saw; when omitted it is
    taken from the stored hidden set (or parsed from the annotated text).

    Raises a ``SessionUpdateError`` subclass before any mutation when the
    request cannot be applied.
    """
    async with speech_lock(speech_id):
        speech = await load_speech(db, speech_id)
        if expected_version is not None and expected_version != speech.version:
            raise ConcurrentSessionError(
                f"Speech {speech_id} is at version {speech.version}, "
                f"expected {expected_version}"
            )

        words = tokenize(speech.text_original)
        missed = _validate_indices("missed_indices", missed_indices, len(words))
        hesitated = _validate_indices("hesitated_indices", hesitated_indices, len(words))

        segment = None
        exercised = None
        if segment_id is not None:
            segment = await _load_segment(db, speech_id, segment_id)
            exercised = {i for i in segment.indices if 0 <= i < len(words)}
            outside = (missed | hesitated) - exercised
            if outside:
                raise InvalidSessionError(
                    f"Indices {sorted(outside)} lie outside segment {segment_id}"
                )

        if hidden_indices is not None:
            previous = _validate_indices("hidden_indices", hidden_indices, len(words))
        elif speech.hidden_indices is not None:
            previous = speech.hidden_indices
        else:
            previous = parse_hidden_indices(speech.text_current)

        if not words:
            empty = select_visibility([], previous, missed, hesitated, {}, [], 0)
            return SessionOutcome(
                speech_id=speech.id,
                version=speech.version,
                result=empty,
                message=summarize_session(empty),
            )

        now = now or dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)
        try:
            result = await _apply(
                db, speech, words, previous, missed, hesitated, exercised, segment_id, policy, now
            )
            segment_info = _update_segment(segment, result, len(words), now) if segment else None
            await db.commit()
        except (StaleDataError, IntegrityError) as exc:
            await db.rollback()
            logger.warning("Concurrent session update rejected for speech %s: %s", speech_id, exc)
            raise ConcurrentSessionError(
                f"Speech {speech_id} was updated by another session; resubmit"
            ) from exc
        except Exception:
            await db.rollback()
            logger.exception("Session update failed for speech %s", speech_id)
            raise

        message = summarize_session(result)
        logger.info(
            "Speech %s session applied: %s (version %d)", speech_id, message, speech.version
        )
        return SessionOutcome(
            speech_id=speech.id,
            version=speech.version,
            result=result,
            message=message,
            segment=segment_info,
            hidden_at_start=frozenset(previous),
        )


async def _apply(
    db: AsyncSession,
    speech: Speech,
    words: list[str],
    previous: set[int],
    missed: set[int],
    hesitated: set[int],
    exercised: Optional[set[int]],
    segment_id: Optional[int],
    policy: Optional[AnchorPolicy],
    now: dt.datetime,
) -> VisibilityResult:
    rows = await db.execute(select(WordMastery).where(WordMastery.speech_id == speech.id))
    ledger_rows = {row.word: row for row in rows.scalars().all()}
    phrases = await ensure_phrases(db, speech, words)

    result = select_visibility(
        words=words,
        previous_hidden=previous,
        missed=missed,
        hesitated=hesitated,
        records={word: row.to_record() for word, row in ledger_rows.items()},
        chunks=[phrase.to_chunk() for phrase in phrases],
        total_sessions=speech.total_sessions or 0,
        language=speech.language,
        policy=policy or AnchorPolicy.from_settings(),
        exercised=exercised,
    )

    # --- Ledger ---
    for word, record in result.records.items():
        row = ledger_rows.get(word)
        if row is None:
            row = WordMastery(speech_id=speech.id, word=word)
            db.add(row)
        if row.id is None or row.to_record() != record:
            row.apply_record(record)
            row.last_practiced_at = now

    # --- Phrases ---
    by_start = {phrase.start_word_index: phrase for phrase in phrases}
    for chunk in result.chunks:
        by_start[chunk.start_index].apply_chunk(chunk)

    # --- Speech ---
    speech.hidden_indices = result.hidden
    speech.text_current = result.annotated_text
    speech.visibility_percent = result.visibility_percent
    speech.total_sessions = (speech.total_sessions or 0) + 1
    speech.updated_at = now

    db.add(
        PracticeSession(
            speech_id=speech.id,
            segment_id=segment_id,
            missed_json=json.dumps(sorted(missed)),
            hesitated_json=json.dumps(sorted(hesitated)),
            hidden_at_start_json=json.dumps(sorted(previous)),
            newly_hidden_json=json.dumps(list(result.newly_hidden)),
            newly_anchored_json=json.dumps(list(result.newly_anchored)),
            visibility_percent=result.visibility_percent,
        )
    )
    return result
