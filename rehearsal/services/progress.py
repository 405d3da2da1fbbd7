"""Word mastery report for a speech."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rehearsal.config import settings
from rehearsal.models import WordMastery
from rehearsal.services.mastery import WordRecord, eligible_for_hiding, is_recovering
from rehearsal.services.session_update import load_speech

logger = logging.getLogger(__name__)

STRUGGLING_ERROR_RATE = 0.3


def difficulty_score(record: WordRecord) -> float:
    """Higher = harder. Misses weigh twice as much as hesitations."""
    attempts = record.correct_count + record.error_count
    if attempts == 0:
        return 0.0
    score = (record.missed_count * 2 + record.hesitated_count) / attempts
    # failures while hidden are the strongest signal
    score += 0.5 * record.hidden_miss_count + 0.25 * record.hidden_hesitate_count
    return round(score, 3)


def describe_word(record: WordRecord) -> dict[str, Any]:
    attempts = record.correct_count + record.error_count
    error_rate = record.error_count / attempts if attempts else 0.0
    recovering = is_recovering(record)
    return {
        "word": record.word,
        "classification": record.classification,
        "correct": record.correct_count,
        "missed": record.missed_count,
        "hesitated": record.hesitated_count,
        "hidden_misses": record.hidden_miss_count,
        "hidden_hesitations": record.hidden_hesitate_count,
        "consecutive_correct": record.consecutive_correct,
        "is_anchor": record.is_anchor,
        "is_recovering": recovering,
        "recovery_remaining": max(record.recovery_needed - record.correct_count, 0),
        "eligible_for_hiding": eligible_for_hiding(record),
        "error_rate": round(error_rate, 3),
        "difficulty": difficulty_score(record),
        "struggling": record.is_anchor or recovering or error_rate > STRUGGLING_ERROR_RATE,
    }


async def mastery_report(
    db: AsyncSession,
    speech_id: int,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Summarise the ledger of *speech_id*, hardest words first.

    Returns:
      {"speech_id": int, "total_sessions": int, "words": [...],
       "struggling_count": int, "anchor_count": int, "hideable_count": int}
    """
    speech = await load_speech(db, speech_id)
    if limit is None:
        limit = settings.mastery_report_limit
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    result = await db.execute(
        select(WordMastery).where(WordMastery.speech_id == speech_id)
    )
    described = [describe_word(row.to_record()) for row in result.scalars().all()]
    described.sort(key=lambda w: (-w["difficulty"], -w["missed"], w["word"]))

    logger.debug("Mastery report for speech %s: %d words", speech_id, len(described))

    return {
        "speech_id": speech_id,
        "total_sessions": speech.total_sessions or 0,
        "visibility_percent": speech.visibility_percent,
        "word_count": len(described),
        "struggling_count": sum(1 for w in described if w["struggling"]),
        "anchor_count": sum(1 for w in described if w["is_anchor"]),
        "hideable_count": sum(1 for w in described if w["eligible_for_hiding"]),
        "words": described[:limit],
    }
