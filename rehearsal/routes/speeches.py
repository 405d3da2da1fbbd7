"""Speech management and reporting API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rehearsal.config import settings
from rehearsal.database import get_db
from rehearsal.models import Speech, SpeechPhrase, SpeechSegment
from rehearsal.services.classifier import STOP_WORDS
from rehearsal.services.progress import mastery_report
from rehearsal.services.rendering import (
    parse_hidden_indices,
    render_annotated,
    tokenize,
)
from rehearsal.services.session_update import SessionUpdateError, ensure_phrases

logger = logging.getLogger(__name__)

router = APIRouter()


def _segment_dict(segment: SpeechSegment) -> dict:
    return {
        "id": segment.id,
        "order": segment.segment_order,
        "start": segment.start_word_index,
        "end": segment.end_word_index,
        "visibility_percent": segment.visibility_percent,
        "anchor_indices": segment.anchor_indices,
        "times_practiced": segment.times_practiced,
        "is_mastered": segment.is_mastered,
        "next_review_at": (
            segment.next_review_at.isoformat() if segment.next_review_at else None
        ),
    }


def _parse_segments(raw, word_count: int) -> list[tuple[int, int]]:
    """Validate [{start, end}, ...]; raises ValueError on bad input."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("segments must be a list")
    spans: list[tuple[int, int]] = []
    for item in raw:
        start = item.get("start") if isinstance(item, dict) else None
        end = item.get("end") if isinstance(item, dict) else None
        if not isinstance(start, int) or not isinstance(end, int):
            raise ValueError("each segment needs integer start and end")
        if not 0 <= start <= end < word_count:
            raise ValueError(f"segment {start}-{end} is out of range for {word_count} words")
        spans.append((start, end))
    spans.sort()
    for (_, prev_end), (start, _) in zip(spans, spans[1:]):
        if start <= prev_end:
            raise ValueError("segments must not overlap")
    return spans


# ---- Create / read / delete ----


@router.post("/speeches")
async def create_speech(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Create a speech. Body: {title: str, text: str, language?: str, segments?: [{start, end}]}."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Body must be JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Body must be a JSON object"}, status_code=400)

    title = body.get("title")
    text = body.get("text")
    language = body.get("language") or settings.default_language
    if not isinstance(title, str) or not title.strip():
        return JSONResponse({"error": "title is required"}, status_code=400)
    if not isinstance(text, str):
        return JSONResponse({"error": "text is required"}, status_code=400)
    if language not in STOP_WORDS:
        return JSONResponse({"error": f"Unsupported language {language!r}"}, status_code=400)

    words = tokenize(text)
    try:
        spans = _parse_segments(body.get("segments"), len(words))
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    speech = Speech(
        title=title.strip(),
        language=language,
        text_original=text,
        text_current=" ".join(words),
        visibility_percent=100.0 if words else 0.0,
        total_sessions=0,
    )
    speech.hidden_indices = set()
    db.add(speech)
    await db.flush()

    for order, (start, end) in enumerate(spans):
        db.add(
            SpeechSegment(
                speech_id=speech.id,
                segment_order=order,
                start_word_index=start,
                end_word_index=end,
            )
        )
    phrases = await ensure_phrases(db, speech, words)
    await db.commit()

    logger.info(
        "Created speech %s (%d words, %d segments, %d phrases)",
        speech.id, len(words), len(spans), len(phrases),
    )
    return JSONResponse(
        {"speech_id": speech.id, "word_count": len(words), "version": speech.version},
        status_code=201,
    )


@router.get("/speeches/{speech_id}")
async def get_speech(speech_id: int, db: AsyncSession = Depends(get_db)):
    """Speech with its annotated text rendered from the stored hidden set."""
    result = await db.execute(
        select(Speech)
        .where(Speech.id == speech_id)
        .options(selectinload(Speech.segments))
    )
    speech = result.scalar_one_or_none()
    if not speech:
        return JSONResponse({"error": "Speech not found"}, status_code=404)

    words = tokenize(speech.text_original)
    hidden = speech.hidden_indices
    if hidden is None:
        hidden = parse_hidden_indices(speech.text_current)

    return JSONResponse({
        "id": speech.id,
        "title": speech.title,
        "language": speech.language,
        "text_original": speech.text_original,
        "annotated_text": render_annotated(words, hidden),
        "hidden_indices": sorted(hidden),
        "visibility_percent": speech.visibility_percent,
        "total_sessions": speech.total_sessions,
        "version": speech.version,
        "segments": [_segment_dict(s) for s in speech.segments],
    })


@router.delete("/speeches/{speech_id}")
async def delete_speech(speech_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a speech together with its ledger, phrases, segments and sessions."""
    result = await db.execute(select(Speech).where(Speech.id == speech_id))
    speech = result.scalar_one_or_none()
    if not speech:
        return JSONResponse({"error": "Speech not found"}, status_code=404)

    await db.delete(speech)
    await db.commit()
    logger.info("Deleted speech %s", speech_id)
    return JSONResponse({"deleted": speech_id})


# ---- Reports ----


@router.get("/speeches/{speech_id}/mastery")
async def get_mastery(
    speech_id: int,
    limit: int | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Per-word mastery, hardest words first."""
    if limit is not None and limit < 1:
        return JSONResponse({"error": "limit must be a positive integer"}, status_code=400)
    try:
        report = await mastery_report(db, speech_id, limit=limit)
    except SessionUpdateError as exc:
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)
    return JSONResponse(report)


@router.get("/speeches/{speech_id}/phrases")
async def get_phrases(speech_id: int, db: AsyncSession = Depends(get_db)):
    """Phrase chunks and their tracking state."""
    result = await db.execute(select(Speech.id).where(Speech.id == speech_id))
    if result.scalar_one_or_none() is None:
        return JSONResponse({"error": "Speech not found"}, status_code=404)

    result = await db.execute(
        select(SpeechPhrase)
        .where(SpeechPhrase.speech_id == speech_id)
        .order_by(SpeechPhrase.start_word_index)
    )
    phrases = []
    for row in result.scalars().all():
        chunk = row.to_chunk()
        phrases.append({
            "text": chunk.text,
            "start": chunk.start_index,
            "end": chunk.end_index,
            "times_correct": chunk.correct_count,
            "missed_weight": float(chunk.missed_weight),
            "is_hidden": chunk.hidden,
        })
    return JSONResponse({"speech_id": speech_id, "phrases": phrases})
