"""Practice-session API: apply one finished session to a speech."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from rehearsal.database import get_db
from rehearsal.services.session_update import SessionUpdateError, apply_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/speeches/{speech_id}/sessions")
async def submit_session(
    speech_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Apply a finished practice session.

    Body:
      {"missed_indices": [int], "hesitated_indices": [int],
       "hidden_indices"?: [int], "segment_id"?: int, "expected_version"?: int}

    Returns the new annotated text, visibility percent, new anchors and a
    short summary message.
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Body must be JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Body must be a JSON object"}, status_code=400)

    segment_id = body.get("segment_id")
    expected_version = body.get("expected_version")
    for name, value in (("segment_id", segment_id), ("expected_version", expected_version)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            return JSONResponse({"error": f"{name} must be an integer"}, status_code=400)

    try:
        outcome = await apply_session(
            db,
            speech_id,
            missed_indices=body.get("missed_indices") or [],
            hesitated_indices=body.get("hesitated_indices") or [],
            hidden_indices=body.get("hidden_indices"),
            segment_id=segment_id,
            expected_version=expected_version,
        )
    except SessionUpdateError as exc:
        logger.warning("Session for speech %s rejected: %s", speech_id, exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    return JSONResponse(outcome.to_dict())
