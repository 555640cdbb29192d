"""
Journal entry endpoints.

``POST /entries`` either finalizes a completed processing job or stores a
typed entry directly. All persistence goes through ``EntryFinalizer``.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import FileResponse

from mindwell.api.deps import current_user_id, get_finalizer
from mindwell.core.exceptions import EntryAudioNotFoundError
from mindwell.core.models import EntryCreate, EntryResponse, ErrorResponse
from mindwell.services.audio.formats import normalize_mime
from mindwell.services.finalizer import EntryFinalizer, to_entry_response
from mindwell.services.storage.database import get_session
from mindwell.services.storage.repository import JournalRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entries", tags=["entries"])


@router.post(
    "",
    status_code=201,
    response_model=EntryResponse,
    responses={
        200: {"description": "Job already finalized; existing entry returned", "model": EntryResponse},
        404: {"description": "Unknown or expired job", "model": ErrorResponse},
        409: {"description": "Job not complete yet", "model": ErrorResponse},
        503: {"description": "Entry could not be saved; retry", "model": ErrorResponse},
    },
)
async def create_entry(
    body: EntryCreate,
    response: Response,
    user_id: int = Depends(current_user_id),
    finalizer: EntryFinalizer = Depends(get_finalizer),
) -> EntryResponse:
    if body.job_id:
        entry, created = await finalizer.finalize(user_id, body.job_id, body.mood_override)
        if not created:
            response.status_code = 200
        return entry

    return await finalizer.create_text_entry(
        user_id=user_id,
        content=body.content,
        mood=body.mood,
        title=body.title,
        tags=body.tags,
    )


@router.get("", response_model=list[EntryResponse])
async def list_entries(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(current_user_id),
) -> list[EntryResponse]:
    """List the caller's entries, newest first."""
    async with get_session() as session:
        entries = await JournalRepository(session).list_entries(user_id, limit=limit, offset=offset)
        return [to_entry_response(e) for e in entries]


@router.get(
    "/{entry_id}",
    response_model=EntryResponse,
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
)
async def get_entry(entry_id: int, user_id: int = Depends(current_user_id)) -> EntryResponse:
    async with get_session() as session:
        entry = await JournalRepository(session).get_entry(entry_id, user_id)
        return to_entry_response(entry)


@router.get(
    "/{entry_id}/audio",
    response_class=FileResponse,
    responses={
        200: {"description": "The entry's original recording", "content": {"audio/*": {}}},
        404: {"description": "Entry or recording not found", "model": ErrorResponse},
    },
)
async def get_entry_audio(entry_id: int, user_id: int = Depends(current_user_id)) -> FileResponse:
    """Stream the recording a voice entry was transcribed from."""
    async with get_session() as session:
        entry = await JournalRepository(session).get_entry(entry_id, user_id)
        audio_path = entry.audio_path

    if not audio_path or not Path(audio_path).is_file():
        raise EntryAudioNotFoundError(entry_id)
    return FileResponse(
        audio_path,
        media_type=normalize_mime(None, audio_path) or "application/octet-stream",
        filename=f"entry-{entry_id}{Path(audio_path).suffix}",
    )
