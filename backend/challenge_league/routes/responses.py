from __future__ import annotations
import uuid
import structlog
from fastapi import APIRouter, Depends, HTTPException, Form, UploadFile, File
from fastapi.responses import Response as RawResponse
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.config import settings
from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user
from challenge_league.league_deps import get_member_league, http_error
from challenge_league.models.league import League
from challenge_league.models.prompt import Prompt
from challenge_league.models.response import Response
from challenge_league.schemas.response import SubmitResult, response_public
from challenge_league.services import storage
from challenge_league.services.errors import LeagueError
from challenge_league.services.media import analyze_image, ext_for_mime, photo_taken_at
from challenge_league.services.phases import utcnow
from challenge_league.services.responses import active_membership, open_prompt_for_submission, upsert_response, old_photo_warning

router = APIRouter(tags=["responses"])
log = structlog.get_logger()

@router.post("/leagues/{league_id}/responses", response_model=SubmitResult, status_code=201)
async def submit_response(
    league: League = Depends(get_member_league),
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
    caption: str = Form(..., min_length=1, max_length=500),
    image: UploadFile = File(..., description="JPEG, PNG or WEBP photo"),
):
    """Submit or replace the caller's photo for the league's ACTIVE prompt."""
    if not caption.strip():
        raise HTTPException(status_code=422, detail="Caption is required")
    data = await image.read()
    try:
        mime, exif = analyze_image(data, settings.max_upload_bytes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid image: {e}")

    now = utcnow()
    user_id = user.id
    try:
        prompt = await open_prompt_for_submission(session, league, user_id, now)
    except LeagueError as e:
        raise http_error(e)

    taken_at = photo_taken_at(exif)
    key = storage.response_key(prompt.id, user_id, uuid.uuid4().hex, ext_for_mime(mime))
    try:
        storage.put_bytes(key, data, mime)
    except Exception:
        log.exception("responses.store_failed", prompt_id=str(prompt.id), user_id=str(user_id))
        raise HTTPException(status_code=502, detail="Failed to store image")

    warning = old_photo_warning(taken_at, prompt)
    try:
        row, replaced_key = await upsert_response(
            session, prompt, user_id,
            caption=caption.strip(),
            storage_key=key,
            mime_type=mime,
            photo_taken_at=taken_at,
            now=now,
        )
        row.image_url = f"/responses/{row.id}/image"
        await session.commit()
    except LeagueError as e:
        await session.rollback()
        storage.delete_object(key)
        raise http_error(e)
    except Exception:
        await session.rollback()
        storage.delete_object(key)
        raise
    if replaced_key:
        storage.delete_object(replaced_key)

    log.info("responses.submitted", prompt_id=str(row.prompt_id), user_id=str(user_id), replaced=bool(replaced_key))
    return SubmitResult(response=response_public(row, user.username), warning=warning)

@router.get("/responses/{response_id}/image")
async def get_response_image(
    response_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
):
    """Serve a response photo to members of its league; unpublished photos only to their author."""
    row = await session.get(Response, response_id)
    if not row:
        raise HTTPException(status_code=404, detail="Response not found")
    prompt = await session.get(Prompt, row.prompt_id)
    if not await active_membership(session, prompt.league_id, user.id):
        raise HTTPException(status_code=403, detail="Not a member of this league")
    if not row.is_published and row.user_id != user.id:
        raise HTTPException(status_code=403, detail="Response is not published yet")
    if not row.storage_key:
        raise HTTPException(status_code=404, detail="No image associated with this response")
    try:
        data, content_type = storage.get_bytes(row.storage_key)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Image file not found in storage")
    return RawResponse(content=data, media_type=content_type)
