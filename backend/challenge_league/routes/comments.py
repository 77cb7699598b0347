from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends, Response as RawResponse
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user
from challenge_league.league_deps import http_error
from challenge_league.schemas.comment import CommentPublic, CommentSaved, CommentThread, CommentWrite
from challenge_league.services.comments import delete_comment, list_comments, save_comment
from challenge_league.services.errors import LeagueError
from challenge_league.services.phases import utcnow

router = APIRouter(tags=["comments"])


def _public(comment, username: str, user_id: uuid.UUID, can_edit: bool) -> CommentPublic:
    own = comment.author_id == user_id
    return CommentPublic(
        id=comment.id,
        response_id=comment.response_id,
        author_id=comment.author_id,
        author_username=username,
        text=comment.text,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        is_own=own,
        can_edit=own and can_edit,
    )


@router.get("/responses/{response_id}/comments", response_model=CommentThread)
async def get_comments(
    response_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
):
    """Comments visible to the caller; during voting that is only their own."""
    try:
        thread = await list_comments(session, response_id, user.id, utcnow())
    except LeagueError as e:
        raise http_error(e)
    return CommentThread(
        response_id=thread.response_id,
        comments=[_public(c, name, user.id, thread.can_edit) for c, name in thread.comments],
        can_comment=thread.can_comment,
        message=thread.message,
    )


@router.post("/responses/{response_id}/comments", response_model=CommentSaved)
async def post_comment(
    response_id: uuid.UUID,
    payload: CommentWrite,
    out: RawResponse,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
):
    user_id, username = user.id, user.username
    try:
        comment, created, editable = await save_comment(session, response_id, user_id, payload.text, utcnow())
        await session.commit()
    except LeagueError as e:
        await session.rollback()
        raise http_error(e)
    out.status_code = 201 if created else 200
    return CommentSaved(comment=_public(comment, username, user_id, editable), created=created)


@router.delete("/comments/{comment_id}", status_code=204)
async def remove_comment(
    comment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
):
    user_id = user.id
    try:
        await delete_comment(session, comment_id, user_id, utcnow())
        await session.commit()
    except LeagueError as e:
        await session.rollback()
        raise http_error(e)
    return RawResponse(status_code=204)
