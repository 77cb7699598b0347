"""
Comments on responses.

Comments open with voting. While a prompt is VOTING a member may comment on
other members' photos and sees only their own comments; once it is COMPLETED
every comment is visible and anyone, the author included, may add one.
Editing and deleting end with the voting window.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import dialect_name
from challenge_league.models.comment import Comment
from challenge_league.models.prompt import Prompt, VOTING, COMPLETED
from challenge_league.models.response import Response
from challenge_league.models.user import User
from challenge_league.services.errors import Forbidden, LeagueError, NotFound
from challenge_league.services.responses import active_membership
from challenge_league.services.voting import voting_is_open

log = structlog.get_logger()

_INSERT = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}
MAX_LENGTH = 500


@dataclass
class Thread:
    response_id: UUID
    comments: list[tuple[Comment, str]] = field(default_factory=list)
    can_comment: bool = False
    can_edit: bool = False
    message: str | None = None


async def _response_in_league(session: AsyncSession, response_id: UUID, user_id: UUID) -> tuple[Response, Prompt]:
    row = (await session.execute(
        select(Response, Prompt).join(Prompt, Prompt.id == Response.prompt_id).where(Response.id == response_id)
    )).one_or_none()
    if row is None:
        raise NotFound("Response not found")
    response, prompt = row
    if await active_membership(session, prompt.league_id, user_id) is None:
        raise Forbidden("Not a member of this league")
    return response, prompt


def _may_comment(response: Response, prompt: Prompt, user_id: UUID, now: datetime) -> bool:
    if prompt.status == COMPLETED:
        return True
    return voting_is_open(prompt, now) and response.user_id != user_id


async def list_comments(session: AsyncSession, response_id: UUID, user_id: UUID, now: datetime) -> Thread:
    response, prompt = await _response_in_league(session, response_id, user_id)
    thread = Thread(response_id=response.id)
    if prompt.status not in (VOTING, COMPLETED):
        thread.message = "Comments open when voting starts"
        return thread

    q = (
        select(Comment, User.username)
        .join(User, User.id == Comment.author_id)
        .where(Comment.response_id == response.id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    if prompt.status == VOTING:
        q = q.where(Comment.author_id == user_id)
    thread.comments = [(c, username) for c, username in (await session.execute(q)).all()]
    thread.can_comment = _may_comment(response, prompt, user_id, now)
    thread.can_edit = voting_is_open(prompt, now)
    return thread


async def save_comment(session: AsyncSession, response_id: UUID, user_id: UUID, text: str, now: datetime) -> tuple[Comment, bool, bool]:
    """
    Create the caller's comment on a response, or replace its text.
    Returns (comment, created, editable); comments stay editable only while voting is open.
    """
    text = (text or "").strip()
    if not text:
        raise LeagueError("Comment text cannot be empty")
    if len(text) > MAX_LENGTH:
        raise LeagueError(f"Comment text cannot exceed {MAX_LENGTH} characters")

    response, prompt = await _response_in_league(session, response_id, user_id)
    if prompt.status not in (VOTING, COMPLETED):
        raise Forbidden("Comments open when voting starts")
    if prompt.status == VOTING and not voting_is_open(prompt, now):
        raise Forbidden("Commenting window has closed")
    if prompt.status == VOTING and response.user_id == user_id:
        raise Forbidden("Cannot comment on your own response while voting is open")

    existed = await session.scalar(
        select(Comment.id).where(Comment.response_id == response.id, Comment.author_id == user_id)
    )
    insert = _INSERT[dialect_name(session)]
    stmt = insert(Comment).values(response_id=response.id, author_id=user_id, text=text, created_at=now, updated_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=["author_id", "response_id"],
        set_={"text": stmt.excluded.text, "updated_at": stmt.excluded.updated_at},
    )
    await session.execute(stmt)
    comment = await session.scalar(
        select(Comment)
        .where(Comment.response_id == response.id, Comment.author_id == user_id)
        .execution_options(populate_existing=True)
    )
    log.info("comment.saved", response_id=str(response.id), author_id=str(user_id), created=existed is None)
    return comment, existed is None, voting_is_open(prompt, now)


async def delete_comment(session: AsyncSession, comment_id: UUID, user_id: UUID, now: datetime) -> None:
    row = (await session.execute(
        select(Comment, Prompt)
        .join(Response, Response.id == Comment.response_id)
        .join(Prompt, Prompt.id == Response.prompt_id)
        .where(Comment.id == comment_id)
    )).one_or_none()
    if row is None:
        raise NotFound("Comment not found")
    comment, prompt = row
    if comment.author_id != user_id:
        raise Forbidden("You can only delete your own comments")
    if not voting_is_open(prompt, now):
        raise Forbidden("Comments can only be deleted while voting is open")
    await session.delete(comment)
    await session.flush()
    log.info("comment.deleted", comment_id=str(comment_id), author_id=str(user_id))
