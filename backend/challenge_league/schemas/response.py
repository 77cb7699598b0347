from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from challenge_league.schemas.prompt import PromptPublic, TimeRemaining


class ResponsePublic(BaseModel):
    id: UUID
    prompt_id: UUID
    user_id: UUID
    username: str | None = None
    caption: str
    mime_type: str | None = None
    # served via proxy endpoint; storage keys stay private
    image_url: str | None = None
    photo_taken_at: datetime | None = None
    submitted_at: datetime
    is_published: bool
    total_points: int = 0
    final_rank: int | None = None


class SubmitResult(BaseModel):
    response: ResponsePublic
    warning: str | None = None


class CurrentPrompt(BaseModel):
    prompt: PromptPublic | None = None
    challenge_number: int
    time_remaining: TimeRemaining | None = None
    my_response: ResponsePublic | None = None


class RoundSummary(BaseModel):
    prompt: PromptPublic
    response_count: int


class RoundResults(BaseModel):
    prompt: PromptPublic
    responses: list[ResponsePublic]


def response_public(r, username: str | None = None) -> ResponsePublic:
    return ResponsePublic(
        id=r.id,
        prompt_id=r.prompt_id,
        user_id=r.user_id,
        username=username,
        caption=r.caption,
        mime_type=r.mime_type,
        image_url=f"/responses/{r.id}/image" if r.storage_key else None,
        photo_taken_at=r.photo_taken_at,
        submitted_at=r.submitted_at,
        is_published=r.is_published,
        total_points=r.total_points,
        final_rank=r.final_rank,
    )
