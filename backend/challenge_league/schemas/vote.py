from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from challenge_league.schemas.prompt import PromptPublic
from challenge_league.schemas.response import ResponsePublic

class VoteEntry(BaseModel):
    response_id: UUID
    rank: int = Field(ge=1)

class BallotSubmit(BaseModel):
    votes: list[VoteEntry] = Field(min_length=1)

class VotePublic(BaseModel):
    response_id: UUID
    rank: int
    points: int

class BallotPublic(BaseModel):
    prompt: PromptPublic | None = None
    responses: list[ResponsePublic] = []
    my_votes: list[VotePublic] = []
    votes_per_player: int
    voting_open: bool
