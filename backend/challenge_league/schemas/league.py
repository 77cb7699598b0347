from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from challenge_league.config import settings

class LeagueSettings(BaseModel):
    submission_days: int = Field(default=settings.default_submission_days, ge=1, le=30)
    voting_days: int = Field(default=settings.default_voting_days, ge=1, le=30)
    votes_per_player: int = Field(default=settings.default_votes_per_player, ge=1, le=10)

class LeagueCreate(LeagueSettings):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)

class LeagueUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    submission_days: int | None = Field(default=None, ge=1, le=30)
    voting_days: int | None = Field(default=None, ge=1, le=30)
    votes_per_player: int | None = Field(default=None, ge=1, le=10)

class JoinRequest(BaseModel):
    invite_code: str = Field(min_length=1, max_length=12)

class LeaguePublic(BaseModel):
    id: UUID
    owner_id: UUID
    name: str
    description: str | None = None
    invite_code: str
    submission_days: int
    voting_days: int
    votes_per_player: int
    is_started: bool
    is_active: bool
    created_at: datetime
    member_count: int = 0
    is_owner: bool = False

class MemberPublic(BaseModel):
    user_id: UUID
    username: str
    joined_at: datetime
    is_owner: bool = False

class StandingRow(BaseModel):
    user_id: UUID
    username: str
    total_points: int
    submissions: int
    wins: int
    podiums: int
    average_rank: float | None = None
    league_rank: int

class Submitter(BaseModel):
    response_id: UUID
    user_id: UUID
    username: str
    submitted_at: datetime

class SubmissionStats(BaseModel):
    has_active_challenge: bool
    submission_count: int
    total_members: int
    submitters: list[Submitter] = []
