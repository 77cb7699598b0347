from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

PromptStatus = Literal["SCHEDULED", "ACTIVE", "VOTING", "COMPLETED"]

class PromptCreate(BaseModel):
    text: str = Field(min_length=1, max_length=500)

class PromptUpdate(BaseModel):
    text: str = Field(min_length=1, max_length=500)

class ReorderRequest(BaseModel):
    prompt_ids: list[UUID] = Field(alias="promptIds")

    model_config = {"populate_by_name": True}

class PromptPublic(BaseModel):
    id: UUID
    league_id: UUID
    text: str
    status: PromptStatus
    queue_order: int
    phase_started_at: datetime | None = None
    week_start: datetime | None = None
    week_end: datetime | None = None
    vote_start: datetime | None = None
    vote_end: datetime | None = None
    created_at: datetime

class PromptQueue(BaseModel):
    active: list[PromptPublic] = []
    voting: list[PromptPublic] = []
    scheduled: list[PromptPublic] = []
    completed: list[PromptPublic] = []

class TimeRemaining(BaseModel):
    days: int
    hours: int
    minutes: int
    is_expired: bool

class PhaseChangeOut(BaseModel):
    league_id: UUID
    prompt_id: UUID
    from_status: PromptStatus
    to_status: PromptStatus
    at: datetime

class TransitionResult(BaseModel):
    changes: list[PhaseChangeOut]
    current: PromptPublic | None = None
