from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

class NotificationPublic(BaseModel):
    id: UUID
    league_id: UUID | None = None
    kind: str
    title: str
    body: str
    data: dict = Field(default_factory=dict)
    read_at: datetime | None = None
    created_at: datetime
