from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

class CommentWrite(BaseModel):
    text: str = Field(min_length=1, max_length=500)

class CommentPublic(BaseModel):
    id: UUID
    response_id: UUID
    author_id: UUID
    author_username: str
    text: str
    created_at: datetime
    updated_at: datetime
    is_own: bool = False
    can_edit: bool = False

class CommentThread(BaseModel):
    response_id: UUID
    comments: list[CommentPublic] = []
    can_comment: bool
    message: str | None = None

class CommentSaved(BaseModel):
    comment: CommentPublic
    created: bool
