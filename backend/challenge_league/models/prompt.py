from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
import sqlalchemy as sa
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, Index, Uuid, func
from challenge_league.db import Base

SCHEDULED = "SCHEDULED"
ACTIVE = "ACTIVE"
VOTING = "VOTING"
COMPLETED = "COMPLETED"
PROMPT_STATUSES = (SCHEDULED, ACTIVE, VOTING, COMPLETED)

# Prompt.text shadows sqlalchemy.text inside the class body
class Prompt(Base):
    __tablename__ = "prompts"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    league_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("leagues.id", ondelete="CASCADE"), index=True, nullable=False)
    text: Mapped[str] = mapped_column(Text(), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SCHEDULED)  # SCHEDULED|ACTIVE|VOTING|COMPLETED
    # Position among the league's SCHEDULED prompts, contiguous from 1
    queue_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    phase_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    week_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    week_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vote_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vote_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_prompts_league_status_order", "league_id", "status", "queue_order"),
        # At most one in-flight prompt per league
        Index(
            "uq_prompts_one_inflight_per_league",
            "league_id",
            unique=True,
            postgresql_where=sa.text("status IN ('ACTIVE','VOTING')"),
            sqlite_where=sa.text("status IN ('ACTIVE','VOTING')"),
        ),
    )
