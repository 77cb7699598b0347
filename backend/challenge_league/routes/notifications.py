from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user
from challenge_league.schemas.notification import NotificationPublic
from challenge_league.services.notifications import list_for_user, mark_read
from challenge_league.services.phases import utcnow

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("", response_model=list[NotificationPublic])
async def list_notifications(
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_user),
    unread: int = Query(default=0, ge=0, le=1, description="1=only unread"),
    limit: int = Query(default=50, ge=1, le=100),
):
    rows = await list_for_user(session, user.id, unread_only=bool(unread), limit=limit)
    return [NotificationPublic.model_validate(n, from_attributes=True) for n in rows]

@router.post("/{notification_id}/read", status_code=204)
async def read_notification(notification_id: uuid.UUID, session: AsyncSession = Depends(get_session), user=Depends(get_current_user)):
    if not await mark_read(session, user.id, notification_id, utcnow()):
        raise HTTPException(status_code=404, detail="Notification not found or already read")
    await session.commit()
