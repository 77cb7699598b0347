from __future__ import annotations
import uuid
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from challenge_league.db import get_session
from challenge_league.models.user import User
from challenge_league.security import ACCESS, TokenError, token_subject, cron_secret_matches

bearer = HTTPBearer()
optional_bearer = HTTPBearer(auto_error=False)

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    session: AsyncSession = Depends(get_session),
) -> User:
    try:
        user_id = uuid.UUID(token_subject(credentials.credentials, ACCESS))
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user

async def require_cron_secret(credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer)) -> None:
    """Cron callers authenticate with `Authorization: Bearer $CRON_SECRET`."""
    if credentials is None or not cron_secret_matches(credentials.credentials):
        raise HTTPException(status_code=401, detail="Unauthorized")
