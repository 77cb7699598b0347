from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi.security import HTTPAuthorizationCredentials
from challenge_league.config import settings
from challenge_league.db import get_session
from challenge_league.auth_deps import get_current_user, optional_bearer
from challenge_league.models.user import User
from challenge_league.schemas.auth import RegisterRequest, LoginRequest, UserPublic, TokenPair
from challenge_league.security import REFRESH, TokenError, hash_password, verify_password, make_access_token, make_refresh_token, token_subject

router = APIRouter(prefix="/auth", tags=["auth"])

def _tokens(sub: str) -> TokenPair:
    return TokenPair(
        access=make_access_token(sub),
        refresh=make_refresh_token(sub),
        expires_in=settings.access_ttl_min * 60,
    )

@router.post("/register", status_code=201, response_model=UserPublic)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_session)):
    email = payload.email.lower()
    username = payload.username.lower()
    if await session.scalar(select(User.id).where(func.lower(User.email) == email)):
        raise HTTPException(status_code=409, detail="Email already registered")
    if await session.scalar(select(User.id).where(func.lower(User.username) == username)):
        raise HTTPException(status_code=409, detail="Username already taken")
    user = User(email=email, username=username, password_hash=hash_password(payload.password))
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration
        await session.rollback()
        raise HTTPException(status_code=409, detail="Email or username already registered")
    await session.refresh(user)
    return UserPublic.model_validate(user)

@router.post("/login", response_model=TokenPair)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)):
    user = await session.scalar(select(User).where(func.lower(User.email) == payload.email.lower()))
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _tokens(str(user.id))

@router.post("/refresh", response_model=TokenPair)
async def refresh(credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer)):
    """Trade a refresh token (sent as the bearer credential) for a new pair."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing refresh token")
    try:
        sub = token_subject(credentials.credentials, REFRESH)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return _tokens(sub)

@router.get("/me", response_model=UserPublic)
async def me(user: User = Depends(get_current_user)):
    return UserPublic.model_validate(user)
