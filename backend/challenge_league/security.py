from __future__ import annotations
import hmac
from datetime import datetime, timedelta, timezone
import jwt
from passlib.context import CryptContext
from challenge_league.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALG = "HS256"
ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Token could not be decoded, has expired, or is the wrong type."""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def _issue(sub: str, token_type: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "type": token_type,
        "iss": settings.app_name,
        "iat": now.timestamp(),  # float keeps back-to-back tokens distinct
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def make_access_token(sub: str) -> str:
    return _issue(sub, ACCESS, timedelta(minutes=settings.access_ttl_min))

def make_refresh_token(sub: str) -> str:
    return _issue(sub, REFRESH, timedelta(minutes=settings.refresh_ttl_min))

def token_subject(token: str, expected_type: str) -> str:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG], issuer=settings.app_name)
    except jwt.PyJWTError as e:
        raise TokenError("Invalid token") from e
    if data.get("type") != expected_type:
        raise TokenError("Wrong token type")
    sub = data.get("sub")
    if not sub:
        raise TokenError("Invalid token")
    return str(sub)

def cron_secret_matches(token: str) -> bool:
    return hmac.compare_digest(token.encode(), settings.cron_secret.encode())
