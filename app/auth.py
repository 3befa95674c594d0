"""
Session and OAuth-state tokens (HS256 JWTs signed with JWT_SECRET), plus the FastAPI
dependencies that turn a request into a caller-scoped Store.
"""
import time
from typing import Callable, Optional

from fastapi import Cookie, Depends, Header
from jose import JWTError, jwt

from .errors import AuthenticationError, ConfigurationError
from .settings import settings
from .store import Store

TOKEN_ALG = "HS256"
SESSION_COOKIE = "access_token"
STATE_COOKIE = "google_oauth_state"
STATE_TTL_SECONDS = 600
STATE_PURPOSE = "google_oauth_state"


def _secret() -> str:
    if not settings.JWT_SECRET:
        raise ConfigurationError("JWT_SECRET not configured")
    return settings.JWT_SECRET


def _decode(token: str) -> Optional[dict]:
    if not token or not settings.JWT_SECRET:
        return None
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[TOKEN_ALG], options={"verify_aud": False})
    except JWTError:
        return None


def create_session_token(user_id: str, ttl_seconds: int = 3600) -> str:
    now = int(time.time())
    return jwt.encode({"sub": user_id, "iat": now, "exp": now + ttl_seconds}, _secret(), algorithm=TOKEN_ALG)


def user_id_from_token(token: str) -> Optional[str]:
    payload = _decode(token)
    if not payload or payload.get("purpose") == STATE_PURPOSE:
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


def sign_state(state: str, user_id: str, now: Optional[int] = None) -> str:
    """Signed, time-boxed value for the OAuth state cookie."""
    now = int(now if now is not None else time.time())
    claims = {
        "state": state,
        "uid": user_id,
        "purpose": STATE_PURPOSE,
        "exp": now + STATE_TTL_SECONDS,
    }
    return jwt.encode(claims, _secret(), algorithm=TOKEN_ALG)


def verify_state(cookie_value: Optional[str], state: Optional[str], user_id: Optional[str]) -> bool:
    """Cookie must be present, unexpired, and match both the returned state and the session user."""
    if not cookie_value or not state or not user_id:
        return False
    claims = _decode(cookie_value)
    if not claims or claims.get("purpose") != STATE_PURPOSE:
        return False
    return claims.get("state") == state and claims.get("uid") == user_id


# ----- Dependencies -----

def get_optional_user(
    authorization: str = Header(default=""),
    access_token: Optional[str] = Cookie(default=None),
) -> Optional[str]:
    """Bearer header first, then the session cookie (browser redirects)."""
    token = ""
    if authorization and authorization.strip().startswith("Bearer "):
        token = authorization.strip().split(None, 1)[-1]
    elif access_token:
        token = access_token
    return user_id_from_token(token)


def get_current_user(user_id: Optional[str] = Depends(get_optional_user)) -> str:
    if not user_id:
        raise AuthenticationError()
    return user_id


def get_store_factory() -> Callable[[str], Store]:
    return Store


def get_store(
    user_id: str = Depends(get_current_user),
    factory: Callable[[str], Store] = Depends(get_store_factory),
) -> Store:
    return factory(user_id)
