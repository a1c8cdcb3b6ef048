"""Bearer token authentication for the assist routes."""

import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Literal

import structlog
from cachetools import TLRUCache
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from copilot_api.config import get_settings
from copilot_api.errors import token_expired, unauthorized

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """Claims carried by an access token."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    email: str = Field(..., description="Account email")
    role: Literal["candidate", "recruiter", "admin"] = Field(..., description="Account role")
    exp: int | None = Field(default=None, description="Expiry as a unix timestamp")


def create_access_token(payload: TokenPayload, expires_minutes: int | None = None) -> str:
    """Issue a signed access token for a user."""
    settings = get_settings()
    minutes = settings.jwt_expires_minutes if expires_minutes is None else expires_minutes
    claims = payload.model_dump(by_alias=True, exclude={"exp"})
    claims["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenPayload:
    """Verify a token and return its claims.

    Raises:
        AuthError: ``TOKEN_EXPIRED`` for expired tokens, ``UNAUTHORIZED`` otherwise.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        raise token_expired() from e
    except JWTError as e:
        raise unauthorized("Invalid token") from e

    try:
        return TokenPayload.model_validate(claims)
    except PydanticValidationError as e:
        raise unauthorized("Invalid token") from e


class TokenSessionCache:
    """Caches verified token claims so repeat requests skip verification.

    An entry lives for ``ttl_seconds`` or until the token's own ``exp``,
    whichever comes first.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        max_sessions: int | None = None,
        timer: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self._ttl = ttl_seconds or settings.session_cache_ttl
        # Wall-clock timer so entries line up with the token's exp claim
        self._cache: TLRUCache[str, TokenPayload] = TLRUCache(
            maxsize=max_sessions or settings.max_cached_sessions,
            ttu=self._expires_at,
            timer=timer,
        )
        self._lock = threading.Lock()

    def _expires_at(self, _token: str, payload: TokenPayload, now: float) -> float:
        expires = now + self._ttl
        if payload.exp is not None:
            expires = min(expires, payload.exp)
        return expires

    def get(self, token: str) -> TokenPayload | None:
        with self._lock:
            return self._cache.get(token)

    def set(self, token: str, payload: TokenPayload) -> None:
        with self._lock:
            self._cache[token] = payload

    def count(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


# Global session cache instance
_session_cache: TokenSessionCache | None = None


def get_session_cache() -> TokenSessionCache:
    global _session_cache
    if _session_cache is None:
        _session_cache = TokenSessionCache()
    return _session_cache


def reset_session_cache() -> None:
    global _session_cache
    _session_cache = None


def authenticate_token(token: str) -> TokenPayload:
    """Resolve a bearer token to its claims, using the session cache."""
    cache = get_session_cache()
    payload = cache.get(token)
    if payload is not None:
        return payload

    payload = decode_access_token(token)
    cache.set(token, payload)
    return payload


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenPayload:
    """FastAPI dependency: require a valid bearer token.

    The user id is stored on ``request.state`` for the per-user rate limit key.
    """
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise unauthorized("No token provided")

    user = authenticate_token(credentials.credentials)
    request.state.user_id = user.user_id
    return user
