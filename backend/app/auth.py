"""Authentication utilities for the TaskLynk API.

Actors authenticate with a bearer JWT whose ``sub`` is the user id and whose
``role`` claim is one of client, freelancer or admin.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tasklynk.orders import Actor, ActorRole

from .config import Settings, get_settings

security = HTTPBearer(auto_error=False)


def create_access_token(
    actor_id: int,
    role: ActorRole | str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for an actor."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": str(actor_id),
        "role": ActorRole(role).value,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _unauthorized("Invalid or expired token")


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Actor:
    """Resolve the authenticated actor from the bearer token."""
    if credentials is None:
        raise _unauthorized("Not authenticated - provide an Authorization header")

    payload = decode_token(credentials.credentials, settings)
    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")
    try:
        return Actor(id=int(payload["sub"]), role=ActorRole(payload["role"]))
    except (KeyError, TypeError, ValueError):
        raise _unauthorized("Invalid token claims")


CurrentActor = Annotated[Actor, Depends(get_current_actor)]


def require_admin(actor: CurrentActor) -> Actor:
    """Dependency that only admits administrators."""
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return actor


AdminActor = Annotated[Actor, Depends(require_admin)]
