"""
FastAPI Dependencies

Provides dependency injection for database sessions and the acting user.

Tokens are issued by the external auth service; this API only verifies the
signature and turns the claims into an Actor for the stock engines.

SECURITY NOTES:
- JWT payloads are never logged
- Bearer token is the primary auth method (SPA-friendly, no CSRF needed)
- Session cookies are supported but Bearer is preferred
"""

from typing import Annotated
from fastapi import Depends, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
import logging

from app.database import get_db
from app.config import settings
from app.exceptions import UnauthorizedError
from app.services.inventory.actors import Actor, AdminUser, Employee

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT - primary auth method
security = HTTPBearer(auto_error=False)

ADMIN_ROLES = {"admin", "superadmin"}


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token (used by tests and internal tooling)."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def actor_from_claims(payload: dict) -> Actor:
    """Map token claims to an Actor. Raises ValueError for unusable claims."""
    sub = payload.get("sub")
    name = (payload.get("name") or payload.get("email") or "").strip()
    if not sub or not name:
        raise ValueError("token is missing sub or name")
    if str(payload.get("role", "")).lower() in ADMIN_ROLES:
        return AdminUser(id=str(sub), name=name)
    return Employee(id=str(sub), name=name)


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    session_token: Annotated[str | None, Cookie(alias="session")] = None,
) -> Actor:
    """
    Resolve the acting user from a JWT bearer token or session cookie.

    SECURITY:
    - Bearer token is preferred (no CSRF vulnerability)
    - JWT payloads are NOT logged to prevent credential leakage
    """
    token = None
    auth_method = None

    if credentials:
        token = credentials.credentials
        auth_method = "bearer"
    elif session_token:
        token = session_token
        auth_method = "cookie"

    if not token:
        raise UnauthorizedError()

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        actor = actor_from_claims(payload)
    except JWTError:
        logger.warning("JWT validation failed", extra={"auth_method": auth_method})
        raise UnauthorizedError()
    except ValueError:
        logger.warning("Invalid token claims", extra={"auth_method": auth_method})
        raise UnauthorizedError()

    logger.debug("Actor authenticated", extra={"actor_kind": actor.kind, "auth_method": auth_method})
    return actor


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
