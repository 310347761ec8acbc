"""
Admin credentials and bearer tokens.

Passwords are stored as bcrypt hashes; tokens are HS256 JWTs that assert the
admin identity (``id``, ``username``, ``email``) and expire after
``Settings.jwt_expires_hours``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import bcrypt
import jwt
from sqlalchemy import select

from siteadmin.config import Settings
from siteadmin.db import AdminUserRow, Store, iso_timestamp
from siteadmin.errors import InvalidCredentials, InvalidToken, MissingToken, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminIdentity:
    id: int
    username: str
    email: Optional[str] = None

    def as_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "email": self.email}


@dataclass
class LoginResult:
    token: str
    user: dict


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


@lru_cache(maxsize=1)
def _unmatched_hash() -> str:
    """Hash compared against when the username does not exist."""
    return hash_password("no-such-admin")


def issue_token(settings: Settings, identity: AdminIdentity, *, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    claims = {
        **identity.as_dict(),
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def login(store: Store, settings: Settings, username: str, password: str) -> LoginResult:
    if not username or not password:
        raise ValidationError("Username and password are required")

    with store.session() as session:
        user = session.execute(
            select(AdminUserRow).where(AdminUserRow.username == username)
        ).scalar_one_or_none()
        # Unknown users still pay for one bcrypt check and get the same message.
        stored = user.password if user is not None else _unmatched_hash()
        matched = check_password(password, stored)
        if user is None or not matched:
            logger.info("Rejected login for %r", username)
            raise InvalidCredentials("Invalid username or password")
        identity = AdminIdentity(id=user.id, username=user.username, email=user.email)
        public = user.public_dict()

    logger.info("Admin %s logged in", identity.username)
    return LoginResult(token=issue_token(settings, identity), user=public)


def verify(settings: Settings, authorization: Optional[str]) -> AdminIdentity:
    """
    Validate an ``Authorization: Bearer <token>`` header value.

    Raises ``MissingToken`` when there is no usable header and ``InvalidToken``
    for a bad signature, an expired token or malformed claims.
    """
    if not authorization:
        raise MissingToken("Access denied. No token provided.")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise MissingToken("Access denied. No token provided.", error="malformed Authorization header")

    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidToken("Invalid or expired token.", error="token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken("Invalid or expired token.", error=str(exc)) from exc

    try:
        return AdminIdentity(
            id=int(claims["id"]),
            username=str(claims["username"]),
            email=claims.get("email"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken("Invalid or expired token.", error="missing identity claims") from exc


def current_user(store: Store, identity: AdminIdentity) -> Optional[dict]:
    with store.session() as session:
        user = session.get(AdminUserRow, identity.id)
        if user is None:
            return None
        return {**user.public_dict(), "created_at": iso_timestamp(user.created_at)}
