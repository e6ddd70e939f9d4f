# Overview: Bearer token issue/validation and caller context resolution.

"""
Session tokens resolve the caller of each request into a CallerContext.

Credentials and login live with the external identity provider; tokens are
issued out of band (see `flask users issue-token`).

SECURITY:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from SESSION_TTL_HOURS
- Revocable
"""

import secrets
import hashlib
from dataclasses import dataclass, field
from datetime import timedelta, timezone

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, ROLE_ADMIN
from .shop_access_service import get_managed_shop_ids
from shopstock.time_utils import utcnow


@dataclass(frozen=True)
class CallerContext:
    """Resolved identity handed to every restock/stock operation."""
    user_id: int | None
    role: str
    managed_shop_ids: frozenset[int] = field(default_factory=frozenset)
    display_name: str = "system"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def managed_shop_id(self) -> int | None:
        """Primary managed shop (lowest id) for single-shop clients."""
        return min(self.managed_shop_ids) if self.managed_shop_ids else None

    def can_manage(self, shop_id: int) -> bool:
        return self.is_admin or shop_id in self.managed_shop_ids

    @classmethod
    def for_user(cls, user: User) -> "CallerContext":
        return cls(
            user_id=user.id,
            role=user.role,
            managed_shop_ids=frozenset(get_managed_shop_ids(user.id)),
            display_name=user.display_name,
        )


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Issue a token for an active user. Returns (session_record, plaintext_token);
    only the hash is stored. Caller commits.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    plaintext_token = generate_token()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + ttl,
    )
    db.session.add(session)
    db.session.flush()
    return session, plaintext_token


def validate_session(token: str) -> CallerContext | None:
    """Return the caller context for a valid token, or None."""
    session = (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if not session:
        return None
    expires_at = session.expires_at
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    if expires_at <= utcnow():
        return None

    user = session.user
    if not user or not user.is_active:
        return None

    return CallerContext.for_user(user)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.flush()
    return True
