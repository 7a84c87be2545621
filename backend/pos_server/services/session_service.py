# Overview: API token issue/validation for staff users and terminals.

"""
API tokens

A terminal (or the admin UI) authenticates with a bearer token issued from
the CLI (`flask users token`). There is no interactive login endpoint.

- 32 random bytes, hex encoded, shown to the operator once
- only the SHA-256 hash is stored
- fixed lifetime (SESSION_TTL_HOURS); revocable
"""

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from pos_server.time_utils import utcnow


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()


def create_session(user_id: int, ttl_hours: int = 720) -> tuple[SessionToken, str]:
    """
    Issue a token for an active user.

    Returns (token row, plaintext token). Raises ValueError for a missing or
    deactivated user.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    token = generate_token()
    issued_at = utcnow()
    row = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + timedelta(hours=ttl_hours),
    )
    db.session.add(row)
    db.session.commit()
    return row, token


def validate_session(token: str) -> User | None:
    """The token's user, or None if the token is unknown, revoked, expired or the user is inactive."""
    if not token:
        return None

    row = _find(token)
    if row is None or row.is_revoked:
        return None

    now = utcnow()
    if row.expires_at <= now or row.user is None or not row.user.is_active:
        return None

    row.last_used_at = now
    db.session.commit()
    return row.user


def revoke_session(token: str) -> bool:
    row = _find(token)
    if row is None or row.is_revoked:
        return False
    row.is_revoked = True
    row.revoked_at = utcnow()
    db.session.commit()
    return True


def cleanup_expired_sessions() -> int:
    """Delete expired and revoked tokens. Returns how many were removed."""
    removed = (
        db.session.query(SessionToken)
        .filter((SessionToken.expires_at < utcnow()) | SessionToken.is_revoked.is_(True))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return removed
