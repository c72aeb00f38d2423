# Overview: Service-layer operations for session; bearer token issue, validation, revocation.

"""
Bearer sessions for mill staff.

The client holds a random 32-byte hex token; the session_tokens table keeps
only its SHA-256 digest. A session dies when any of these happens:
SESSION_ABSOLUTE_TIMEOUT_HOURS passes since login, SESSION_IDLE_TIMEOUT_HOURS
passes since last use, the user logs out, or the account is deactivated.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ricemill.time_utils import utcnow

IDLE_TIMEOUT_REASON = "Idle timeout"
DEACTIVATED_REASON = "User account deactivated"


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def hash_token(token: str) -> str:
    # tokens are high-entropy random values, a fast digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _live_session(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter(
            SessionToken.token_hash == hash_token(token),
            SessionToken.is_revoked.is_(False),
        )
        .first()
    )


def _close(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for user_id.

    Returns (session_row, token); the token is only ever seen here.
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = secrets.token_hex(32)
    opened_at = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=opened_at,
        last_used_at=opened_at,
        expires_at=opened_at + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> User | None:
    """Resolve a bearer token to its active user and refresh last_used_at."""
    session = _live_session(token)
    if session is None:
        return None

    now = utcnow()
    if now > session.expires_at:
        return None

    if now - session.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS", 2):
        _close(session, IDLE_TIMEOUT_REASON)
        return None

    user = session.user
    if user is None or not user.is_active:
        _close(session, DEACTIVATED_REASON)
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = _live_session(token)
    if session is None:
        return False
    _close(session, reason)
    return True
