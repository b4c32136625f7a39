# Overview: Bearer sessions for counter staff; every ledger write and closure is attributed through them.

"""
Sessions

A login hands the client a random token; only its SHA-256 digest is kept.
A session ends when any of these happens:
    SESSION_HOURS have passed since login (one trading day by default)
    SESSION_IDLE_MINUTES pass without a request
    the user logs out or is deactivated
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from watchshop.time_utils import utcnow


DEFAULT_SESSION_HOURS = 14
DEFAULT_IDLE_MINUTES = 120


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def _lifetime() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_HOURS", DEFAULT_SESSION_HOURS))


def _idle_limit() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", DEFAULT_IDLE_MINUTES))


def digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_live(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(token_hash=digest(token), is_revoked=False).first()


def create_session(user_id: int, user_agent: str | None = None, ip_address: str | None = None) -> tuple[SessionToken, str]:
    """Open a session for user_id. Returns (record, plaintext token)."""
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = secrets.token_hex(32)
    now = utcnow()
    record = SessionToken(
        user_id=user_id,
        token_hash=digest(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _lifetime(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def _end(record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user, touching last_used_at.

    None for unknown, expired, idle or revoked tokens and for deactivated
    users; idle and deactivated sessions are ended on the way out.
    """
    record = _find_live(token)
    if record is None:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None
    if now - record.last_used_at > _idle_limit():
        _end(record, "Idle timeout")
        return None

    user = record.user
    if user is None or not user.is_active:
        _end(record, "User account deactivated")
        return None

    record.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=record)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    record = _find_live(token)
    if record is None:
        return False
    _end(record, reason)
    return True
