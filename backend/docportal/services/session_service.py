# Overview: Admin bearer sessions; hashed tokens with absolute and idle timeouts.

"""
Admin Session Management

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import AdminSession, AdminUser
from docportal.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class AdminContext:
    admin: AdminUser
    session: AdminSession


def generate_token() -> str:
    """64-character hex bearer (32 bytes of entropy). Never stored in plaintext."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient here: bearers are high-entropy, unlike passwords."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    admin_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[AdminSession, str]:
    """
    Open a session for an admin. Returns (session_record, plaintext_token).
    """
    admin = db.session.query(AdminUser).filter_by(id=admin_id).first()
    if not admin or not admin.is_active:
        raise ValueError("Admin not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = AdminSession(
        admin_id=admin_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> AdminContext | None:
    """
    Return the AdminContext for a live session, or None.

    Idle sessions and sessions of deactivated admins are revoked on sight.
    Updates last_used_at on success.
    """
    now = utcnow()

    session = db.session.query(AdminSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    admin = session.admin
    if not admin or not admin.is_active:
        _revoke(session, "Admin account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return AdminContext(admin=admin, session=session)


def _revoke(session: AdminSession, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def revoke_session(token: str, reason: str = "Admin logout") -> bool:
    session = db.session.query(AdminSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
