# Overview: Client bearer sessions carrying a SessionGrant between requests.

"""
Client Sessions

validate_token() yields a SessionGrant once. To use it across HTTP requests the
grant is bound to a random bearer whose SHA-256 hash is stored next to the
SedeToken that produced it.

Each request rebuilds the grant from durable rows: the session authorizes only
while its SedeToken is still active and its sede is still active. Rotating or
deactivating the token therefore ends every session opened with it.
"""

from __future__ import annotations

from ..extensions import db
from ..models import ClientSession, Sede, SedeToken
from .concurrency import run_with_retry
from .session_service import generate_token, hash_token
from .token_service import SessionGrant
from docportal.time_utils import utcnow


def create_client_session(
    grant: SessionGrant,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[ClientSession, str]:
    plaintext_token = generate_token()

    def _op():
        session = ClientSession(
            sede_token_id=grant.sede_token_id,
            token_hash=hash_token(plaintext_token),
            created_at=utcnow(),
            user_agent=user_agent,
            ip_address=ip_address,
            is_revoked=False,
        )
        db.session.add(session)
        db.session.commit()
        return session

    return run_with_retry(_op), plaintext_token


def resolve_client_session(token: str) -> SessionGrant | None:
    def _lookup():
        return (
            db.session.query(ClientSession, SedeToken, Sede)
            .join(SedeToken, ClientSession.sede_token_id == SedeToken.id)
            .join(Sede, SedeToken.sede_id == Sede.id)
            .filter(
                ClientSession.token_hash == hash_token(token),
                ClientSession.is_revoked.is_(False),
                SedeToken.is_active.is_(True),
                Sede.is_active.is_(True),
            )
            .first()
        )

    row = run_with_retry(_lookup)
    if row is None:
        return None

    session, sede_token, sede = row
    grant = SessionGrant(sede_id=sede.id, sede_name=sede.name, sede_token_id=sede_token.id)

    session.last_used_at = utcnow()
    db.session.commit()
    return grant


def revoke_client_session(token: str) -> bool:
    session = db.session.query(ClientSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
