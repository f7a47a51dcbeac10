# Overview: Token Issuer and Token Validator for sede access codes.

"""
Sede Access Token Service

Issuer side: every sede holds at most one active 6-digit code. Issuing is
idempotent (an active code is returned unchanged) and rotation keeps the old
rows as inactive history.

Validator side: a (sede name, code) pair is checked against the active code of
an active sede. Success yields a SessionGrant; every failure looks the same to
the caller so probing cannot tell which sedes are provisioned.

CONCURRENCY: the partial unique index on sede_tokens(sede_id) WHERE is_active
lets only one concurrent issuance win. The loser rolls back, re-reads and
returns the winner's code.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import DeliveryFailed, NotFoundError, TransientError, ValidationError
from ..extensions import db
from ..models import Sede, SedeToken
from ..notifier import current_notifier
from .concurrency import lock_for_update, run_with_retry
from .security_service import log_security_event
from .sede_service import require_active_sede
from docportal.time_utils import utcnow


TOKEN_LENGTH = 6
TOKEN_SPACE = 10 ** TOKEN_LENGTH
MAX_CODE_ATTEMPTS = 50

# ASCII digits only: \d would also accept other Unicode digits
_TOKEN_RE = re.compile(r"[0-9]{6}")


@dataclass(frozen=True)
class SessionGrant:
    """
    Result of a successful token validation.

    Passed explicitly to every sede-scoped read; the grant authorizes the
    orders and documents of sede_id and nothing else.
    """
    sede_id: int
    sede_name: str
    sede_token_id: int


@dataclass(frozen=True)
class TokenDelivery:
    token: SedeToken
    is_new: bool
    delivered: bool


def generate_token_code() -> str:
    """Uniform draw from 000000-999999. Leading zeros are part of the code."""
    return f"{secrets.randbelow(TOKEN_SPACE):0{TOKEN_LENGTH}d}"


def is_well_formed_token(value) -> bool:
    return isinstance(value, str) and _TOKEN_RE.fullmatch(value) is not None


def get_active_token(sede_id: int) -> SedeToken | None:
    return db.session.query(SedeToken).filter_by(sede_id=sede_id, is_active=True).first()


def list_tokens(sede_id: int) -> list[SedeToken]:
    return (
        db.session.query(SedeToken)
        .filter_by(sede_id=sede_id)
        .order_by(SedeToken.created_at.desc(), SedeToken.id.desc())
        .all()
    )


def _draw_unused_code(exclude: set[str] | None = None) -> str:
    """Draw codes until one is not held by any active token."""
    exclude = exclude or set()
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_token_code()
        if code in exclude:
            continue
        taken = db.session.query(SedeToken.id).filter_by(token=code, is_active=True).first()
        if not taken:
            return code
    raise TransientError("Could not allocate a free access code, retry later")


def _issue_for_sede(sede: Sede, email: str | None, *, exclude: set[str] | None = None) -> tuple[SedeToken, bool]:
    sede_id = sede.id

    existing = get_active_token(sede_id)
    if existing:
        return existing, False

    token = SedeToken(
        sede_id=sede_id,
        token=_draw_unused_code(exclude),
        email=(email or "").strip() or sede.email,
        is_active=True,
        created_at=utcnow(),
    )
    db.session.add(token)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent issuance for the same sede
        db.session.rollback()
        winner = get_active_token(sede_id)
        if winner is None:
            raise TransientError("Concurrent token issuance did not settle, retry later")
        current_app.logger.info("Concurrent token issuance for sede %s resolved to token id %s", sede_id, winner.id)
        return winner, False

    return token, True


def issue_or_reuse(sede_name: str, email: str | None) -> tuple[SedeToken, bool]:
    """
    Return the sede's active token, creating one if none is active.

    Returns (token, is_new). Repeated calls never rotate the credential.
    Raises NotFoundError if sede_name is not an active sede.
    """
    def _op():
        sede = require_active_sede(sede_name)
        return _issue_for_sede(sede, email)

    return run_with_retry(_op)


def regenerate(sede_name: str, email: str | None) -> SedeToken:
    """
    Rotate the sede's credential.

    Deactivates every active token of the sede and mints a new code in the
    same transaction. The previous code is never re-drawn for this sede.
    """
    def _op():
        sede = require_active_sede(sede_name)

        previous = (
            lock_for_update(db.session.query(SedeToken).filter_by(sede_id=sede.id, is_active=True))
            .all()
        )
        retired_codes = {row.token for row in previous}
        for row in previous:
            row.is_active = False
        db.session.flush()

        token, _ = _issue_for_sede(sede, email, exclude=retired_codes)
        return token

    token = run_with_retry(_op)
    current_app.logger.info("Access token rotated for sede %s", token.sede_id)
    return token


def set_token_active(token_id: int, is_active: bool) -> SedeToken:
    """
    Toggle a single token.

    Deactivation always succeeds. Reactivation is refused while the sede has
    another active token, or while another sede holds the same code.
    """
    def _op():
        token = lock_for_update(db.session.query(SedeToken).filter_by(id=token_id)).first()
        if not token:
            raise NotFoundError("Token not found")

        if is_active and not token.is_active:
            other = get_active_token(token.sede_id)
            if other and other.id != token.id:
                raise ValidationError("Sede already has an active token; deactivate it first")
            clash = (
                db.session.query(SedeToken.id)
                .filter(SedeToken.token == token.token, SedeToken.is_active.is_(True), SedeToken.id != token.id)
                .first()
            )
            if clash:
                raise ValidationError("Code is in use by another sede; regenerate instead")

        token.is_active = bool(is_active)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError("Sede already has an active token; deactivate it first")
        return token

    return run_with_retry(_op)


def send_token(sede_name: str, notifier=None) -> TokenDelivery:
    """
    Issue (or reuse) the sede's code and mail it to the sede's address of record.

    A delivery failure never rolls back issuance: the code persists and the
    result reports delivered=False so the caller can offer a resend.
    """
    sede = require_active_sede(sede_name)
    token, is_new = issue_or_reuse(sede.name, sede.email)

    notifier = notifier or current_notifier()
    try:
        notifier.send(sede.email, sede.name, token.token, is_new)
    except DeliveryFailed as exc:
        current_app.logger.warning("Token for sede %s issued but not delivered: %s", sede.id, exc)
        return TokenDelivery(token=token, is_new=is_new, delivered=False)

    return TokenDelivery(token=token, is_new=is_new, delivered=True)


def validate_token(
    sede_name: str,
    submitted_token,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SessionGrant | None:
    """
    Check a (sede, code) pair. Returns a SessionGrant, or None when rejected.

    Malformed codes are rejected before touching the store. A matching code
    gets last_used_at stamped best-effort: failing to record usage does not
    withhold the grant.
    """
    if not is_well_formed_token(submitted_token):
        return None

    def _lookup():
        return (
            db.session.query(SedeToken)
            .join(Sede, SedeToken.sede_id == Sede.id)
            .filter(
                Sede.name == sede_name,
                Sede.is_active.is_(True),
                SedeToken.is_active.is_(True),
                SedeToken.token == submitted_token,
            )
            .first()
        )

    row = run_with_retry(_lookup)

    if row is None:
        _record_rejection(sede_name, ip_address, user_agent)
        return None

    grant = SessionGrant(sede_id=row.sede_id, sede_name=row.sede.name, sede_token_id=row.id)

    try:
        row.last_used_at = utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not record usage of token %s", grant.sede_token_id, exc_info=True)

    return grant


def _record_rejection(sede_name, ip_address, user_agent) -> None:
    try:
        log_security_event(
            event_type="CLIENT_TOKEN_REJECTED",
            success=False,
            resource=str(sede_name)[:128] if sede_name else None,
            action="VALIDATE_TOKEN",
            reason="No active token matches",
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not record token rejection", exc_info=True)
