# Overview: Security event logging for the audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from docportal.time_utils import utcnow


def log_security_event(
    event_type: str,
    success: bool,
    admin_id: int | None = None,
    sede_id: int | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a security event.

    event_type examples:
    - CLIENT_TOKEN_REJECTED
    - LOGIN_FAILED
    - LOGIN_SUCCEEDED
    - SEDE_ACCESS_DENIED
    """
    event = SecurityEvent(
        admin_id=admin_id,
        sede_id=sede_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event
