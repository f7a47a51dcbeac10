# Overview: Admin Access Control; per-sede view/edit grants for administrators.

"""
Admin-to-sede authorization.

check() is the single choke point for admin actions against sede-scoped data.
It reads the grant row on every call so a revoke takes effect on the very
next check. Superadmins pass every check; inactive admins pass none.

This is independent from the client token system, which governs
client-to-sede access.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import AdminSedeAccess, AdminUser, Sede, SedeToken
from .concurrency import lock_for_update, run_with_retry
from .security_service import log_security_event
from docportal.time_utils import to_utc_z


CAN_VIEW = "can_view"
CAN_EDIT = "can_edit"
CAPABILITIES = (CAN_VIEW, CAN_EDIT)


def _get_admin(admin_id: int) -> AdminUser | None:
    return db.session.query(AdminUser).filter_by(id=admin_id).first()


def grant(
    admin_id: int,
    sede_id: int,
    can_view: bool,
    can_edit: bool,
    *,
    granted_by_admin_id: int | None = None,
) -> AdminSedeAccess:
    """
    Upsert the single grant row for (admin, sede).

    A later call overwrites both flags; grants never stack.
    """
    def _op():
        if not _get_admin(admin_id):
            raise NotFoundError("Admin not found")
        if not db.session.query(Sede).filter_by(id=sede_id).first():
            raise NotFoundError("Sede not found")

        access = lock_for_update(
            db.session.query(AdminSedeAccess).filter_by(admin_id=admin_id, sede_id=sede_id)
        ).first()
        if access:
            access.can_view = bool(can_view)
            access.can_edit = bool(can_edit)
            access.granted_by_admin_id = granted_by_admin_id
        else:
            access = AdminSedeAccess(
                admin_id=admin_id,
                sede_id=sede_id,
                can_view=bool(can_view),
                can_edit=bool(can_edit),
                granted_by_admin_id=granted_by_admin_id,
            )
            db.session.add(access)

        try:
            db.session.commit()
        except IntegrityError:
            # Concurrent first grant for the same pair: overwrite the winner
            db.session.rollback()
            access = db.session.query(AdminSedeAccess).filter_by(admin_id=admin_id, sede_id=sede_id).first()
            if access is None:
                raise
            access.can_view = bool(can_view)
            access.can_edit = bool(can_edit)
            access.granted_by_admin_id = granted_by_admin_id
            db.session.commit()
        return access

    return run_with_retry(_op)


def revoke(admin_id: int, sede_id: int) -> bool:
    def _op():
        access = db.session.query(AdminSedeAccess).filter_by(admin_id=admin_id, sede_id=sede_id).first()
        if not access:
            return False

        db.session.delete(access)
        db.session.commit()
        return True

    return run_with_retry(_op)


def check(admin_id: int, sede_id: int | None, capability: str) -> bool:
    if capability not in CAPABILITIES:
        raise ValidationError(f"Unknown capability {capability!r}")
    if sede_id is None:
        return False

    admin = _get_admin(admin_id)
    if not admin or not admin.is_active:
        return False
    if admin.is_superadmin:
        return True

    access = db.session.query(AdminSedeAccess).filter_by(admin_id=admin_id, sede_id=sede_id).first()
    if not access:
        return False
    return bool(getattr(access, capability))


def require_capability(
    admin_id: int,
    sede_id: int | None,
    capability: str,
    *,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise UnauthorizedError unless check() passes. Denials are audited.
    """
    if check(admin_id, sede_id, capability):
        return

    log_security_event(
        event_type="SEDE_ACCESS_DENIED",
        success=False,
        admin_id=admin_id,
        sede_id=sede_id if db.session.query(Sede.id).filter_by(id=sede_id).first() else None,
        resource=resource,
        action=capability.upper(),
        reason=f"Missing {capability} on sede",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise UnauthorizedError("Sede access denied")


def list_access(admin_id: int) -> list[AdminSedeAccess]:
    return (
        db.session.query(AdminSedeAccess)
        .filter_by(admin_id=admin_id)
        .order_by(AdminSedeAccess.sede_id.asc())
        .all()
    )


def list_admin_sedes(admin_id: int) -> list[dict]:
    """
    Overview of the sedes an admin can see: sede fields, the admin's
    capabilities and the sede's active token with its last use.
    """
    admin = _get_admin(admin_id)
    if not admin or not admin.is_active:
        return []

    query = db.session.query(Sede)
    if not admin.is_superadmin:
        query = query.join(AdminSedeAccess, AdminSedeAccess.sede_id == Sede.id).filter(
            AdminSedeAccess.admin_id == admin_id,
            AdminSedeAccess.can_view.is_(True),
        )
    sedes = query.order_by(Sede.name.asc()).all()

    grants = {row.sede_id: row for row in list_access(admin_id)}
    active_tokens = {
        row.sede_id: row
        for row in db.session.query(SedeToken).filter(
            SedeToken.is_active.is_(True),
            SedeToken.sede_id.in_([s.id for s in sedes] or [-1]),
        )
    }

    items = []
    for sede in sedes:
        access = grants.get(sede.id)
        token = active_tokens.get(sede.id)
        items.append({
            "sede": sede.to_dict(),
            "can_view": True if admin.is_superadmin else bool(access and access.can_view),
            "can_edit": True if admin.is_superadmin else bool(access and access.can_edit),
            "token": token.token if token else None,
            "token_last_used_at": to_utc_z(token.last_used_at) if token else None,
        })
    return items
