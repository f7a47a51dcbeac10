# Overview: Sede records; creation, edits, activation and name lookups.

"""
Sede Service

Sedes are never hard-deleted: set_sede_active(False) retires one, which also
stops its access code and client sessions from authorizing anything.
Name lookups used by the client portal only ever see active sedes.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Sede
from .concurrency import lock_for_update, run_with_retry


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def create_sede(
    name: str,
    email: str,
    *,
    phone: str | None = None,
    address: str | None = None,
    is_admin_sede: bool = False,
) -> Sede:
    def _op():
        clean_name = _clean(name)
        clean_email = _clean(email)
        if not clean_name:
            raise ValidationError("Sede name is required")
        if not clean_email or "@" not in clean_email:
            raise ValidationError("A valid contact email is required")

        if db.session.query(Sede).filter_by(name=clean_name).first():
            raise ValidationError("A sede with that name already exists")

        sede = Sede(
            name=clean_name,
            email=clean_email,
            phone=_clean(phone),
            address=_clean(address),
            is_admin_sede=bool(is_admin_sede),
            is_active=True,
        )
        db.session.add(sede)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError("A sede with that name already exists")
        return sede

    return run_with_retry(_op)


def update_sede(
    sede_id: int,
    *,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    is_admin_sede: bool | None = None,
) -> Sede:
    def _op():
        sede = lock_for_update(db.session.query(Sede).filter_by(id=sede_id)).first()
        if not sede:
            raise NotFoundError("Sede not found")

        if name is not None:
            clean_name = _clean(name)
            if not clean_name:
                raise ValidationError("Sede name cannot be empty")
            clash = db.session.query(Sede).filter(Sede.name == clean_name, Sede.id != sede_id).first()
            if clash:
                raise ValidationError("A sede with that name already exists")
            sede.name = clean_name
        if email is not None:
            clean_email = _clean(email)
            if not clean_email or "@" not in clean_email:
                raise ValidationError("A valid contact email is required")
            sede.email = clean_email
        if phone is not None:
            sede.phone = _clean(phone)
        if address is not None:
            sede.address = _clean(address)
        if is_admin_sede is not None:
            sede.is_admin_sede = bool(is_admin_sede)

        db.session.commit()
        return sede

    return run_with_retry(_op)


def set_sede_active(sede_id: int, is_active: bool) -> Sede:
    """Activate or retire a sede. Sedes are never hard-deleted."""
    def _op():
        sede = lock_for_update(db.session.query(Sede).filter_by(id=sede_id)).first()
        if not sede:
            raise NotFoundError("Sede not found")
        sede.is_active = bool(is_active)
        db.session.commit()
        return sede

    return run_with_retry(_op)


def get_sede(sede_id: int) -> Sede | None:
    return db.session.query(Sede).filter_by(id=sede_id).first()


def require_sede(sede_id: int) -> Sede:
    sede = get_sede(sede_id)
    if not sede:
        raise NotFoundError("Sede not found")
    return sede


def get_active_sede_by_name(sede_name: str) -> Sede | None:
    if not sede_name:
        return None
    return db.session.query(Sede).filter_by(name=sede_name, is_active=True).first()


def require_active_sede(sede_name: str) -> Sede:
    sede = get_active_sede_by_name(sede_name)
    if not sede:
        raise NotFoundError("Sede not found")
    return sede


def list_sedes(*, active_only: bool = False) -> list[Sede]:
    query = db.session.query(Sede)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Sede.name.asc()).all()
