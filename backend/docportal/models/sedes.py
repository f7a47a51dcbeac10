from __future__ import annotations

from ..extensions import db
from docportal.time_utils import to_utc_z


class Sede(db.Model):
    """
    Physical/organizational location. The client tenant boundary.

    Every purchase order, document and client token belongs to exactly one
    sede. Sedes are never hard-deleted; is_active=False retires them.
    """
    __tablename__ = "sedes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    # Marks a sede that is itself an administering entity
    is_admin_sede = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Sede id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "is_admin_sede": self.is_admin_sede,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SedeToken(db.Model):
    """
    6-digit client access code bound to a sede and a mailbox.

    INVARIANT: at most one active token per sede. The partial unique index
    makes a concurrent second insert fail instead of producing two.
    Rows are never deleted; rotation flips is_active to False.
    """
    __tablename__ = "sede_tokens"
    __table_args__ = (
        db.Index(
            "uq_sede_tokens_one_active",
            "sede_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        db.Index("ix_sede_tokens_token_active", "token", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sede_id = db.Column(db.Integer, db.ForeignKey("sedes.id"), nullable=False, index=True)

    # Leading zeros are significant: stored as text, never as a number
    token = db.Column(db.String(6), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sede = db.relationship("Sede", backref=db.backref("tokens", lazy=True))

    def __repr__(self) -> str:
        return f"<SedeToken id={self.id} sede_id={self.sede_id} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sede_id": self.sede_id,
            "sede": self.sede.name if self.sede else None,
            "token": self.token,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
        }


class AdminSedeAccess(db.Model):
    """
    Per-admin capability grant over one sede.

    can_view and can_edit are independent. One row per (admin, sede);
    a later grant overwrites the flags. No row means no access.
    """
    __tablename__ = "admin_sede_access"
    __table_args__ = (
        db.UniqueConstraint("admin_id", "sede_id", name="uq_admin_sede_access"),
        db.Index("ix_admin_sede_access_admin", "admin_id"),
        db.Index("ix_admin_sede_access_sede", "sede_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=False)
    sede_id = db.Column(db.Integer, db.ForeignKey("sedes.id"), nullable=False)
    can_view = db.Column(db.Boolean, nullable=False, default=False)
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    granted_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    admin = db.relationship("AdminUser", foreign_keys=[admin_id], backref=db.backref("sede_access", lazy=True))
    sede = db.relationship("Sede", backref=db.backref("admin_access", lazy=True))
    granted_by = db.relationship("AdminUser", foreign_keys=[granted_by_admin_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "sede_id": self.sede_id,
            "can_view": self.can_view,
            "can_edit": self.can_edit,
            "granted_by_admin_id": self.granted_by_admin_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
