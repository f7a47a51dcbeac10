from __future__ import annotations

from ..extensions import db
from docportal.time_utils import to_utc_z


FILE_TYPE_PURCHASE_ORDER_COPY = "purchase_order_copy"
FILE_TYPE_DELIVERY_NOTE = "delivery_note"

FILE_TYPES = (FILE_TYPE_PURCHASE_ORDER_COPY, FILE_TYPE_DELIVERY_NOTE)


class PurchaseOrder(db.Model):
    """
    Client-facing order scoped to exactly one sede.

    order_number is unique only within a sede: "OC-100" under two sedes
    is two unrelated orders.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("sede_id", "order_number", name="uq_purchase_orders_sede_number"),
        db.Index("ix_purchase_orders_sede_created", "sede_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, index=True)
    sede_id = db.Column(db.Integer, db.ForeignKey("sedes.id"), nullable=False, index=True)
    created_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sede = db.relationship("Sede", backref=db.backref("purchase_orders", lazy=True))
    created_by = db.relationship("AdminUser")

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} order_number={self.order_number!r} sede_id={self.sede_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "sede_id": self.sede_id,
            "sede": self.sede.name if self.sede else None,
            "created_by_admin_id": self.created_by_admin_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Document(db.Model):
    """
    File record attached to one purchase order.

    storage_path points into the blob store and is generated server-side;
    original_filename is kept for display and download names only.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.Index("ix_documents_order_created", "purchase_order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    filename = db.Column(db.String(128), nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(32), nullable=False)  # purchase_order_copy | delivery_note
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(128), nullable=False)
    storage_path = db.Column(db.String(255), nullable=False, unique=True)

    uploaded_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("documents", lazy=True))
    uploaded_by = db.relationship("AdminUser")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "order_number": self.purchase_order.order_number if self.purchase_order else None,
            "filename": self.filename,
            "original_filename": self.original_filename,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by_admin_id": self.uploaded_by_admin_id,
            "created_at": to_utc_z(self.created_at),
        }
