# Overview: Order/Document Resolver; sede-scoped order lookup, uploads, downloads and deletion.

"""
Purchase Order and Document Service

SCOPING: every order lookup takes a sede. The same order_number may exist
under several sedes as unrelated orders, and asking for a real order_number
under the wrong sede is indistinguishable from asking for one that does not
exist.

list_documents() does not re-check sede ownership. Portal callers go through
the grant-scoped helpers (documents_for_order, download_for_grant) which
resolve the order inside the grant's sede first.

DELETION: blob first, record second. The two cannot share a transaction:
- blob already missing      -> the record is still removed
- blob delete fails         -> the record is still removed, the blob leaks
- record delete fails after -> TransientError(retry_record_delete=True)
"""

from __future__ import annotations

import os
import re
import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import NotFoundError, PortalError, TransientError, ValidationError
from ..extensions import db
from ..models import Document, PurchaseOrder, Sede, FILE_TYPES
from ..storage import BlobNotFound, current_blob_store
from .concurrency import run_with_retry
from .sede_service import require_active_sede
from .token_service import SessionGrant
from docportal.time_utils import utcnow


MAX_ORDER_NUMBER_LENGTH = 64
_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,7}$")


def normalize_order_number(order_number: str | None) -> str:
    value = (order_number or "").strip()
    if not value:
        raise ValidationError("Order number is required")
    if len(value) > MAX_ORDER_NUMBER_LENGTH:
        raise ValidationError(f"Order number must be at most {MAX_ORDER_NUMBER_LENGTH} characters")
    return value


def build_storage_path(sede_id: int, original_filename: str | None) -> str:
    """
    Random blob key keeping only a sanitized extension of the client filename.
    """
    ext = os.path.splitext(original_filename or "")[1].lower()
    if not _EXTENSION_RE.match(ext):
        ext = ".bin"
    return f"{sede_id}/{uuid.uuid4().hex}{ext}"


# =============================================================================
# Order lookup
# =============================================================================


def _find_order_in_sede(order_number: str, sede_id: int) -> PurchaseOrder | None:
    return (
        db.session.query(PurchaseOrder)
        .filter_by(order_number=order_number, sede_id=sede_id)
        .first()
    )


def find_order(order_number: str, sede_name: str) -> PurchaseOrder:
    """Exact match on (order_number, sede). Raises NotFoundError otherwise."""
    def _op():
        return (
            db.session.query(PurchaseOrder)
            .join(Sede, PurchaseOrder.sede_id == Sede.id)
            .filter(PurchaseOrder.order_number == order_number, Sede.name == sede_name)
            .first()
        )

    order = run_with_retry(_op)
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_orders(sede_name: str) -> list[PurchaseOrder]:
    """Orders of a sede, most recent first. Unknown sede yields an empty list."""
    def _op():
        return (
            db.session.query(PurchaseOrder)
            .join(Sede, PurchaseOrder.sede_id == Sede.id)
            .filter(Sede.name == sede_name)
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
            .all()
        )

    return run_with_retry(_op)


def list_orders_by_sede_id(sede_id: int) -> list[PurchaseOrder]:
    def _op():
        return (
            db.session.query(PurchaseOrder)
            .filter_by(sede_id=sede_id)
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
            .all()
        )

    return run_with_retry(_op)


def get_order(order_id: int) -> PurchaseOrder | None:
    return db.session.query(PurchaseOrder).filter_by(id=order_id).first()


def list_documents(purchase_order_id: int) -> list[Document]:
    def _op():
        return (
            db.session.query(Document)
            .filter_by(purchase_order_id=purchase_order_id)
            .order_by(Document.created_at.desc(), Document.id.desc())
            .all()
        )

    return run_with_retry(_op)


def get_document(document_id: int) -> Document | None:
    return db.session.query(Document).filter_by(id=document_id).first()


def list_documents_uploaded_by(admin_id: int) -> list[Document]:
    return (
        db.session.query(Document)
        .filter_by(uploaded_by_admin_id=admin_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .all()
    )


# =============================================================================
# Grant-scoped reads (client portal)
# =============================================================================


def list_orders_for_grant(grant: SessionGrant) -> list[PurchaseOrder]:
    return list_orders_by_sede_id(grant.sede_id)


def documents_for_order(grant: SessionGrant, order_number: str) -> tuple[PurchaseOrder, list[Document]]:
    order = run_with_retry(lambda: _find_order_in_sede(order_number, grant.sede_id))
    if not order:
        raise NotFoundError("Order not found")
    return order, list_documents(order.id)


def download_for_grant(grant: SessionGrant, document_id: int, blob_store=None) -> tuple[Document, bytes]:
    doc = (
        db.session.query(Document)
        .join(PurchaseOrder, Document.purchase_order_id == PurchaseOrder.id)
        .filter(Document.id == document_id, PurchaseOrder.sede_id == grant.sede_id)
        .first()
    )
    if not doc:
        raise NotFoundError("Document not found")
    blob_store = blob_store or current_blob_store()
    return doc, blob_store.get(doc.storage_path)


def download_document(document_id: int, blob_store=None) -> tuple[Document, bytes]:
    doc = get_document(document_id)
    if not doc:
        raise NotFoundError("Document not found")
    blob_store = blob_store or current_blob_store()
    return doc, blob_store.get(doc.storage_path)


# =============================================================================
# Upload
# =============================================================================


def resolve_or_create_order(order_number: str, sede: Sede, created_by_admin_id: int | None = None) -> PurchaseOrder:
    """
    Look up the (order_number, sede) order, creating it on a miss.

    A concurrent create for the same pair surfaces as a unique violation;
    that is treated as "already exists" and re-read. The new row is flushed,
    not committed: it lands together with the first document.
    """
    sede_id = sede.id
    order = _find_order_in_sede(order_number, sede_id)
    if order:
        order.updated_at = utcnow()
        return order

    now = utcnow()
    order = PurchaseOrder(
        order_number=order_number,
        sede_id=sede_id,
        created_by_admin_id=created_by_admin_id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(order)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        order = _find_order_in_sede(order_number, sede_id)
        if order is None:
            raise TransientError("Concurrent order creation did not settle, retry later")
        current_app.logger.info("Order %r for sede %s created concurrently; reusing id %s", order_number, sede_id, order.id)
    return order


def upload_document(
    *,
    order_number: str,
    sede_name: str,
    file_type: str,
    data: bytes,
    original_filename: str,
    mime_type: str | None = None,
    size: int | None = None,
    uploaded_by_admin_id: int | None = None,
    blob_store=None,
) -> Document:
    """
    Attach a file to the (order_number, sede) purchase order.

    Raises ValidationError for a file_type outside the closed set, empty
    content, or content above MAX_UPLOAD_BYTES; NotFoundError for an unknown
    or inactive sede.
    """
    if file_type not in FILE_TYPES:
        raise ValidationError(f"Invalid file_type. Must be one of: {', '.join(FILE_TYPES)}")

    order_number = normalize_order_number(order_number)

    actual_size = len(data or b"")
    if actual_size == 0:
        raise ValidationError("File is empty")
    if size is not None and size != actual_size:
        raise ValidationError("Declared size does not match file content")
    max_bytes = current_app.config.get("MAX_UPLOAD_BYTES")
    if max_bytes and actual_size > max_bytes:
        raise ValidationError(f"File exceeds the maximum size of {max_bytes} bytes")

    original_filename = os.path.basename((original_filename or "").replace("\\", "/")).strip() or "document"
    blob_store = blob_store or current_blob_store()

    def _resolve():
        sede = require_active_sede(sede_name)
        order = resolve_or_create_order(order_number, sede, uploaded_by_admin_id)
        return sede.id, order

    sede_id, order = run_with_retry(_resolve)

    storage_path = build_storage_path(sede_id, original_filename)
    try:
        blob_store.put(storage_path, data)
    except PortalError:
        db.session.rollback()
        raise

    doc = Document(
        purchase_order_id=order.id,
        filename=storage_path.rsplit("/", 1)[-1],
        original_filename=original_filename[:255],
        file_type=file_type,
        file_size=actual_size,
        mime_type=(mime_type or "application/octet-stream")[:128],
        storage_path=storage_path,
        uploaded_by_admin_id=uploaded_by_admin_id,
        created_at=utcnow(),
    )
    db.session.add(doc)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        _discard_blob(blob_store, storage_path)
        current_app.logger.warning("Document record for %s could not be saved: %s", storage_path, exc)
        raise TransientError("Document could not be saved, retry later") from exc

    return doc


def _discard_blob(blob_store, storage_path: str) -> None:
    try:
        blob_store.delete(storage_path)
    except PortalError:
        current_app.logger.warning("Leaked blob %s after failed upload", storage_path)


# =============================================================================
# Delete
# =============================================================================


def delete_document(document_id: int, blob_store=None) -> None:
    """
    Delete a document's blob, then its record.

    Safe to call again after a TransientError: a blob that is already gone
    is skipped and only the record delete is retried.
    """
    doc = get_document(document_id)
    if not doc:
        raise NotFoundError("Document not found")

    blob_store = blob_store or current_blob_store()
    storage_path = doc.storage_path

    try:
        blob_store.delete(storage_path)
    except BlobNotFound:
        current_app.logger.info("Blob %s already absent; removing record of document %s", storage_path, document_id)
    except TransientError:
        current_app.logger.warning("Blob %s could not be deleted and is left for cleanup", storage_path)

    _delete_record(doc)


def delete_document_record(document_id: int) -> None:
    """Retry path: remove only the record of a document whose blob is gone."""
    doc = get_document(document_id)
    if not doc:
        raise NotFoundError("Document not found")
    _delete_record(doc)


def _delete_record(doc: Document) -> None:
    document_id = doc.id
    try:
        db.session.delete(doc)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Record of document %s not deleted after its blob was removed", document_id)
        raise TransientError(
            "Document content was removed but its record was not; retry the record delete",
            retry_record_delete=True,
        ) from exc
