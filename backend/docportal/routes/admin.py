# Overview: Flask API routes for administrators; sedes, tokens, documents and access grants.

"""
Admin Routes

All routes require an admin bearer (@require_admin). Sede-scoped routes then
check the admin's grant on the sede:
- can_view: read sede, tokens, orders, documents, download
- can_edit: edit sede, issue/rotate/toggle tokens, upload, delete
Superadmin-only: create/deactivate sedes, manage access grants.

Routes whose sede is only known after loading a record (token, order,
document) run check_sede_capability() in the route body.
"""

from io import BytesIO

from flask import Blueprint, current_app, g, jsonify, request, send_file

from . import json_object
from ..decorators import (
    check_sede_capability,
    require_admin,
    require_sede_capability,
    require_superadmin,
)
from ..errors import DeliveryFailed, NotFoundError, PortalError, ValidationError, error_response
from ..models import AdminUser, SedeToken
from ..extensions import db
from ..notifier import current_notifier
from ..services import order_service, sede_access_service, sede_service, token_service
from ..services.sede_access_service import CAN_EDIT, CAN_VIEW


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field} must be a boolean")


def _token_payload(token: SedeToken, *, is_new: bool | None = None, delivered: bool | None = None) -> dict:
    payload = {"token": token.to_dict()}
    if is_new is not None:
        payload["is_new"] = is_new
    if delivered is not None:
        payload["delivered"] = delivered
    return payload


def _notify(token: SedeToken, is_new: bool) -> bool:
    """Mail the code to the token's address. Returns False when delivery failed."""
    try:
        current_notifier().send(token.email, token.sede.name, token.token, is_new)
    except DeliveryFailed as exc:
        current_app.logger.warning("Token %s not delivered: %s", token.id, exc)
        return False
    return True


# =============================================================================
# SEDES
# =============================================================================


@admin_bp.get("/sedes")
@require_admin
def list_sedes_route():
    """Sedes visible to the caller with capabilities and active token."""
    items = sede_access_service.list_admin_sedes(g.current_admin.id)
    return jsonify({"items": items, "count": len(items)}), 200


@admin_bp.post("/sedes")
@require_admin
@require_superadmin
def create_sede_route():
    data = json_object()
    try:
        sede = sede_service.create_sede(
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            is_admin_sede=bool(data.get("is_admin_sede", False)),
        )
    except PortalError as exc:
        return error_response(exc)
    return jsonify({"sede": sede.to_dict()}), 201


@admin_bp.get("/sedes/<int:sede_id>")
@require_admin
@require_sede_capability(CAN_VIEW)
def get_sede_route(sede_id: int):
    try:
        sede = sede_service.require_sede(sede_id)
    except PortalError as exc:
        return error_response(exc)
    return jsonify({"sede": sede.to_dict()}), 200


@admin_bp.put("/sedes/<int:sede_id>")
@require_admin
@require_sede_capability(CAN_EDIT)
def update_sede_route(sede_id: int):
    data = json_object()
    try:
        sede = sede_service.update_sede(
            sede_id,
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            is_admin_sede=data.get("is_admin_sede"),
        )
    except PortalError as exc:
        return error_response(exc)
    return jsonify({"sede": sede.to_dict()}), 200


@admin_bp.post("/sedes/<int:sede_id>/deactivate")
@require_admin
@require_superadmin
def deactivate_sede_route(sede_id: int):
    try:
        sede = sede_service.set_sede_active(sede_id, False)
    except PortalError as exc:
        return error_response(exc)
    current_app.logger.info("Sede %s deactivated by admin %s", sede_id, g.current_admin.id)
    return jsonify({"sede": sede.to_dict()}), 200


# =============================================================================
# TOKENS
# =============================================================================


@admin_bp.get("/sedes/<int:sede_id>/tokens")
@require_admin
@require_sede_capability(CAN_VIEW)
def list_tokens_route(sede_id: int):
    tokens = token_service.list_tokens(sede_id)
    return jsonify({"items": [t.to_dict() for t in tokens], "count": len(tokens)}), 200


@admin_bp.post("/sedes/<int:sede_id>/tokens")
@require_admin
@require_sede_capability(CAN_EDIT)
def issue_token_route(sede_id: int):
    """
    Return the sede's active code, creating one if none is active.

    Body (all optional):
    - email: address recorded on a newly created token (defaults to the sede's)
    - notify: mail the code after issuing
    """
    data = json_object()
    try:
        sede = sede_service.require_sede(sede_id)
        token, is_new = token_service.issue_or_reuse(sede.name, data.get("email"))
    except PortalError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to issue sede token")
        return jsonify({"error": "Internal server error"}), 500

    if not data.get("notify"):
        return jsonify(_token_payload(token, is_new=is_new)), 201 if is_new else 200

    delivered = _notify(token, is_new)
    if not delivered:
        return jsonify(_token_payload(token, is_new=is_new, delivered=False)), 202
    return jsonify(_token_payload(token, is_new=is_new, delivered=True)), 201 if is_new else 200


@admin_bp.post("/sedes/<int:sede_id>/tokens/regenerate")
@require_admin
@require_sede_capability(CAN_EDIT)
def regenerate_token_route(sede_id: int):
    data = json_object()
    try:
        sede = sede_service.require_sede(sede_id)
        token = token_service.regenerate(sede.name, data.get("email"))
    except PortalError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to regenerate sede token")
        return jsonify({"error": "Internal server error"}), 500

    if not data.get("notify"):
        return jsonify(_token_payload(token, is_new=True)), 201

    delivered = _notify(token, True)
    return jsonify(_token_payload(token, is_new=True, delivered=delivered)), 201 if delivered else 202


@admin_bp.post("/tokens/<int:token_id>/status")
@require_admin
def set_token_status_route(token_id: int):
    data = json_object()
    try:
        is_active = _parse_bool(data.get("is_active"), "is_active")
        token = db.session.query(SedeToken).filter_by(id=token_id).first()
        if not token:
            raise NotFoundError("Token not found")
        check_sede_capability(token.sede_id, CAN_EDIT)
        token = token_service.set_token_active(token_id, is_active)
    except PortalError as exc:
        return error_response(exc)
    return jsonify(_token_payload(token)), 200


# =============================================================================
# ORDERS & DOCUMENTS
# =============================================================================


@admin_bp.get("/sedes/<int:sede_id>/orders")
@require_admin
@require_sede_capability(CAN_VIEW)
def list_orders_route(sede_id: int):
    orders = order_service.list_orders_by_sede_id(sede_id)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@admin_bp.get("/orders/<int:order_id>/documents")
@require_admin
def list_order_documents_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        check_sede_capability(order.sede_id, CAN_VIEW)
        documents = order_service.list_documents(order.id)
    except PortalError as exc:
        return error_response(exc)
    return jsonify({
        "order": order.to_dict(),
        "documents": [d.to_dict() for d in documents],
    }), 200


@admin_bp.post("/documents")
@require_admin
def upload_document_route():
    """
    Upload a document (multipart/form-data).

    Fields: order_number, sede_id, file_type, file
    The purchase order is created on the first upload for (order_number, sede).
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]
    order_number = request.form.get("order_number")
    file_type = request.form.get("file_type")
    try:
        sede_id = int(request.form.get("sede_id", ""))
    except ValueError:
        return jsonify({"error": "sede_id must be an integer"}), 400

    try:
        check_sede_capability(sede_id, CAN_EDIT)
        sede = sede_service.require_sede(sede_id)
        doc = order_service.upload_document(
            order_number=order_number,
            sede_name=sede.name,
            file_type=file_type,
            data=file.read(),
            original_filename=file.filename,
            mime_type=file.mimetype,
            uploaded_by_admin_id=g.current_admin.id,
        )
    except PortalError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to upload document")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"document": doc.to_dict()}), 201


@admin_bp.get("/documents/mine")
@require_admin
def my_documents_route():
    documents = order_service.list_documents_uploaded_by(g.current_admin.id)
    return jsonify({"items": [d.to_dict() for d in documents], "count": len(documents)}), 200


@admin_bp.get("/documents/<int:document_id>/download")
@require_admin
def download_document_route(document_id: int):
    try:
        doc = order_service.get_document(document_id)
        if not doc:
            raise NotFoundError("Document not found")
        check_sede_capability(doc.purchase_order.sede_id, CAN_VIEW)
        doc, content = order_service.download_document(document_id)
    except PortalError as exc:
        return error_response(exc)
    return send_file(
        BytesIO(content),
        mimetype=doc.mime_type,
        as_attachment=True,
        download_name=doc.original_filename,
    )


@admin_bp.delete("/documents/<int:document_id>")
@require_admin
def delete_document_route(document_id: int):
    """
    Delete a document's content and record.

    ?record_only=1 retries only the record delete after a 503 carrying
    retry_record_delete.
    """
    try:
        doc = order_service.get_document(document_id)
        if not doc:
            raise NotFoundError("Document not found")
        check_sede_capability(doc.purchase_order.sede_id, CAN_EDIT)
        if request.args.get("record_only") in ("1", "true"):
            order_service.delete_document_record(document_id)
        else:
            order_service.delete_document(document_id)
    except PortalError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to delete document")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Document deleted"}), 200


# =============================================================================
# ACCESS GRANTS (superadmin)
# =============================================================================


@admin_bp.get("/access/<int:admin_id>")
@require_admin
@require_superadmin
def list_access_route(admin_id: int):
    if not db.session.query(AdminUser.id).filter_by(id=admin_id).first():
        return jsonify({"error": "Admin not found"}), 404
    rows = sede_access_service.list_access(admin_id)
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200


@admin_bp.put("/access/<int:admin_id>/<int:sede_id>")
@require_admin
@require_superadmin
def grant_access_route(admin_id: int, sede_id: int):
    data = json_object()
    try:
        can_view = _parse_bool(data.get("can_view", False), "can_view")
        can_edit = _parse_bool(data.get("can_edit", False), "can_edit")
        access = sede_access_service.grant(
            admin_id,
            sede_id,
            can_view,
            can_edit,
            granted_by_admin_id=g.current_admin.id,
        )
    except PortalError as exc:
        return error_response(exc)
    current_app.logger.info(
        "Admin %s granted view=%s edit=%s on sede %s to admin %s",
        g.current_admin.id, can_view, can_edit, sede_id, admin_id,
    )
    return jsonify({"access": access.to_dict()}), 200


@admin_bp.delete("/access/<int:admin_id>/<int:sede_id>")
@require_admin
@require_superadmin
def revoke_access_route(admin_id: int, sede_id: int):
    try:
        removed = sede_access_service.revoke(admin_id, sede_id)
    except PortalError as exc:
        return error_response(exc)
    if not removed:
        return jsonify({"error": "Access grant not found"}), 404
    return jsonify({"message": "Access revoked"}), 200
