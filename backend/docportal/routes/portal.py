# Overview: Flask API routes for the client portal; sede token login and sede-scoped reads.

"""
Client Portal Routes

Public:
- GET  /api/portal/sedes            active sede names for the selector
- POST /api/portal/request-token    issue/reuse the sede code and mail it
- POST /api/portal/session          exchange (sede, code) for a session bearer

Session (Authorization: Bearer <client session token>):
- every read is scoped to g.sede_grant; other sedes' orders and documents
  answer 404 exactly like missing ones.
"""

from io import BytesIO

from flask import Blueprint, current_app, g, jsonify, request, send_file

from ..decorators import require_client_session
from ..errors import PortalError, error_response
from . import json_object, text_field
from ..services import client_session_service, order_service, sede_service, token_service


portal_bp = Blueprint("portal", __name__, url_prefix="/api/portal")


@portal_bp.get("/sedes")
def list_sedes_route():
    sedes = sede_service.list_sedes(active_only=True)
    return jsonify({"sedes": [{"id": s.id, "name": s.name} for s in sedes]}), 200


@portal_bp.post("/request-token")
def request_token_route():
    """
    Send the sede's access code to its registered mailbox.

    The code is never returned in the response. A delivery failure still
    leaves the code issued: 202 with delivered=false.
    """
    data = json_object()
    sede_name = text_field(data, "sede")
    if not sede_name:
        return jsonify({"error": "sede is required"}), 400

    try:
        delivery = token_service.send_token(sede_name)
    except PortalError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to send sede token")
        return jsonify({"error": "Internal server error"}), 500

    if not delivery.delivered:
        return jsonify({
            "delivered": False,
            "is_new": delivery.is_new,
            "message": "Code issued but could not be delivered; request a resend",
        }), 202

    return jsonify({
        "delivered": True,
        "is_new": delivery.is_new,
        "message": "New code sent" if delivery.is_new else "Code resent",
    }), 200


@portal_bp.post("/session")
def open_session_route():
    data = json_object()
    sede_name = text_field(data, "sede")
    submitted = data.get("token")
    if isinstance(submitted, str):
        submitted = submitted.strip()

    if not sede_name or not submitted:
        return jsonify({"error": "sede and token are required"}), 400

    user_agent = request.headers.get("User-Agent")
    ip_address = request.remote_addr

    try:
        grant = token_service.validate_token(
            sede_name,
            submitted,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if grant is None:
            return jsonify({"error": "Invalid sede or access code"}), 401

        _, bearer = client_session_service.create_client_session(
            grant,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    except PortalError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to open client session")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "token": bearer,
        "sede": {"id": grant.sede_id, "name": grant.sede_name},
    }), 200


@portal_bp.delete("/session")
@require_client_session
def close_session_route():
    client_session_service.revoke_client_session(g.client_token)
    return jsonify({"message": "Session closed"}), 200


@portal_bp.get("/orders")
@require_client_session
def list_orders_route():
    try:
        orders = order_service.list_orders_for_grant(g.sede_grant)
    except PortalError as exc:
        return error_response(exc)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@portal_bp.get("/orders/<path:order_number>/documents")
@require_client_session
def order_documents_route(order_number: str):
    try:
        order, documents = order_service.documents_for_order(g.sede_grant, order_number)
    except PortalError as exc:
        return error_response(exc)
    return jsonify({
        "order": order.to_dict(),
        "documents": [d.to_dict() for d in documents],
    }), 200


@portal_bp.get("/documents/<int:document_id>/download")
@require_client_session
def download_document_route(document_id: int):
    try:
        doc, content = order_service.download_for_grant(g.sede_grant, document_id)
    except PortalError as exc:
        return error_response(exc)
    return send_file(
        BytesIO(content),
        mimetype=doc.mime_type,
        as_attachment=True,
        download_name=doc.original_filename,
    )
