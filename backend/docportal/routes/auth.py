# Overview: Flask API routes for admin login/logout; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import auth_service, session_service
from ..services.security_service import log_security_event


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate an administrator and create a session token.

    The token must be sent as "Authorization: Bearer <token>" on admin routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        admin = auth_service.authenticate(email, password)

        if not admin:
            log_security_event(
                event_type="LOGIN_FAILED",
                success=False,
                action="ADMIN_LOGIN",
                resource=str(email)[:128],
                reason="Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            admin_id=admin.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        log_security_event(
            event_type="LOGIN_SUCCEEDED",
            success=True,
            admin_id=admin.id,
            action="ADMIN_LOGIN",
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return jsonify({
            "admin": admin.to_dict(),
            "token": token,
            "expires_at": session.expires_at.isoformat() + "Z",
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login admin")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_admin
def logout_route():
    try:
        token = request.headers["Authorization"].split(" ", 1)[1].strip()
        session_service.revoke_session(token, reason="Admin logout")
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout admin")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_admin
def me_route():
    return jsonify({"admin": g.current_admin.to_dict()}), 200
