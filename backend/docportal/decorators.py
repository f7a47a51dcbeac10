# Overview: Request authentication and sede-capability decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import TransientError, UnauthorizedError, error_response
from .services import client_session_service, session_service, sede_access_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_admin(f):
    """
    Require an authenticated administrator.

    Sets the following Flask g attributes:
    - g.current_admin: The authenticated AdminUser
    - g.admin_session: The AdminSession record
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_admin = context.admin
        g.admin_session = context.session
        return f(*args, **kwargs)

    return decorated_function


def require_superadmin(f):
    """Require the authenticated admin to be a superadmin. Use after @require_admin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_admin'):
            return jsonify({"error": "Authentication required"}), 401
        if not g.current_admin.is_superadmin:
            return jsonify({"error": "Superadmin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_sede_capability(capability: str, sede_arg: str = "sede_id"):
    """
    Require a capability on the sede named by a URL argument. Use after @require_admin.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, 'current_admin'):
                return jsonify({"error": "Authentication required"}), 401
            try:
                check_sede_capability(kwargs.get(sede_arg), capability)
            except UnauthorizedError as exc:
                return error_response(exc)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def check_sede_capability(sede_id: int | None, capability: str) -> None:
    """In-route variant for routes whose sede comes from the loaded record."""
    sede_access_service.require_capability(
        g.current_admin.id,
        sede_id,
        capability,
        resource=request.path,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def require_client_session(f):
    """
    Require a client session opened with a valid sede token.

    Sets g.sede_grant to the SessionGrant rebuilt from durable records.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        try:
            grant = client_session_service.resolve_client_session(token)
        except TransientError as exc:
            return error_response(exc)
        if not grant:
            return jsonify({"error": "Invalid or expired session"}), 401

        g.sede_grant = grant
        g.client_token = token
        return f(*args, **kwargs)

    return decorated_function
