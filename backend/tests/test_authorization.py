"""
Authorization tests for the document portal.

Verifies:
- Unauthenticated requests return 401
- Admins without a grant are denied sede-scoped operations (403)
- Superadmin-only operations are refused to regular admins
- Client session bearers do not open admin routes and vice versa
"""

import pytest

from conftest import auth_headers, get_client_token
from docportal.models import SecurityEvent
from docportal.services import order_service, token_service


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/admin/sedes"),
            ("POST", "/api/admin/sedes"),
            ("GET", "/api/admin/sedes/1"),
            ("PUT", "/api/admin/sedes/1"),
            ("POST", "/api/admin/sedes/1/deactivate"),
            ("GET", "/api/admin/sedes/1/tokens"),
            ("POST", "/api/admin/sedes/1/tokens"),
            ("POST", "/api/admin/sedes/1/tokens/regenerate"),
            ("POST", "/api/admin/tokens/1/status"),
            ("GET", "/api/admin/sedes/1/orders"),
            ("GET", "/api/admin/orders/1/documents"),
            ("POST", "/api/admin/documents"),
            ("GET", "/api/admin/documents/mine"),
            ("GET", "/api/admin/documents/1/download"),
            ("DELETE", "/api/admin/documents/1"),
            ("GET", "/api/admin/access/1"),
            ("PUT", "/api/admin/access/1/1"),
            ("DELETE", "/api/admin/access/1/1"),
            ("GET", "/api/portal/orders"),
            ("GET", "/api/portal/orders/OC-1/documents"),
            ("GET", "/api/portal/documents/1/download"),
            ("DELETE", "/api/portal/session"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# ADMIN WITHOUT GRANT: 403
# =============================================================================


class TestAdminWithoutGrant:
    """An authenticated admin with no grant on the sede is refused."""

    @pytest.mark.parametrize(
        "method,path_tpl",
        [
            ("GET", "/api/admin/sedes/{sede_id}"),
            ("PUT", "/api/admin/sedes/{sede_id}"),
            ("GET", "/api/admin/sedes/{sede_id}/tokens"),
            ("POST", "/api/admin/sedes/{sede_id}/tokens"),
            ("POST", "/api/admin/sedes/{sede_id}/tokens/regenerate"),
            ("GET", "/api/admin/sedes/{sede_id}/orders"),
        ],
    )
    def test_sede_routes_denied(self, client, db_session, sede_a, admin_headers, method, path_tpl):
        resp = getattr(client, method.lower())(path_tpl.format(sede_id=sede_a.id), json={}, headers=admin_headers)
        assert resp.status_code == 403

    def test_record_routes_denied(self, client, db_session, sede_a, admin_headers):
        doc = order_service.upload_document(
            order_number="OC-1",
            sede_name=sede_a.name,
            file_type="delivery_note",
            data=b"x",
            original_filename="x.pdf",
        )
        doc_id, order_id = doc.id, doc.purchase_order_id

        assert client.get(f"/api/admin/orders/{order_id}/documents", headers=admin_headers).status_code == 403
        assert client.get(f"/api/admin/documents/{doc_id}/download", headers=admin_headers).status_code == 403
        assert client.delete(f"/api/admin/documents/{doc_id}", headers=admin_headers).status_code == 403

    def test_denials_are_audited(self, client, db_session, admin, sede_a, admin_headers):
        client.get(f"/api/admin/sedes/{sede_a.id}/orders", headers=admin_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="SEDE_ACCESS_DENIED").one()
        assert event.admin_id == admin.id
        assert event.resource == f"/api/admin/sedes/{sede_a.id}/orders"


class TestSuperadminOnly:
    @pytest.mark.parametrize(
        "method,path_tpl",
        [
            ("POST", "/api/admin/sedes"),
            ("POST", "/api/admin/sedes/{sede_id}/deactivate"),
            ("GET", "/api/admin/access/{admin_id}"),
            ("PUT", "/api/admin/access/{admin_id}/{sede_id}"),
            ("DELETE", "/api/admin/access/{admin_id}/{sede_id}"),
        ],
    )
    def test_regular_admin_refused(self, client, db_session, admin, sede_a, admin_headers, method, path_tpl):
        path = path_tpl.format(sede_id=sede_a.id, admin_id=admin.id)
        resp = getattr(client, method.lower())(path, json={}, headers=admin_headers)
        assert resp.status_code == 403


class TestCredentialSeparation:
    def test_client_bearer_is_not_an_admin_bearer(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        headers = auth_headers(get_client_token(client, sede_a.name, token.token))

        assert client.get("/api/admin/sedes", headers=headers).status_code == 401

    def test_admin_bearer_is_not_a_client_session(self, client, db_session, admin_headers):
        assert client.get("/api/portal/orders", headers=admin_headers).status_code == 401

    def test_inactive_admin_token_rejected(self, client, db_session, admin, admin_headers):
        admin.is_active = False
        db_session.commit()

        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401
