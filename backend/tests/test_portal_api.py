# Overview: Pytest coverage for the client portal flow over HTTP.

"""
Client Portal Tests

Walks the client path end to end: request a code, open a session with it,
list the sede's orders, open an order and download a document.
"""

from io import BytesIO

import pytest

from conftest import auth_headers, get_client_token
from docportal.models import SedeToken
from docportal.services import order_service, sede_service, token_service


def _seed_document(sede, order_number="OC-1001", data=b"%PDF-1.4 copia", filename="orden.pdf"):
    return order_service.upload_document(
        order_number=order_number,
        sede_name=sede.name,
        file_type="purchase_order_copy",
        data=data,
        original_filename=filename,
        mime_type="application/pdf",
    )


class TestSedeSelector:
    def test_lists_active_sedes_only(self, client, db_session, sede_a, sede_b):
        sede_service.set_sede_active(sede_b.id, False)

        resp = client.get("/api/portal/sedes")

        assert resp.status_code == 200
        assert [s["name"] for s in resp.json["sedes"]] == [sede_a.name]


class TestRequestToken:
    def test_code_is_mailed_never_returned(self, client, db_session, sede_a, notifier):
        resp = client.post("/api/portal/request-token", json={"sede": sede_a.name})

        assert resp.status_code == 200
        assert resp.json["delivered"] is True
        assert resp.json["is_new"] is True
        assert "token" not in resp.json
        assert len(notifier.sent) == 1
        assert notifier.sent[0]["email"] == sede_a.email
        assert notifier.sent[0]["token"] not in resp.get_data(as_text=True)

    def test_repeat_request_resends_same_code(self, client, db_session, sede_a, notifier):
        client.post("/api/portal/request-token", json={"sede": sede_a.name})
        resp = client.post("/api/portal/request-token", json={"sede": sede_a.name})

        assert resp.status_code == 200
        assert resp.json["is_new"] is False
        assert notifier.sent[0]["token"] == notifier.sent[1]["token"]

    def test_delivery_failure_is_partial_success(self, client, db_session, sede_a, notifier):
        notifier.fail = True

        resp = client.post("/api/portal/request-token", json={"sede": sede_a.name})

        assert resp.status_code == 202
        assert resp.json["delivered"] is False
        assert token_service.get_active_token(sede_a.id) is not None

    def test_unknown_sede(self, client, db_session, notifier):
        resp = client.post("/api/portal/request-token", json={"sede": "Sede Fantasma"})
        assert resp.status_code == 404
        assert notifier.sent == []

    def test_missing_sede(self, client, db_session):
        resp = client.post("/api/portal/request-token", json={})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [{"sede": 5}, {"sede": ["Sede Norte"]}, ["Sede Norte"], "Sede Norte"])
    def test_non_string_sede_is_bad_request(self, client, db_session, sede_a, notifier, body):
        resp = client.post("/api/portal/request-token", json=body)

        assert resp.status_code == 400
        assert resp.json == {"error": "sede is required"}
        assert notifier.sent == []


class TestOpenSession:
    def test_valid_code_opens_session(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)

        resp = client.post("/api/portal/session", json={"sede": sede_a.name, "token": token.token})

        assert resp.status_code == 200
        assert resp.json["sede"] == {"id": sede_a.id, "name": sede_a.name}
        assert len(resp.json["token"]) == 64

    def test_surrounding_whitespace_is_ignored(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)

        resp = client.post("/api/portal/session", json={"sede": sede_a.name, "token": f"  {token.token}\n"})

        assert resp.status_code == 200

    @pytest.mark.parametrize("submitted", ["12a456", "000000", "1234"])
    def test_bad_code_rejected_generically(self, client, db_session, sede_a, submitted, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", lambda: "123456")
        token_service.issue_or_reuse(sede_a.name, None)

        resp = client.post("/api/portal/session", json={"sede": sede_a.name, "token": submitted})

        assert resp.status_code == 401
        assert resp.json == {"error": "Invalid sede or access code"}

    def test_malformed_code_does_not_touch_usage(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        token_id = token.id

        client.post("/api/portal/session", json={"sede": sede_a.name, "token": "12a456"})

        assert db_session.get(SedeToken, token_id).last_used_at is None

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/portal/session", json={"sede": "Sede Norte"})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [{"sede": 5, "token": "123456"}, {"sede": None, "token": "123456"}, ["Sede Norte", "123456"]])
    def test_malformed_body_is_bad_request(self, client, db_session, sede_a, body):
        resp = client.post("/api/portal/session", json=body)

        assert resp.status_code == 400


class TestClientFlow:
    def test_end_to_end(self, client, db_session, sede_a, notifier):
        doc = _seed_document(sede_a)
        doc_id = doc.id

        client.post("/api/portal/request-token", json={"sede": sede_a.name})
        code = notifier.sent[0]["token"]
        headers = auth_headers(get_client_token(client, sede_a.name, code))

        orders = client.get("/api/portal/orders", headers=headers)
        assert orders.status_code == 200
        assert [o["order_number"] for o in orders.json["items"]] == ["OC-1001"]

        detail = client.get("/api/portal/orders/OC-1001/documents", headers=headers)
        assert detail.status_code == 200
        assert [d["id"] for d in detail.json["documents"]] == [doc_id]
        assert "storage_path" not in detail.json["documents"][0]

        download = client.get(f"/api/portal/documents/{doc_id}/download", headers=headers)
        assert download.status_code == 200
        assert download.data == b"%PDF-1.4 copia"
        assert "orden.pdf" in download.headers["Content-Disposition"]

    def test_unknown_order_is_not_found(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        headers = auth_headers(get_client_token(client, sede_a.name, token.token))

        resp = client.get("/api/portal/orders/OC-404/documents", headers=headers)

        assert resp.status_code == 404

    def test_logout_ends_session(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        headers = auth_headers(get_client_token(client, sede_a.name, token.token))

        assert client.delete("/api/portal/session", headers=headers).status_code == 200
        assert client.get("/api/portal/orders", headers=headers).status_code == 401

    def test_regenerate_ends_existing_sessions(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        headers = auth_headers(get_client_token(client, sede_a.name, token.token))
        assert client.get("/api/portal/orders", headers=headers).status_code == 200

        token_service.regenerate(sede_a.name, None)

        assert client.get("/api/portal/orders", headers=headers).status_code == 401

    def test_deactivated_sede_ends_sessions(self, client, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        headers = auth_headers(get_client_token(client, sede_a.name, token.token))

        sede_service.set_sede_active(sede_a.id, False)

        assert client.get("/api/portal/orders", headers=headers).status_code == 401

    def test_session_required(self, client, db_session):
        assert client.get("/api/portal/orders").status_code == 401
        assert client.get("/api/portal/orders", headers=auth_headers("not-a-session")).status_code == 401


class TestUploadThroughAdminThenRead:
    def test_admin_upload_visible_to_client(self, client, db_session, sede_a, superadmin_headers):
        resp = client.post(
            "/api/admin/documents",
            data={
                "order_number": "OC-2002",
                "sede_id": str(sede_a.id),
                "file_type": "delivery_note",
                "file": (BytesIO(b"albaran"), "albaran.pdf"),
            },
            headers=superadmin_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201

        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        headers = auth_headers(get_client_token(client, sede_a.name, token.token))
        detail = client.get("/api/portal/orders/OC-2002/documents", headers=headers)

        assert detail.status_code == 200
        assert detail.json["documents"][0]["file_type"] == "delivery_note"
