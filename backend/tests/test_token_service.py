# Overview: Pytest coverage for access code issuance, rotation and validation.

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from docportal.errors import NotFoundError, TransientError, ValidationError
from docportal.models import SecurityEvent, SedeToken
from docportal.extensions import db
from docportal.services import token_service
from docportal.services.concurrency import run_with_retry
from docportal.services.token_service import SessionGrant


def _codes(*values):
    """Deterministic replacement for generate_token_code."""
    it = iter(values)
    return lambda: next(it)


class TestIssueOrReuse:
    def test_first_issue_creates_active_six_digit_code(self, db_session, sede_a):
        token, is_new = token_service.issue_or_reuse(sede_a.name, "ops@example.com")

        assert is_new is True
        assert token.is_active is True
        assert token.sede_id == sede_a.id
        assert token.email == "ops@example.com"
        assert len(token.token) == 6 and token.token.isdigit()

    def test_second_issue_returns_same_code(self, db_session, sede_a):
        first, _ = token_service.issue_or_reuse(sede_a.name, "ops@example.com")
        second, is_new = token_service.issue_or_reuse(sede_a.name, "other@example.com")

        assert is_new is False
        assert second.id == first.id
        assert second.token == first.token
        assert second.email == "ops@example.com"
        assert db_session.query(SedeToken).filter_by(sede_id=sede_a.id).count() == 1

    def test_blank_email_falls_back_to_sede_email(self, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, "  ")
        assert token.email == sede_a.email

    def test_unknown_sede_raises_not_found(self, db_session, sede_a):
        with pytest.raises(NotFoundError):
            token_service.issue_or_reuse("Sede Fantasma", "x@example.com")

    def test_inactive_sede_raises_not_found(self, db_session, sede_a):
        sede_a.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            token_service.issue_or_reuse(sede_a.name, None)

    def test_leading_zeros_are_kept(self, db_session, sede_a, monkeypatch):
        monkeypatch.setattr(token_service.secrets, "randbelow", lambda n: 42)

        token, _ = token_service.issue_or_reuse(sede_a.name, None)

        assert token.token == "000042"

    def test_code_held_by_another_sede_is_redrawn(self, db_session, sede_a, sede_b, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", _codes("111111", "111111", "222222"))

        token_a, _ = token_service.issue_or_reuse(sede_a.name, None)
        token_b, _ = token_service.issue_or_reuse(sede_b.name, None)

        assert token_a.token == "111111"
        assert token_b.token == "222222"

    def test_exhausted_draws_raise_transient(self, db_session, sede_a, sede_b, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", lambda: "333333")
        token_service.issue_or_reuse(sede_a.name, None)

        with pytest.raises(TransientError):
            token_service.issue_or_reuse(sede_b.name, None)

        assert token_service.get_active_token(sede_b.id) is None

    def test_concurrent_issue_resolves_to_winner(self, db_session, sede_a, monkeypatch):
        winner, _ = token_service.issue_or_reuse(sede_a.name, None)
        real_lookup = token_service.get_active_token
        calls = []

        def stale_then_real(sede_id):
            calls.append(sede_id)
            # First read misses the row another writer just committed
            return None if len(calls) == 1 else real_lookup(sede_id)

        monkeypatch.setattr(token_service, "get_active_token", stale_then_real)
        token, is_new = token_service.issue_or_reuse(sede_a.name, None)

        assert is_new is False
        assert token.id == winner.id
        assert token.token == winner.token
        assert len(calls) == 2
        assert db_session.query(SedeToken).filter_by(sede_id=sede_a.id, is_active=True).count() == 1

    def test_store_lock_exhausts_into_transient(self, db_session):
        calls = []

        def locked():
            calls.append(1)
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        with pytest.raises(TransientError):
            run_with_retry(locked, attempts=3, backoff_base=0)
        assert len(calls) == 3


class TestRegenerate:
    def test_regenerate_rotates_code_and_keeps_history(self, db_session, sede_a, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", _codes("123456", "654321"))
        old, _ = token_service.issue_or_reuse(sede_a.name, None)
        old_id = old.id

        new = token_service.regenerate(sede_a.name, None)

        assert new.token == "654321"
        assert new.is_active is True
        rows = token_service.list_tokens(sede_a.id)
        assert len(rows) == 2
        assert [r.id for r in rows if r.is_active] == [new.id]
        assert db_session.get(SedeToken, old_id).is_active is False

    def test_retired_code_is_never_redrawn(self, db_session, sede_a, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", _codes("123456", "123456", "777777"))
        token_service.issue_or_reuse(sede_a.name, None)

        new = token_service.regenerate(sede_a.name, None)

        assert new.token == "777777"

    def test_old_code_stops_validating(self, db_session, sede_a, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", _codes("123456", "654321"))
        token_service.issue_or_reuse(sede_a.name, None)
        token_service.regenerate(sede_a.name, None)

        assert token_service.validate_token(sede_a.name, "123456") is None
        assert token_service.validate_token(sede_a.name, "654321") is not None

    def test_regenerate_without_active_token_issues_one(self, db_session, sede_a):
        token = token_service.regenerate(sede_a.name, None)
        assert token.is_active is True

    def test_regenerate_unknown_sede_raises(self, db_session):
        with pytest.raises(NotFoundError):
            token_service.regenerate("Nope", None)


class TestSetTokenActive:
    def test_deactivate_then_reactivate(self, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)

        token_service.set_token_active(token.id, False)
        assert token_service.get_active_token(sede_a.id) is None

        token_service.set_token_active(token.id, True)
        assert token_service.get_active_token(sede_a.id).id == token.id

    def test_reactivate_refused_while_another_is_active(self, db_session, sede_a):
        old, _ = token_service.issue_or_reuse(sede_a.name, None)
        old_id = old.id
        token_service.regenerate(sede_a.name, None)

        with pytest.raises(ValidationError):
            token_service.set_token_active(old_id, True)

    def test_unknown_token_raises_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            token_service.set_token_active(99999, False)


class TestValidateToken:
    def test_valid_code_returns_grant_and_stamps_usage(self, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        assert token.last_used_at is None

        grant = token_service.validate_token(sede_a.name, token.token)

        assert grant == SessionGrant(sede_id=sede_a.id, sede_name=sede_a.name, sede_token_id=token.id)
        assert db_session.get(SedeToken, token.id).last_used_at is not None

    def test_usage_stamp_failure_still_grants(self, db_session, sede_a, monkeypatch):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        code, token_id = token.token, token.id

        def broken_commit():
            raise SQLAlchemyError("store went away")

        monkeypatch.setattr(db.session(), "commit", broken_commit)
        grant = token_service.validate_token(sede_a.name, code)
        monkeypatch.undo()

        assert grant == SessionGrant(sede_id=sede_a.id, sede_name=sede_a.name, sede_token_id=token_id)
        assert db_session.get(SedeToken, token_id).last_used_at is None

    def test_code_of_other_sede_is_rejected(self, db_session, sede_a, sede_b):
        token_a, _ = token_service.issue_or_reuse(sede_a.name, None)
        token_service.issue_or_reuse(sede_b.name, None)

        assert token_service.validate_token(sede_b.name, token_a.token) is None

    @pytest.mark.parametrize("submitted", ["12a456", "12345", "1234567", " 123456", "", None, 123456, "١٢٣٤٥٦"])
    def test_malformed_codes_rejected_without_side_effects(self, db_session, sede_a, submitted):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)

        assert token_service.validate_token(sede_a.name, submitted) is None

        assert db_session.get(SedeToken, token.id).last_used_at is None
        assert db_session.query(SecurityEvent).count() == 0

    def test_wrong_code_records_rejection_event(self, db_session, sede_a, monkeypatch):
        monkeypatch.setattr(token_service, "generate_token_code", lambda: "111111")
        token_service.issue_or_reuse(sede_a.name, None)

        assert token_service.validate_token(sede_a.name, "999999", ip_address="10.0.0.1") is None

        event = db_session.query(SecurityEvent).filter_by(event_type="CLIENT_TOKEN_REJECTED").one()
        assert event.success is False
        assert event.ip_address == "10.0.0.1"

    def test_inactive_sede_rejects_its_code(self, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        code = token.token
        sede_a.is_active = False
        db_session.commit()

        assert token_service.validate_token(sede_a.name, code) is None

    def test_unknown_sede_rejected(self, db_session, sede_a):
        token, _ = token_service.issue_or_reuse(sede_a.name, None)
        assert token_service.validate_token("Sede Fantasma", token.token) is None


class TestSendToken:
    def test_send_mails_sede_address(self, db_session, sede_a, notifier):
        delivery = token_service.send_token(sede_a.name)

        assert delivery.delivered is True
        assert delivery.is_new is True
        assert notifier.sent == [{
            "email": sede_a.email,
            "sede": sede_a.name,
            "token": delivery.token.token,
            "is_new": True,
        }]

    def test_resend_reuses_code(self, db_session, sede_a, notifier):
        first = token_service.send_token(sede_a.name)
        second = token_service.send_token(sede_a.name)

        assert second.is_new is False
        assert second.token.token == first.token.token
        assert len(notifier.sent) == 2

    def test_delivery_failure_keeps_issued_code(self, db_session, sede_a, notifier):
        notifier.fail = True

        delivery = token_service.send_token(sede_a.name)

        assert delivery.delivered is False
        active = token_service.get_active_token(sede_a.id)
        assert active is not None
        assert active.token == delivery.token.token
