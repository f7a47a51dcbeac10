"""
Pytest fixtures for document portal backend tests.

Provides an in-memory app, per-test table wipe, sede/admin fixtures,
a recording notifier and the Flask test client.
"""

import pytest

from docportal import create_app
from docportal.errors import DeliveryFailed
from docportal.extensions import db
from docportal.models import AdminUser, Sede, AdminSedeAccess
from docportal.notifier import EXTENSION_KEY as NOTIFIER_KEY
from docportal.services.auth_service import hash_password


PASSWORD = "Password123!"


class RecordingNotifier:
    """Captures deliveries instead of sending mail. Set fail=True to simulate an outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, email, sede_name, token, is_new):
        if self.fail:
            raise DeliveryFailed("SMTP unreachable")
        self.sent.append({"email": email, "sede": sede_name, "token": token, "is_new": is_new})


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BLOB_STORAGE_DIR': str(tmp_path_factory.mktemp("blobs")),
        'NOTIFIER_BACKEND': 'log',
        'STORE_RETRY_ATTEMPTS': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def notifier(app):
    """Swap the app's notifier for a RecordingNotifier for one test."""
    original = app.extensions[NOTIFIER_KEY]
    recording = RecordingNotifier()
    app.extensions[NOTIFIER_KEY] = recording
    yield recording
    app.extensions[NOTIFIER_KEY] = original


@pytest.fixture(scope='function')
def sede_a(db_session):
    """Create Sede A."""
    sede = Sede(name="Sede Norte", email="norte@example.com", is_active=True)
    db_session.add(sede)
    db_session.commit()
    return sede


@pytest.fixture(scope='function')
def sede_b(db_session):
    """Create Sede B."""
    sede = Sede(name="Sede Sur", email="sur@example.com", is_active=True)
    db_session.add(sede)
    db_session.commit()
    return sede


def make_admin(db_session, email: str, *, is_superadmin: bool = False) -> AdminUser:
    admin = AdminUser(
        email=email,
        full_name=email.split("@")[0].title(),
        password_hash=hash_password(PASSWORD),
        is_active=True,
        is_superadmin=is_superadmin,
    )
    db_session.add(admin)
    db_session.commit()
    return admin


@pytest.fixture(scope='function')
def admin(db_session):
    """Regular admin with no grants."""
    return make_admin(db_session, "admin@example.com")


@pytest.fixture(scope='function')
def other_admin(db_session):
    return make_admin(db_session, "other@example.com")


@pytest.fixture(scope='function')
def superadmin(db_session):
    return make_admin(db_session, "root@example.com", is_superadmin=True)


def grant_access(db_session, admin_id: int, sede_id: int, *, can_view=True, can_edit=False):
    access = AdminSedeAccess(admin_id=admin_id, sede_id=sede_id, can_view=can_view, can_edit=can_edit)
    db_session.add(access)
    db_session.commit()
    return access


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get an admin bearer."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def get_client_token(client, sede_name: str, code: str) -> str:
    """Helper to open a client portal session."""
    response = client.post('/api/portal/session', json={'sede': sede_name, 'token': code})
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.email))


@pytest.fixture(scope='function')
def superadmin_headers(client, superadmin):
    return auth_headers(get_auth_token(client, superadmin.email))
