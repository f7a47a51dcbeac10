# Overview: Admin accounts for the local identity provider; bcrypt password handling.

"""
Administrator Accounts

The portal core only needs an authenticated admin id. This module is the
default provider of that id: email/password accounts with bcrypt hashes.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AdminUser
from docportal.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_admin(
    email: str,
    full_name: str,
    password: str,
    *,
    company: str | None = None,
    is_superadmin: bool = False,
) -> AdminUser:
    """
    Create an administrator account.

    Raises PasswordValidationError for weak passwords and ValueError for a
    missing or duplicate email.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValueError("A valid email is required")
    if not (full_name or "").strip():
        raise ValueError("Full name is required")

    if db.session.query(AdminUser).filter_by(email=email).first():
        raise ValueError(f"Admin '{email}' already exists")

    admin = AdminUser(
        email=email,
        full_name=full_name.strip(),
        company=(company or "").strip() or None,
        password_hash=hash_password(password),
        is_active=True,
        is_superadmin=bool(is_superadmin),
    )
    db.session.add(admin)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValueError(f"Admin '{email}' already exists")
    return admin


def authenticate(email: str, password: str) -> AdminUser | None:
    """
    Return the active admin matching the credentials, or None.

    Updates last_login_at on success.
    """
    email = (email or "").strip().lower()
    admin = db.session.query(AdminUser).filter_by(email=email).first()

    if not admin or not admin.is_active:
        return None
    if not verify_password(password or "", admin.password_hash):
        return None

    admin.last_login_at = utcnow()
    db.session.commit()
    return admin
