# backend/docportal/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/docportal.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///docportal.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Blob store root; relative paths resolve against the instance folder
    BLOB_STORAGE_DIR = os.environ.get("BLOB_STORAGE_DIR", "blobs")
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))
    # Werkzeug answers 413 above this before the body is read; slack covers multipart framing
    MULTIPART_SLACK_BYTES = 64 * 1024
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + MULTIPART_SLACK_BYTES

    # "log" only records the delivery, "smtp" actually sends the mail
    NOTIFIER_BACKEND = os.environ.get("NOTIFIER_BACKEND", "log")
    SMTP_HOST = os.environ.get("SMTP_HOST", "localhost")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD")
    SMTP_TIMEOUT = float(os.environ.get("SMTP_TIMEOUT", "10"))
    MAIL_FROM = os.environ.get("MAIL_FROM", "Portal de Ordenes de Compra <noreply@localhost>")

    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "3"))
