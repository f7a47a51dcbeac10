# backend/docportal/__init__.py
from flask import Flask, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Applied before init_app: Flask-SQLAlchemy builds its engines there
    if config_overrides:
        app.config.update(config_overrides)
        if "MAX_CONTENT_LENGTH" not in config_overrides:
            app.config["MAX_CONTENT_LENGTH"] = app.config["MAX_UPLOAD_BYTES"] + app.config["MULTIPART_SLACK_BYTES"]

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Outbound adapters, replaceable per app instance
    from .notifier import EXTENSION_KEY as NOTIFIER_KEY, build_notifier
    from .storage import EXTENSION_KEY as BLOB_STORE_KEY, build_blob_store

    app.extensions[NOTIFIER_KEY] = build_notifier(app.config)
    app.extensions[BLOB_STORE_KEY] = build_blob_store(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.portal import portal_bp  # Client portal: sede token login
    from .routes.admin import admin_bp  # Admin: sedes, tokens, documents, grants

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(exc):
        return jsonify({"error": "Upload exceeds the maximum allowed size"}), 413

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
