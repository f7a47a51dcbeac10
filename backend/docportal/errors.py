# Overview: Error taxonomy shared by services and routes.

"""
Portal error classes.

Each class carries the HTTP status the API answers with. Services raise them,
routes catch PortalError and render it through error_response().

NotFoundError and UnauthorizedError messages must stay generic: they never
say whether a resource exists under another sede.
"""

from __future__ import annotations

from flask import jsonify


class PortalError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 500

    def to_dict(self) -> dict:
        return {"error": str(self)}


class NotFoundError(PortalError):
    """Sede, order or document absent or outside the caller's scope."""
    status_code = 404


class ValidationError(PortalError):
    """400-level input problem (token shape, file type, file size)."""
    status_code = 400


class ConflictError(PortalError):
    """Concurrent create race. Resolved by re-reading, not surfaced by the core."""
    status_code = 409


class UnauthorizedError(PortalError):
    """Admin lacks the capability on a sede, or no valid client grant."""
    status_code = 403


class TransientError(PortalError):
    """Store or blob adapter timeout. Safe to retry with backoff."""
    status_code = 503

    def __init__(self, message: str, *, retry_record_delete: bool = False):
        super().__init__(message)
        self.retry_record_delete = retry_record_delete

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["retryable"] = True
        if self.retry_record_delete:
            payload["retry_record_delete"] = True
        return payload


class DeliveryFailed(PortalError):
    """The notifier could not reach the mailbox. The token itself was issued."""
    status_code = 202


def error_response(exc: PortalError):
    return jsonify(exc.to_dict()), exc.status_code
