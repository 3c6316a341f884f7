"""Error handlers for the admin API (JSON only)."""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from realmsync.core.exceptions import (
    ConfigurationError,
    FederationNotFoundError,
    IdentityProviderNotFoundError,
    ModelDuplicateError,
    RealmNotFoundError,
    RealmSyncError,
    RoleNotFoundError,
)

logger = logging.getLogger(__name__)

NOT_FOUND_ERRORS = (
    RealmNotFoundError,
    RoleNotFoundError,
    IdentityProviderNotFoundError,
    FederationNotFoundError,
)


def status_for(error: RealmSyncError) -> int:
    """HTTP status for a domain error."""
    if isinstance(error, NOT_FOUND_ERRORS):
        return 404
    if isinstance(error, ModelDuplicateError):
        return 409
    if isinstance(error, ConfigurationError):
        return 400
    return 500


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(RealmSyncError)
    def handle_domain_error(error: RealmSyncError):
        status = status_for(error)
        if status >= 500:
            logger.error("Operation failed: %s", error, exc_info=True)
        return jsonify({"error": type(error).__name__, "message": str(error)}), status

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        if isinstance(error, HTTPException):
            return handle_http_error(error)
        logger.error("Unhandled exception: %s", error, exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
