# docman/errors.py
from flask import jsonify, request


class DocumentManagerError(Exception):
    """Base error carrying an HTTP status and a machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message=None, code=None, status_code=None):
        self.message = message or self.message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}


class UnauthenticatedError(DocumentManagerError):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Unauthorized"


class NotFoundError(DocumentManagerError):
    # Covers both "missing" and "owned by someone else"
    status_code = 404
    code = "NOT_FOUND"
    message = "Document not found or unauthorized"


class MissingCredentialError(DocumentManagerError):
    status_code = 401
    code = "MISSING_REFRESH_TOKEN"
    message = "OneDrive access expired. Please log in again."


class UpstreamError(DocumentManagerError):
    status_code = 502
    code = "UPSTREAM_FAILURE"
    message = "Upstream service call failed"


class ValidationError(DocumentManagerError):
    status_code = 400
    code = "VALIDATION_FAILED"
    message = "Invalid request"


def register_error_handlers(app):
    @app.errorhandler(DocumentManagerError)
    def handle_document_manager_error(err):
        if err.status_code >= 500:
            app.logger.error("❌ %s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def handle_not_found(err):
        if request.path.startswith("/api/"):
            return jsonify(NotFoundError("Not found").to_dict()), 404
        return err
