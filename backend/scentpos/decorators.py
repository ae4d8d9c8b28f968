# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, jsonify, request

from .validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError


def error_response(exc: Exception):
    """Map a service-layer error to (json, status)."""
    if isinstance(exc, InsufficientStockError):
        return jsonify({"error": str(exc), "code": "INSUFFICIENT_STOCK", "details": exc.details}), 409
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "details": exc.details}), 409
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    raise exc


def json_errors(f):
    """
    Translate domain errors into JSON responses.

    ValidationError -> 400, NotFoundError -> 404, ConflictError and
    InsufficientStockError -> 409 with details. Anything else is logged with
    its traceback and answered with a generic 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ValidationError, NotFoundError, ConflictError) as exc:
            return error_response(exc)
        except Exception:
            current_app.logger.exception("Unhandled error in %s %s", request.method, request.path)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function


def require_json(f):
    """Reject non-object JSON bodies with 400 before the view runs."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400
        return f(*args, **kwargs)

    return decorated_function
