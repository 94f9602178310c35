# Overview: Request decorators for API routes: actor identity and typed-error mapping.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import (
    ConflictError,
    InsufficientStock,
    InvalidStateTransition,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)


def require_actor(f):
    """
    Resolve the acting user id supplied by the identity layer in front of us.

    Sets g.actor_id from the X-Actor-Id header. Returns 401 when it is missing
    or not a positive integer. Authentication itself happens upstream.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get("X-Actor-Id") or "").strip()
        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": "Actor identity required"}), 401

        g.actor_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function


def map_domain_errors(action: str):
    """
    Translate typed service errors into HTTP responses.

    ValidationError 400, NotFoundError 404, InsufficientStock / InvalidStateTransition /
    ConflictError 409, TransientStoreError 503 (retryable), anything else 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e), "details": e.details}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e), "details": e.details}), 404
            except (InsufficientStock, InvalidStateTransition, ConflictError) as e:
                return jsonify({"error": str(e), "details": e.details}), 409
            except TransientStoreError as e:
                current_app.logger.warning("Transient failure during %s: %s", action, e)
                return jsonify({"error": str(e), "retryable": True}), 503
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function
    return decorator
