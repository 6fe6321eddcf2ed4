"""JSON error boundary for the shop API.

Domain errors carry their own HTTP status.  Business-rule rejections (403)
are logged at INFO with the route and path so refused completions, payments
and edits of locked order requests can be traced.  Bad input such as an
unparseable price arrives as ValueError and becomes a 400.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from typing import Any

from flask import jsonify, request

from api.exceptions import AppError, ForbiddenError

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    status_code: int,
    details: Any = None,
) -> tuple:
    """Build a ``{"error": ..., "details": ...}`` body with *status_code*."""
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    return jsonify(body), status_code


def _domain_error(endpoint: str, exc: AppError) -> tuple:
    if isinstance(exc, ForbiddenError):
        logger.info("Rejected %s %s (%s): %s", request.method, request.path, endpoint, exc)
    elif exc.status_code >= 500:
        logger.error("Shop error in %s: %s", endpoint, exc)
    return error_response(str(exc), exc.status_code)


def handle_errors(f):
    """Turn domain, input and storage failures raised by a view into JSON responses."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except AppError as exc:
            return _domain_error(f.__name__, exc)
        except ValueError as exc:
            return error_response(str(exc), 400)
        except sqlite3.IntegrityError as exc:
            logger.warning("Conflicting write in %s: %s", f.__name__, exc)
            return error_response("Conflicting record", 409)
        except sqlite3.OperationalError as exc:
            logger.warning("Database unavailable in %s: %s", f.__name__, exc)
            return error_response("Database unavailable", 503)
        except Exception:
            logger.exception("Unhandled error in %s", f.__name__)
            return error_response("Internal server error", 500)

    return wrapper
