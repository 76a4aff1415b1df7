"""Service-layer errors and their JSON rendering.

Services raise these; blueprints let them propagate and the handlers registered in
``register_error_handlers`` turn them into ``{"error": ...}`` responses.
"""
from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update(self.extra)
        return body


class ValidationFailed(ServiceError):
    status_code = 400

    def __init__(self, errors: list[str] | str, **extra: Any):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(errors[0] if len(errors) == 1 else "Validation error", details=errors, **extra)
        self.errors = errors


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class RateLimited(ServiceError):
    status_code = 429

    def __init__(self, message: str = "Too many requests", *, retry_after: int = 0, **extra: Any):
        super().__init__(message, retry_after=retry_after, **extra)
        self.retry_after = retry_after


class PaymentsDisabled(ServiceError):
    status_code = 404

    def __init__(self, message: str = "Payments disabled"):
        super().__init__(message)


class ProviderError(ServiceError):
    status_code = 502


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):  # type: ignore[no-redef]
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_role=%s request_id=%s",
                e.message,
                getattr(g, "missing_role", None),
                getattr(g, "request_id", None),
            )
        resp = jsonify(e.to_dict())
        resp.status_code = e.status_code
        if isinstance(e, RateLimited) and e.retry_after:
            resp.headers["Retry-After"] = str(e.retry_after)
        return resp

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 413:
            message = "File too large"
        else:
            message = e.description or e.name
        resp = jsonify({"error": message})
        resp.status_code = e.code or 500
        return resp

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500
