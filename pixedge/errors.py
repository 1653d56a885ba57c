from __future__ import annotations

from flask import jsonify


class PixEdgeError(Exception):
    """Base error carrying a machine-readable code and an HTTP status."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def to_payload(self) -> dict:
        return {"success": False, "error": {"code": self.code, "message": self.message}}


class Unauthorized(PixEdgeError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, **kwargs)


class Forbidden(PixEdgeError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(PixEdgeError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationFailed(PixEdgeError):
    code = "VALIDATION_FAILED"
    status_code = 400


class Conflict(PixEdgeError):
    code = "CONFLICT"
    status_code = 409


class RateLimitExceeded(PixEdgeError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, result, message: str | None = None):
        super().__init__(
            message
            or f"Too many uploads. Try again in {'a minute' if result.remaining == 0 else 'a moment'}."
        )
        self.result = result


class InvalidCustomId(PixEdgeError):
    code = "INVALID_CUSTOM_ID"
    status_code = 400


class SlugTaken(PixEdgeError):
    code = "ID_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, slug: str, suggestions: list[str]):
        super().__init__(f"The ID '{slug}' is already taken")
        self.slug = slug
        self.suggestions = list(suggestions)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["error"]["suggestions"] = self.suggestions
        return payload


class MissingFile(PixEdgeError):
    code = "MISSING_FILE"
    status_code = 400

    def __init__(self, message: str = "No file provided in request"):
        super().__init__(message)


class FileTooLarge(PixEdgeError):
    code = "FILE_TOO_LARGE"
    status_code = 400


class StorageBackendError(PixEdgeError):
    code = "STORAGE_ERROR"
    status_code = 502


class StoreUnavailable(PixEdgeError):
    code = "STORE_UNAVAILABLE"
    status_code = 503


def error_response(exc: PixEdgeError, headers: dict[str, str] | None = None):
    resp = jsonify(exc.to_payload())
    resp.status_code = exc.status_code
    for key, value in (headers or {}).items():
        resp.headers[key] = value
    resp.headers["Cache-Control"] = "no-store"
    return resp


def register_error_handlers(target) -> None:
    """Render PixEdgeError raised inside views of an app or blueprint."""

    def _handle(exc: PixEdgeError):
        return error_response(exc)

    target.register_error_handler(PixEdgeError, _handle)
