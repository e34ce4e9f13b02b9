"""
Error taxonomy for the sync/audit core.

Services raise these; the FastAPI app translates them into JSON responses
(see ``register_error_handlers``). Nothing here is retried automatically.
"""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class CoreError(Exception):
    status_code = 500
    label = "Internal error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.label,
            "message": self.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class ValidationError(CoreError):
    """Missing or malformed required fields."""

    status_code = 400
    label = "Invalid request"

    def __init__(self, message: str, required: Optional[List[str]] = None):
        super().__init__(message)
        self.required = list(required or [])

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.required:
            body["error"] = "Missing required fields"
            body["required"] = self.required
        return body


class NotFoundError(CoreError):
    status_code = 404
    label = "Not found"


class AuthorizationError(CoreError):
    status_code = 403
    label = "Unauthorized"


class PersistenceError(CoreError):
    """Disk/object-store failure. ``__cause__`` holds the underlying error."""

    status_code = 500
    label = "Persistence failure"

    def __init__(self, operation: str, target: str, cause: Optional[BaseException] = None):
        detail = f"{operation} failed for {target}"
        if cause is not None:
            detail += f": {cause}"
        super().__init__(detail)
        self.operation = operation
        self.target = target
        self.cause = cause


async def _handle_core_error(request: Request, exc: CoreError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CoreError, _handle_core_error)
