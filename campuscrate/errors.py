# Domain error taxonomy raised by services and translated to HTTP responses in main.py.
# Services never raise HTTPException; routes and the app-level handler own the HTTP mapping.
from __future__ import annotations

from typing import Any, Dict, Optional


class CampusCrateError(Exception):
    """Base class for expected, typed failures.

    Each subclass pins an HTTP status and a stable machine-readable code. ``extra`` carries
    additional fields merged into the response body (e.g. ban expiry).
    """

    status_code = 500
    code = "error"

    def __init__(self, detail: str, *, code: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        body.update(self.extra)
        return body


class ValidationError(CampusCrateError):
    status_code = 400
    code = "validation_error"


class Unauthenticated(CampusCrateError):
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(CampusCrateError):
    status_code = 403
    code = "forbidden"


class NotFoundError(CampusCrateError):
    status_code = 404
    code = "not_found"


class ConflictError(CampusCrateError):
    status_code = 409
    code = "conflict"


class InvalidStateError(CampusCrateError):
    status_code = 409
    code = "invalid_state"


class InvariantViolation(CampusCrateError):
    status_code = 409
    code = "invariant_violation"


class BlobStoreError(CampusCrateError):
    status_code = 502
    code = "blob_store_error"
