"""
Domain errors raised by academy services.

Each error carries a stable machine-readable `code`, a human message, optional
`details` and the HTTP status the web adapter should use. Services never build
HTTP responses themselves.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(ServiceError):
    status_code = 400


class NotFound(ServiceError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str | None = None) -> None:
        details = {"id": entity_id} if entity_id else None
        super().__init__(f"{entity} not found", "NOT_FOUND", details)


class Forbidden(ServiceError):
    status_code = 403

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code, details)


class ConstraintViolation(ServiceError):
    status_code = 409

    def __init__(self, message: str, code: str = "CONSTRAINT_VIOLATION", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code, details)


class UniqueViolation(ConstraintViolation):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, "UNIQUE_CONSTRAINT_VIOLATION", details)
