from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds callers can branch on."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    GATEWAY_TRANSIENT = "gateway_transient"
    GATEWAY_SEMANTIC = "gateway_semantic"
    CONFLICT = "conflict"


class EnrollmentError(Exception):
    """Base error carrying a machine-readable kind and optional code."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def to_response(self) -> dict[str, Any]:
        return {"detail": self.message, "kind": self.kind.value, "code": self.code}


class ValidationError(EnrollmentError):
    kind = ErrorKind.VALIDATION


class NotFoundError(EnrollmentError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(EnrollmentError):
    kind = ErrorKind.CONFLICT


class GatewayError(EnrollmentError):
    """Normalized failure reported by (or while talking to) the payment gateway."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        description: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.description = description
        self.http_status = http_status

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["gateway_description"] = self.description
        return body


class GatewayTransientError(GatewayError):
    kind = ErrorKind.GATEWAY_TRANSIENT


class GatewaySemanticError(GatewayError):
    kind = ErrorKind.GATEWAY_SEMANTIC
