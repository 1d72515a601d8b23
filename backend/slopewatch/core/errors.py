"""Failure taxonomy shared by the services and the HTTP layer.

Services raise a ``ServiceError`` subclass; the application converts it into
a structured response ``{"success": false, "message": ..., "details": ...}``
carrying the error's HTTP status. Nothing else about the failure (stack,
internal identifiers) reaches the caller.

Example:
    Raise a validation failure with field-level details:
        >>> raise ValidationFailure(
        ...     "All fields are required",
        ...     details={"phone": "missing"},
        ... )
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from typing import Any


class ServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500
    code = "service_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Structured, caller-safe representation."""
        body: dict[str, Any] = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailure(ServiceError):
    """Malformed or missing input; caller-fixable."""

    status_code = 400
    code = "validation_failed"


class NotFoundFailure(ServiceError):
    """Referenced entity does not exist."""

    status_code = 404
    code = "not_found"


class AuthFailure(ServiceError):
    """Bad credentials, unapproved account, or an invalid token."""

    status_code = 401
    code = "auth_failed"


class ConflictFailure(ServiceError):
    """Duplicate unique key."""

    status_code = 409
    code = "conflict"


class DependencyFailure(ServiceError):
    """Record store or object store I/O failed on the primary path."""

    status_code = 502
    code = "dependency_failed"


class ConfigurationFailure(ServiceError):
    """Required configuration (e.g. signing secrets) is absent."""

    status_code = 500
    code = "configuration_missing"


PENDING_APPROVAL = "pending_approval"
FORBIDDEN = "forbidden"


def pending_approval() -> AuthFailure:
    return AuthFailure(
        "Account is pending administrator approval",
        code=PENDING_APPROVAL,
        status_code=403,
    )


def forbidden(message: str = "Permission denied") -> AuthFailure:
    return AuthFailure(message, code=FORBIDDEN, status_code=403)


def field_details(
    error_list: Iterable[Mapping[str, Any]],
    skip: Collection[str] = ("body",),
) -> dict[str, str]:
    """Flatten pydantic-style errors into ``{"a.b": message}`` details."""
    details: dict[str, str] = {}
    for error in error_list:
        path = ".".join(
            str(part) for part in error.get("loc", ()) if part not in skip
        )
        details.setdefault(path or "__root__", str(error.get("msg", "invalid")))
    return details
