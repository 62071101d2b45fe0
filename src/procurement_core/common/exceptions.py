"""Procurement-Core exception hierarchy.

Every service failure surfaces as one of five codes: UNAUTHENTICATED,
FORBIDDEN, NOT_FOUND, BAD_USER_INPUT or INTERNAL. ``context`` carries the
details a caller needs to render a precise message (required roles,
resource/action, entity id).
"""

from typing import Any


class ProcurementError(Exception):
    """Base exception for all procurement errors."""

    def __init__(
        self,
        message: str = "",
        code: str = "INTERNAL",
        context: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.context = context or {}
        super().__init__(message)


class UnauthenticatedError(ProcurementError):
    """Raised when an operation needs a principal and none was supplied."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHENTICATED")


class ForbiddenError(ProcurementError):
    """Raised when a role, ownership or grant gate fails."""

    def __init__(self, message: str = "Forbidden", **context: Any):
        super().__init__(message, code="FORBIDDEN", context=context)


class NotFoundError(ProcurementError):
    """Raised when the target entity does not exist."""

    def __init__(self, message: str = "Not found", **context: Any):
        super().__init__(message, code="NOT_FOUND", context=context)


class BadUserInputError(ProcurementError):
    """Raised on validation failures: dates, duplicates, ranges, cross-references."""

    def __init__(self, message: str = "Invalid input", **context: Any):
        super().__init__(message, code="BAD_USER_INPUT", context=context)


class ConcurrentUpdateError(BadUserInputError):
    """Raised when the row changed between read and write (stale version)."""

    def __init__(self, message: str = "Entity was modified concurrently; reload and retry", **context: Any):
        super().__init__(message, **context)


class InternalError(ProcurementError):
    """Raised for persistence or dependent-service failures not otherwise classified."""

    def __init__(self, message: str = "An unexpected error occurred", **context: Any):
        super().__init__(message, code="INTERNAL", context=context)
