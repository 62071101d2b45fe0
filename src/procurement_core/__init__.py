"""Procurement-Core: supplier, contract and payment back office."""

from procurement_core.common.exceptions import (
    BadUserInputError,
    ConcurrentUpdateError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ProcurementError,
    UnauthenticatedError,
)
from procurement_core.common.security import Principal, RequestContext, Role

__all__ = [
    "ProcurementError",
    "UnauthenticatedError",
    "ForbiddenError",
    "NotFoundError",
    "BadUserInputError",
    "ConcurrentUpdateError",
    "InternalError",
    "Principal",
    "RequestContext",
    "Role",
]
__version__ = "0.1.0"
