"""Principals, request context and bearer-token authentication dependencies."""

import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from procurement_core.common.exceptions import UnauthenticatedError

TOKEN_SALT = "procurement-principal"


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    PROCUREMENT_MANAGER = "PROCUREMENT_MANAGER"
    PROCUREMENT_SPECIALIST = "PROCUREMENT_SPECIALIST"


APPROVER_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.PROCUREMENT_MANAGER})
ALL_ROLES: frozenset[Role] = frozenset(Role)


@dataclass(frozen=True)
class Principal:
    """The authenticated actor as issued by the authentication collaborator."""
    id: str
    email: str
    role: Role

    @classmethod
    def from_payload(cls, payload: dict) -> "Principal":
        return cls(id=payload["id"], email=payload["email"], role=Role(payload["role"]))

    def to_payload(self) -> dict:
        return {"id": self.id, "email": self.email, "role": self.role.value}


@dataclass(frozen=True)
class RequestContext:
    """Who is acting, plus request provenance recorded in the audit trail."""
    principal: Optional[Principal] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def require_principal(ctx: RequestContext) -> Principal:
    if ctx.principal is None:
        raise UnauthenticatedError()
    return ctx.principal


# ── Tokens ──

def _get_serializer() -> URLSafeTimedSerializer:
    from procurement_core.common.config import get_settings
    return URLSafeTimedSerializer(get_settings().secret_key, salt=TOKEN_SALT)


def issue_token(principal: Principal) -> str:
    """Sign a principal payload and return the bearer token."""
    return _get_serializer().dumps(principal.to_payload())


def verify_token(token: str) -> Principal | None:
    """Verify and decode a bearer token. Returns the principal or None."""
    from procurement_core.common.config import get_settings

    try:
        payload = _get_serializer().loads(token, max_age=get_settings().token_max_age)
    except (BadSignature, SignatureExpired):
        return None
    try:
        return Principal.from_payload(payload)
    except (KeyError, ValueError, TypeError):
        return None


# ── FastAPI dependencies ──

async def get_request_context(
    request: Request,
    authorization: str | None = Header(None),
) -> RequestContext:
    """Resolve the (optional) principal and request provenance.

    Anonymous requests get a context without a principal; services decide
    whether that is acceptable.
    """
    principal = None
    if authorization and authorization.startswith("Bearer "):
        principal = verify_token(authorization.removeprefix("Bearer ").strip())
    return RequestContext(
        principal=principal,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
