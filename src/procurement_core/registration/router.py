"""Public registration router: no bearer token required."""

from fastapi import APIRouter, Depends

from procurement_core.common.security import RequestContext, get_request_context
from procurement_core.registration.schemas import RegistrationResponse, SupplierRegistration
from procurement_core.suppliers.schemas import SupplierResponse

router = APIRouter(prefix="/register", tags=["registration"])


def _get_gateway():
    from procurement_core.deps import get_registration_gateway
    return get_registration_gateway()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.post("/supplier", response_model=RegistrationResponse)
async def register_supplier(
    body: SupplierRegistration, ctx: RequestContext = Depends(get_request_context),
):
    gateway = _get_gateway()
    db = _get_db()
    async with db.get_session() as session:
        result = await gateway.register_supplier(
            session,
            body.model_dump(exclude={"category_ids"}),
            category_ids=body.category_ids,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )
        return RegistrationResponse(
            success=result.success,
            message=result.message,
            supplier=SupplierResponse.model_validate(result.supplier) if result.supplier else None,
        )
