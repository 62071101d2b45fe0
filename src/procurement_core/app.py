"""FastAPI application factory for Procurement-Core."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from procurement_core.common.config import get_settings
from procurement_core.common.exceptions import ProcurementError
from procurement_core.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "UNAUTHENTICATED": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "BAD_USER_INPUT": 400,
    "INTERNAL": 500,
}


async def procurement_error_handler(request: Request, exc: ProcurementError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, 500)
    if status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.message,
            extra={"code": exc.code, "path": request.url.path},
        )
    body = ErrorResponse(error=exc.message, code=exc.code, detail=exc.context)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from procurement_core.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ProcurementError, procurement_error_handler)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from procurement_core.analytics.router import router as analytics_router
    from procurement_core.audit.router import router as audit_router
    from procurement_core.contracts.router import router as contract_router
    from procurement_core.documents.router import router as document_router
    from procurement_core.notifications.router import router as notification_router
    from procurement_core.payments.router import router as payment_router
    from procurement_core.permissions.router import router as permission_router
    from procurement_core.registration.router import router as registration_router
    from procurement_core.settings.router import router as settings_router
    from procurement_core.suppliers.router import category_router
    from procurement_core.suppliers.router import router as supplier_router
    from procurement_core.users.router import router as user_router

    prefix = settings.api_prefix
    app.include_router(supplier_router, prefix=prefix)
    app.include_router(category_router, prefix=prefix)
    app.include_router(contract_router, prefix=prefix)
    app.include_router(payment_router, prefix=prefix)
    app.include_router(document_router, prefix=prefix)
    app.include_router(notification_router, prefix=prefix)
    app.include_router(audit_router, prefix=prefix)
    app.include_router(permission_router, prefix=prefix)
    app.include_router(user_router, prefix=prefix)
    app.include_router(settings_router, prefix=prefix)
    app.include_router(analytics_router, prefix=prefix)
    app.include_router(registration_router, prefix=prefix)

    return app
