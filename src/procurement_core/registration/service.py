"""Public supplier self-registration.

No principal is required. Every outcome is a ``RegistrationResult``; the
gateway never raises to its caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.common.security import RequestContext
from procurement_core.suppliers.categories import attach_categories, ensure_categories_exist
from procurement_core.suppliers.models import SupplierModel
from procurement_core.suppliers.service import REGISTRATION_TEMPLATE, UPDATABLE_FIELDS, SupplierService

logger = logging.getLogger(__name__)

REGISTRATION_NOTE = "Self-registered supplier"
SUCCESS_MESSAGE = (
    "Supplier registration submitted successfully. Your application is pending review."
)
FAILURE_MESSAGE = "An error occurred during registration"


@dataclass
class RegistrationResult:
    success: bool
    message: str
    supplier: Optional[SupplierModel] = None


class RegistrationGateway:
    def __init__(self, suppliers: SupplierService):
        self.suppliers = suppliers

    async def register_supplier(
        self,
        session: AsyncSession,
        data: dict[str, Any],
        category_ids: list[str] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RegistrationResult:
        """Create a PENDING supplier on behalf of an anonymous applicant.

        Duplicate email, tax id and registration number are reported with
        their own messages. Any other failure rolls the session back and
        collapses to a generic message.
        """
        try:
            duplicate = await self.suppliers.find_duplicate(
                session,
                email=data.get("email"),
                tax_id=data.get("tax_id"),
                registration_number=data.get("registration_number"),
            )
            if duplicate:
                return RegistrationResult(success=False, message=duplicate)

            category_ids = list(category_ids or [])
            await ensure_categories_exist(session, category_ids)

            async def _attach(session: AsyncSession, supplier: SupplierModel) -> None:
                await attach_categories(session, supplier.id, category_ids)

            values = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and k != "status"}
            values["notes"] = REGISTRATION_NOTE
            supplier = await self.suppliers.engine.create(
                session,
                RequestContext(ip_address=ip_address, user_agent=user_agent),
                values,
                on_insert=_attach,
                template=REGISTRATION_TEMPLATE,
                require_actor=False,
            )
        except Exception:
            logger.exception("Supplier registration failed for %s", data.get("email"))
            await session.rollback()
            return RegistrationResult(success=False, message=FAILURE_MESSAGE)

        logger.info("Supplier %s self-registered", supplier.id)
        return RegistrationResult(success=True, message=SUCCESS_MESSAGE, supplier=supplier)
