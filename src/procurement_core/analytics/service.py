"""Dashboard aggregates over suppliers, contracts and payments.

Every read goes through the cache under ``analytics:*`` with the list TTL;
lifecycle and category writes clear that prefix.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.cache.service import CacheService
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.exceptions import BadUserInputError
from procurement_core.common.security import APPROVER_ROLES, RequestContext, require_principal
from procurement_core.contracts.models import ContractModel, ContractStatus
from procurement_core.payments.models import PaymentModel, PaymentStatus
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.suppliers.models import (
    SupplierCategoryMapModel,
    SupplierCategoryModel,
    SupplierModel,
    SupplierStatus,
)

MAX_MONTHS = 24


def _count_where(condition) -> Any:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _sum_where(condition, column) -> Any:
    return func.coalesce(func.sum(case((condition, column), else_=0)), 0)


def month_starts(today: date, months: int) -> list[date]:
    """First day of each of the last ``months`` months, oldest first, ending with today's."""
    starts = []
    year, month = today.year, today.month
    for _ in range(months):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return starts[::-1]


def _next_month(start: date) -> date:
    return (start.replace(day=28) + timedelta(days=4)).replace(day=1)


class AnalyticsService:
    def __init__(
        self,
        settings: ProcurementSettings,
        permissions: PermissionEvaluator,
        cache: CacheService,
    ):
        self.settings = settings
        self.permissions = permissions
        self.cache = cache

    async def _cached(self, key: str, compute) -> Any:
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        data = await compute()
        await self.cache.set(key, data, self.cache.list_ttl)
        return data

    async def summary(
        self, session: AsyncSession, ctx: RequestContext, today: date | None = None,
    ) -> dict[str, Any]:
        """Headline counts for any authenticated user."""
        require_principal(ctx)
        today = today or date.today()
        horizon = today + timedelta(days=self.settings.contract_expiry_warning_days)

        async def _compute() -> dict[str, Any]:
            s = SupplierModel.status
            suppliers = (await session.execute(select(
                func.count(SupplierModel.id),
                _count_where(s == SupplierStatus.PENDING.value),
                _count_where(s == SupplierStatus.APPROVED.value),
                _count_where(s == SupplierStatus.REJECTED.value),
            ))).one()
            active = ContractModel.status == ContractStatus.ACTIVE.value
            contracts = (await session.execute(select(
                func.count(ContractModel.id),
                _count_where(active),
                _count_where(active & (ContractModel.end_date <= horizon)),
            ))).one()
            payments = (await session.execute(select(
                func.coalesce(func.sum(PaymentModel.amount), 0),
                _sum_where(PaymentModel.status == PaymentStatus.PENDING.value, PaymentModel.amount),
            ))).one()
            return {
                "total_suppliers": suppliers[0],
                "pending_suppliers": suppliers[1],
                "approved_suppliers": suppliers[2],
                "rejected_suppliers": suppliers[3],
                "total_contracts": contracts[0],
                "active_contracts": contracts[1],
                "expiring_contracts": contracts[2],
                "total_payments_amount": payments[0],
                "pending_payments_amount": payments[1],
            }

        return await self._cached(f"analytics:summary:{today.isoformat()}", _compute)

    async def suppliers_by_country(self, session: AsyncSession, ctx: RequestContext) -> list[dict[str, Any]]:
        """Approved suppliers per country, largest first."""
        self.permissions.require_role(ctx, APPROVER_ROLES, "view analytics")

        async def _compute() -> list[dict[str, Any]]:
            n = func.count(SupplierModel.id)
            result = await session.execute(
                select(SupplierModel.country, n)
                .where(SupplierModel.status == SupplierStatus.APPROVED.value)
                .group_by(SupplierModel.country)
                .order_by(n.desc(), SupplierModel.country)
            )
            return [{"country": country, "count": count} for country, count in result.all()]

        return await self._cached("analytics:suppliersByCountry", _compute)

    async def suppliers_by_category(self, session: AsyncSession, ctx: RequestContext) -> list[dict[str, Any]]:
        """Distinct approved suppliers per category, largest first."""
        self.permissions.require_role(ctx, APPROVER_ROLES, "view analytics")

        async def _compute() -> list[dict[str, Any]]:
            n = func.count(SupplierCategoryMapModel.supplier_id.distinct())
            result = await session.execute(
                select(SupplierCategoryModel.name, n)
                .select_from(SupplierCategoryMapModel)
                .join(SupplierCategoryModel, SupplierCategoryMapModel.category_id == SupplierCategoryModel.id)
                .join(SupplierModel, SupplierCategoryMapModel.supplier_id == SupplierModel.id)
                .where(SupplierModel.status == SupplierStatus.APPROVED.value)
                .group_by(SupplierCategoryModel.name)
                .order_by(n.desc(), SupplierCategoryModel.name)
            )
            return [{"category": name, "count": count} for name, count in result.all()]

        return await self._cached("analytics:suppliersByCategory", _compute)

    async def contracts_by_status(self, session: AsyncSession, ctx: RequestContext) -> list[dict[str, Any]]:
        self.permissions.require_role(ctx, APPROVER_ROLES, "view analytics")

        async def _compute() -> list[dict[str, Any]]:
            result = await session.execute(
                select(
                    ContractModel.status,
                    func.count(ContractModel.id),
                    func.coalesce(func.sum(ContractModel.value), 0),
                )
                .group_by(ContractModel.status)
                .order_by(ContractModel.status)
            )
            return [
                {"status": status, "count": count, "value": value}
                for status, count, value in result.all()
            ]

        return await self._cached("analytics:contractsByStatus", _compute)

    async def payments_by_month(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        months: int = 6,
        today: date | None = None,
    ) -> list[dict[str, Any]]:
        """Amount of PAID payments per creation month, zero-filled, oldest first."""
        self.permissions.require_role(ctx, APPROVER_ROLES, "view analytics")
        if months <= 0 or months > MAX_MONTHS:
            raise BadUserInputError(f"Months must be between 1 and {MAX_MONTHS}", months=months)
        today = today or date.today()
        starts = month_starts(today, months)

        async def _compute() -> list[dict[str, Any]]:
            lower = datetime.combine(starts[0], datetime.min.time(), tzinfo=timezone.utc)
            upper = datetime.combine(_next_month(starts[-1]), datetime.min.time(), tzinfo=timezone.utc)
            result = await session.execute(
                select(PaymentModel.created_at, PaymentModel.amount).where(
                    PaymentModel.status == PaymentStatus.PAID.value,
                    PaymentModel.created_at >= lower,
                    PaymentModel.created_at < upper,
                )
            )
            totals = {start.strftime("%Y-%m"): 0 for start in starts}
            for created_at, amount in result.all():
                month = created_at.strftime("%Y-%m")
                if month in totals:
                    totals[month] += amount
            return [{"month": month, "amount": amount} for month, amount in totals.items()]

        key = f"analytics:paymentsByMonth:{months}:{today.strftime('%Y-%m')}"
        return await self._cached(key, _compute)
