"""Tests for public supplier self-registration."""

import pytest
from sqlalchemy import func, select

from procurement_core.audit.models import AuditLogModel
from procurement_core.notifications.models import NotificationModel
from procurement_core.registration.service import (
    FAILURE_MESSAGE,
    REGISTRATION_NOTE,
    SUCCESS_MESSAGE,
    RegistrationGateway,
)
from procurement_core.suppliers.models import SupplierModel


@pytest.fixture
def gateway(supplier_service):
    return RegistrationGateway(supplier_service)


async def count(db, model):
    async with db.get_session() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestRegisterSupplier:
    async def test_success(self, db, gateway, actors, make_supplier_data):
        async with db.get_session() as session:
            result = await gateway.register_supplier(
                session, make_supplier_data(name="Umbrella Supply"),
                ip_address="203.0.113.7", user_agent="browser",
            )
        assert result.success is True
        assert result.message == SUCCESS_MESSAGE
        supplier = result.supplier
        assert supplier.status == "PENDING"
        assert supplier.created_by_id is None
        assert supplier.notes == REGISTRATION_NOTE

        async with db.get_session() as session:
            notes = (await session.execute(
                select(NotificationModel).where(NotificationModel.entity_id == supplier.id)
            )).scalars().all()
            audit_entry = (await session.execute(
                select(AuditLogModel).where(AuditLogModel.entity_id == supplier.id)
            )).scalar_one()
        assert [(n.user_id, n.title) for n in notes] == [
            (actors.manager.principal.id, "New Supplier Registration"),
        ]
        assert audit_entry.user_id is None
        assert audit_entry.ip_address == "203.0.113.7"

    async def test_duplicate_tax_id(self, db, gateway, actors, create_supplier, make_supplier_data):
        await create_supplier(tax_id="TAX-REG")
        suppliers, audits, notifications = (
            await count(db, SupplierModel),
            await count(db, AuditLogModel),
            await count(db, NotificationModel),
        )
        async with db.get_session() as session:
            result = await gateway.register_supplier(session, make_supplier_data(tax_id="TAX-REG"))
        assert result.success is False
        assert result.message == "A supplier with this tax ID already exists"
        assert result.supplier is None
        assert await count(db, SupplierModel) == suppliers
        assert await count(db, AuditLogModel) == audits
        assert await count(db, NotificationModel) == notifications

    async def test_duplicate_email_checked(self, db, gateway, actors, create_supplier, make_supplier_data):
        await create_supplier(email="taken@example.com")
        async with db.get_session() as session:
            result = await gateway.register_supplier(
                session, make_supplier_data(email="taken@example.com"),
            )
        assert result.message == "A supplier with this email already exists"

    async def test_unknown_category_collapses(self, db, gateway, actors, make_supplier_data):
        async with db.get_session() as session:
            result = await gateway.register_supplier(
                session, make_supplier_data(), category_ids=["missing"],
            )
        assert result.success is False
        assert result.message == FAILURE_MESSAGE
        assert await count(db, SupplierModel) == 0

    async def test_write_failure_collapses(self, db, gateway, actors, make_supplier_data):
        data = make_supplier_data()
        del data["address"]
        async with db.get_session() as session:
            result = await gateway.register_supplier(session, data)
        assert result.success is False
        assert result.message == FAILURE_MESSAGE
        assert await count(db, SupplierModel) == 0
