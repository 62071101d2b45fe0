"""Tests for payment requests, approval and settlement."""

from datetime import date

import pytest
from sqlalchemy import select

from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.notifications.models import NotificationModel
from procurement_core.payments.models import PaymentModel


class TestCreate:
    async def test_pending_and_owned_by_requester(self, create_payment, actors):
        payment = await create_payment()
        assert payment.status == "PENDING"
        assert payment.requested_by_id == actors.specialist.principal.id

    async def test_contract_must_belong_to_supplier(
        self, db, payment_service, actors, create_supplier, create_contract,
    ):
        supplier = await create_supplier()
        foreign_contract = await create_contract()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError) as exc:
                await payment_service.create_payment(session, actors.specialist, {
                    "supplier_id": supplier.id,
                    "contract_id": foreign_contract.id,
                    "amount": 100,
                })
        assert exc.value.message == "Contract does not belong to the specified supplier"
        async with db.get_session() as session:
            result = await session.execute(select(PaymentModel))
            assert result.scalars().all() == []

    async def test_matching_contract_accepted(self, create_payment, create_contract):
        contract = await create_contract()
        payment = await create_payment(supplier_id=contract.supplier_id, contract_id=contract.id)
        assert payment.contract_id == contract.id

    async def test_unknown_contract(self, db, payment_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await payment_service.create_payment(session, actors.specialist, {
                    "supplier_id": supplier.id, "contract_id": "missing", "amount": 100,
                })

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_amount_must_be_positive(self, db, payment_service, actors, create_supplier, amount):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await payment_service.create_payment(session, actors.specialist, {
                    "supplier_id": supplier.id, "amount": amount,
                })

    async def test_managers_notified(self, db, actors, create_supplier, create_payment):
        supplier = await create_supplier(name="Initech")
        await create_payment(supplier_id=supplier.id, amount=1200, currency="EUR")
        async with db.get_session() as session:
            result = await session.execute(
                select(NotificationModel).where(NotificationModel.type == "PAYMENT_REQUESTED")
            )
            sent = result.scalar_one()
        assert sent.user_id == actors.manager.principal.id
        assert sent.message == "A new payment of EUR 1200 for Initech has been requested."


class TestApproval:
    async def test_approve_notifies_requester(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            approved = await payment_service.approve_payment(session, actors.manager, payment.id)
        assert approved.status == "APPROVED"
        async with db.get_session() as session:
            result = await session.execute(
                select(NotificationModel).where(
                    NotificationModel.user_id == actors.specialist.principal.id,
                    NotificationModel.type == "PAYMENT_APPROVED",
                )
            )
            assert len(result.scalars().all()) == 1

    async def test_update_amount_validated(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await payment_service.update_payment(
                    session, actors.specialist, payment.id, {"amount": 0},
                )

    async def test_reject_then_resubmit(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            await payment_service.reject_payment(session, actors.manager, payment.id, "Missing invoice")
        async with db.get_session() as session:
            resubmitted = await payment_service.update_payment(
                session, actors.manager, payment.id, {"status": "PENDING"},
            )
        assert resubmitted.status == "PENDING"
        assert "Missing invoice" in resubmitted.notes


class TestMarkPaid:
    async def test_mark_paid(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            await payment_service.approve_payment(session, actors.manager, payment.id)
        async with db.get_session() as session:
            paid = await payment_service.mark_paid(
                session, actors.manager, payment.id, payment_date=date(2026, 5, 1),
            )
        assert paid.status == "PAID"
        assert paid.payment_date == date(2026, 5, 1)

    async def test_pending_cannot_be_paid(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await payment_service.mark_paid(session, actors.manager, payment.id)

    async def test_specialist_cannot_mark_paid(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await payment_service.mark_paid(session, actors.specialist, payment.id)

    async def test_paid_is_terminal(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            await payment_service.approve_payment(session, actors.manager, payment.id)
            await payment_service.mark_paid(session, actors.manager, payment.id)
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await payment_service.reject_payment(session, actors.manager, payment.id, "Too late")


class TestDelete:
    async def test_specialist_deletes_own_pending(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            assert await payment_service.delete_payment(session, actors.specialist, payment.id)
        async with db.get_session() as session:
            assert await session.get(PaymentModel, payment.id) is None

    async def test_specialist_cannot_delete_approved(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            await payment_service.approve_payment(session, actors.manager, payment.id)
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await payment_service.delete_payment(session, actors.specialist, payment.id)

    async def test_specialist_cannot_delete_others(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await payment_service.delete_payment(session, actors.other_specialist, payment.id)

    async def test_manager_deletes_any(self, db, payment_service, actors, create_payment):
        payment = await create_payment()
        async with db.get_session() as session:
            await payment_service.approve_payment(session, actors.manager, payment.id)
        async with db.get_session() as session:
            assert await payment_service.delete_payment(session, actors.manager, payment.id)


class TestListing:
    async def test_filters(self, db, payment_service, actors, create_supplier, create_payment):
        supplier = await create_supplier()
        await create_payment(supplier_id=supplier.id, amount=100, invoice_number="INV-A")
        await create_payment(supplier_id=supplier.id, amount=900, invoice_number="INV-B")
        await create_payment(amount=5000)
        async with db.get_session() as session:
            by_supplier = await payment_service.list_payments(session, actors.manager, supplier_id=supplier.id)
            by_amount = await payment_service.list_payments(session, actors.manager, min_amount=500, max_amount=1000)
            by_search = await payment_service.list_payments(session, actors.manager, search="INV-A")
        assert by_supplier["total"] == 2
        assert [p["invoice_number"] for p in by_amount["items"]] == ["INV-B"]
        assert by_search["total"] == 1
