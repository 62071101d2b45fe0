"""Tests for supplier lifecycle, ratings and categories."""

import pytest
from sqlalchemy import select

from procurement_core.audit.service import AuditAction
from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.notifications.models import NotificationModel
from procurement_core.suppliers.categories import CategoryService
from procurement_core.suppliers.models import SupplierCategoryMapModel, SupplierModel
from procurement_core.suppliers.service import overall_from


@pytest.fixture
def category_service(audit, cache):
    return CategoryService(audit, cache)


async def notifications_of(db, user_id, type_):
    async with db.get_session() as session:
        result = await session.execute(
            select(NotificationModel).where(
                NotificationModel.user_id == user_id, NotificationModel.type == type_,
            )
        )
        return list(result.scalars().all())


class TestCreate:
    async def test_create_pending_and_owned(self, db, audit, actors, create_supplier):
        supplier = await create_supplier()
        assert supplier.status == "PENDING"
        assert supplier.created_by_id == actors.specialist.principal.id
        async with db.get_session() as session:
            entries = await audit.entries_for(session, "SUPPLIER", supplier.id)
        assert [e.action for e in entries] == [AuditAction.CREATE.value]
        assert entries[0].ip_address == "127.0.0.1"

    async def test_managers_notified(self, db, actors, create_supplier):
        supplier = await create_supplier(name="Acme Parts")
        sent = await notifications_of(db, actors.manager.principal.id, "SUPPLIER_CREATED")
        assert len(sent) == 1
        assert sent[0].entity_id == supplier.id
        assert '"Acme Parts"' in sent[0].message

    async def test_duplicate_tax_id(self, db, supplier_service, actors, create_supplier, make_supplier_data):
        await create_supplier(tax_id="TAX-DUP")
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError) as exc:
                await supplier_service.create_supplier(
                    session, actors.specialist, make_supplier_data(tax_id="TAX-DUP"),
                )
        assert exc.value.message == "A supplier with this tax ID already exists"

    async def test_duplicate_registration_number(
        self, db, supplier_service, actors, create_supplier, make_supplier_data,
    ):
        await create_supplier(registration_number="REG-DUP")
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError) as exc:
                await supplier_service.create_supplier(
                    session, actors.specialist, make_supplier_data(registration_number="REG-DUP"),
                )
        assert exc.value.message == "A supplier with this registration number already exists"

    async def test_unknown_category(self, db, supplier_service, actors, make_supplier_data):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await supplier_service.create_supplier(
                    session, actors.specialist, make_supplier_data(), category_ids=["missing"],
                )


class TestUpdate:
    async def test_non_owner_specialist_forbidden(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await supplier_service.update_supplier(
                    session, actors.other_specialist, supplier.id, {"city": "Shelbyville"},
                )

    async def test_manager_may_update_any(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            updated = await supplier_service.update_supplier(
                session, actors.manager, supplier.id, {"city": "Shelbyville"},
            )
        assert updated.city == "Shelbyville"
        assert updated.updated_by_id == actors.manager.principal.id

    async def test_unknown_field_rejected(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await supplier_service.update_supplier(
                    session, actors.specialist, supplier.id, {"version": 9},
                )

    async def test_duplicate_tax_id_on_update(self, db, supplier_service, actors, create_supplier):
        await create_supplier(tax_id="TAX-TAKEN")
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await supplier_service.update_supplier(
                    session, actors.specialist, supplier.id, {"tax_id": "TAX-TAKEN"},
                )

    async def test_cached_read_reflects_update(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier(name="Before")
        async with db.get_session() as session:
            first = await supplier_service.get_supplier(session, actors.specialist, supplier.id)
        assert first["name"] == "Before"
        async with db.get_session() as session:
            await supplier_service.update_supplier(
                session, actors.specialist, supplier.id, {"name": "After"},
            )
        async with db.get_session() as session:
            second = await supplier_service.get_supplier(session, actors.specialist, supplier.id)
        assert second["name"] == "After"


class TestApproveReject:
    async def test_approve_stamps_and_notifies(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            approved = await supplier_service.approve_supplier(session, actors.manager, supplier.id)
        assert approved.status == "APPROVED"
        assert approved.approved_by_id == actors.manager.principal.id
        assert approved.approved_at is not None
        sent = await notifications_of(db, actors.specialist.principal.id, "SUPPLIER_APPROVED")
        assert len(sent) == 1

    async def test_specialist_cannot_approve(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await supplier_service.approve_supplier(session, actors.specialist, supplier.id)

    async def test_approve_missing(self, db, supplier_service, actors):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await supplier_service.approve_supplier(session, actors.manager, "missing")

    async def test_reject_appends_timestamped_reason(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier(notes="Initial note")
        async with db.get_session() as session:
            rejected = await supplier_service.reject_supplier(
                session, actors.manager, supplier.id, "Incomplete paperwork",
            )
        assert rejected.status == "REJECTED"
        assert rejected.notes.startswith("Initial note\n\nRejection reason (")
        assert rejected.notes.endswith("): Incomplete paperwork")

        async with db.get_session() as session:
            again = await supplier_service.reject_supplier(
                session, actors.manager, supplier.id, "Still incomplete",
            )
        assert again.notes.count("Rejection reason (") == 2
        assert again.notes.endswith("): Still incomplete")

        sent = await notifications_of(db, actors.specialist.principal.id, "SUPPLIER_REJECTED")
        assert len(sent) == 2
        assert any(n.message.endswith("Reason: Incomplete paperwork") for n in sent)

    async def test_reject_requires_reason(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await supplier_service.reject_supplier(session, actors.manager, supplier.id, "   ")

    async def test_reject_audit_carries_reason(self, db, supplier_service, audit, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            await supplier_service.reject_supplier(session, actors.manager, supplier.id, "No tax proof")
        async with db.get_session() as session:
            entries = await audit.entries_for(session, "SUPPLIER", supplier.id)
        reject = entries[-1]
        assert reject.action == AuditAction.REJECT.value
        assert reject.new_values["rejection_reason"] == "No tax proof"
        assert reject.old_values["status"] == "PENDING"


class TestRatings:
    def test_overall_rounds_half_up(self):
        assert overall_from({"quality_rating": 4, "delivery_rating": 2}) == 3
        assert overall_from({"quality_rating": 4, "delivery_rating": 5}) == 5
        assert overall_from({"quality_rating": 1, "delivery_rating": 2, "communication_rating": 2}) == 2
        assert overall_from({}) is None

    async def test_rate_computes_overall(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            rated = await supplier_service.rate_supplier(
                session, actors.other_specialist, supplier.id, quality_rating=4, delivery_rating=2,
            )
        assert rated.overall_rating == 3
        assert rated.quality_rating == 4

    async def test_explicit_overall_wins(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            rated = await supplier_service.rate_supplier(
                session, actors.manager, supplier.id, quality_rating=1, overall_rating=5,
            )
        assert rated.overall_rating == 5

    async def test_out_of_range(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError) as exc:
                await supplier_service.rate_supplier(session, actors.manager, supplier.id, quality_rating=6)
        assert exc.value.context["field"] == "quality_rating"

    async def test_no_ratings(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError) as exc:
                await supplier_service.rate_supplier(session, actors.manager, supplier.id)
        assert exc.value.message == "At least one rating is required"

    async def test_rate_audited(self, db, supplier_service, audit, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            await supplier_service.rate_supplier(session, actors.manager, supplier.id, delivery_rating=5)
        async with db.get_session() as session:
            entries = await audit.entries_for(session, "SUPPLIER", supplier.id)
        assert entries[-1].action == AuditAction.RATE.value
        assert entries[-1].new_values == {"delivery_rating": 5, "overall_rating": 5}


class TestDelete:
    async def test_specialist_forbidden(self, db, supplier_service, actors, create_supplier):
        supplier = await create_supplier()
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await supplier_service.delete_supplier(session, actors.specialist, supplier.id)

    async def test_manager_deletes_with_mappings(
        self, db, supplier_service, category_service, actors, make_supplier_data,
    ):
        async with db.get_session() as session:
            category = await category_service.create_category(session, actors.manager, "Logistics")
        async with db.get_session() as session:
            supplier = await supplier_service.create_supplier(
                session, actors.specialist, make_supplier_data(), category_ids=[category.id],
            )
        async with db.get_session() as session:
            assert await supplier_service.delete_supplier(session, actors.manager, supplier.id)
        async with db.get_session() as session:
            assert await session.get(SupplierModel, supplier.id) is None
            result = await session.execute(
                select(SupplierCategoryMapModel).where(SupplierCategoryMapModel.supplier_id == supplier.id)
            )
            assert result.scalars().all() == []


class TestListing:
    async def test_filters(self, db, supplier_service, actors, create_supplier):
        await create_supplier(name="Northwind Traders", country="DE")
        await create_supplier(name="Contoso", country="US")
        async with db.get_session() as session:
            by_search = await supplier_service.list_suppliers(session, actors.manager, search="northwind")
            by_country = await supplier_service.list_suppliers(session, actors.manager, country="US")
            by_status = await supplier_service.list_suppliers(session, actors.manager, status="APPROVED")
        assert [s["name"] for s in by_search["items"]] == ["Northwind Traders"]
        assert by_country["total"] == 1
        assert by_status["total"] == 0

    async def test_new_supplier_invalidates_lists(self, db, supplier_service, actors, create_supplier):
        async with db.get_session() as session:
            before = await supplier_service.list_suppliers(session, actors.manager)
        await create_supplier()
        async with db.get_session() as session:
            after = await supplier_service.list_suppliers(session, actors.manager)
        assert after["total"] == before["total"] + 1


class TestCategories:
    async def test_create_requires_approver(self, db, category_service, actors):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await category_service.create_category(session, actors.specialist, "Raw Materials")

    async def test_duplicate_name(self, db, category_service, actors):
        async with db.get_session() as session:
            await category_service.create_category(session, actors.manager, "Packaging")
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await category_service.create_category(session, actors.manager, " Packaging ")

    async def test_supplier_snapshot_embeds_categories(
        self, db, supplier_service, category_service, actors, make_supplier_data,
    ):
        async with db.get_session() as session:
            hardware = await category_service.create_category(session, actors.manager, "Hardware")
        async with db.get_session() as session:
            supplier = await supplier_service.create_supplier(
                session, actors.specialist, make_supplier_data(), category_ids=[hardware.id],
            )
        async with db.get_session() as session:
            data = await supplier_service.get_supplier(session, actors.specialist, supplier.id)
            filtered = await supplier_service.list_suppliers(
                session, actors.specialist, category_ids=[hardware.id],
            )
        assert [c["name"] for c in data["categories"]] == ["Hardware"]
        assert filtered["total"] == 1

        async with db.get_session() as session:
            await category_service.delete_category(session, actors.manager, hardware.id)
        async with db.get_session() as session:
            data = await supplier_service.get_supplier(session, actors.specialist, supplier.id)
            categories = await category_service.list_categories(session, actors.specialist)
        assert data["categories"] == []
        assert categories == []

    async def test_replace_categories_on_update(
        self, db, supplier_service, category_service, actors, make_supplier_data,
    ):
        async with db.get_session() as session:
            first = await category_service.create_category(session, actors.manager, "First")
            second = await category_service.create_category(session, actors.manager, "Second")
        async with db.get_session() as session:
            supplier = await supplier_service.create_supplier(
                session, actors.specialist, make_supplier_data(), category_ids=[first.id],
            )
        async with db.get_session() as session:
            await supplier_service.update_supplier(
                session, actors.specialist, supplier.id, {}, category_ids=[second.id],
            )
        async with db.get_session() as session:
            data = await supplier_service.get_supplier(session, actors.specialist, supplier.id)
        assert [c["name"] for c in data["categories"]] == ["Second"]
