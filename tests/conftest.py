"""Shared test fixtures for Procurement-Core."""

import itertools
import os
from dataclasses import dataclass
from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from procurement_core.audit.service import AuditRecorder
from procurement_core.cache.service import CacheService
from procurement_core.cache.store import MemoryCacheStore
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.database import DatabaseManager
from procurement_core.common.security import Principal, RequestContext, Role
from procurement_core.contracts.service import ContractService
from procurement_core.documents.service import DocumentService
from procurement_core.lifecycle.events import EventBus
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.payments.service import PaymentService
from procurement_core.permissions.evaluator import PermissionCache, PermissionEvaluator
from procurement_core.settings.service import SystemSettingService
from procurement_core.suppliers.service import SupplierService
from procurement_core.users.models import UserModel

SECRET_KEY = "test-secret-key-for-unit-tests"

_seq = itertools.count(1)


def make_settings(**overrides) -> ProcurementSettings:
    defaults = {"db_url": "sqlite+aiosqlite://", "secret_key": SECRET_KEY}
    defaults.update(overrides)
    return ProcurementSettings(**defaults)


@dataclass
class Actors:
    admin: RequestContext
    manager: RequestContext
    specialist: RequestContext
    other_specialist: RequestContext
    anonymous: RequestContext


ACTOR_ROLES = (
    ("admin", Role.ADMIN),
    ("manager", Role.PROCUREMENT_MANAGER),
    ("specialist", Role.PROCUREMENT_SPECIALIST),
    ("other_specialist", Role.PROCUREMENT_SPECIALIST),
)


async def seed_actors(db: DatabaseManager) -> Actors:
    contexts = {}
    async with db.get_session() as session:
        for name, role in ACTOR_ROLES:
            user = UserModel(
                email=f"{name}@example.com",
                first_name=name.replace("_", " ").title(),
                last_name="Tester",
                role=role.value,
                is_active=True,
            )
            session.add(user)
            await session.flush()
            contexts[name] = RequestContext(
                principal=Principal(id=user.id, email=user.email, role=role),
                ip_address="127.0.0.1",
                user_agent="pytest",
            )
    return Actors(anonymous=RequestContext(), **contexts)


# ── Unit fixtures ──

@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def cache(settings):
    return CacheService(settings, MemoryCacheStore())


@pytest.fixture
def evaluator(cache):
    return PermissionEvaluator(cache, PermissionCache())


@pytest.fixture
def audit(evaluator):
    return AuditRecorder(evaluator)


@pytest.fixture
def notifier():
    return NotificationDispatcher()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
async def actors(db):
    return await seed_actors(db)


@pytest.fixture
def supplier_service(settings, evaluator, audit, notifier, cache, events):
    return SupplierService(settings, evaluator, audit, notifier, cache, events)


@pytest.fixture
def system_setting_service(settings, evaluator, audit, cache, events):
    return SystemSettingService(settings, evaluator, audit, cache, events)


@pytest.fixture
def contract_service(settings, evaluator, audit, notifier, cache, events, system_setting_service):
    return ContractService(
        settings, evaluator, audit, notifier, cache, events, system_settings=system_setting_service,
    )


@pytest.fixture
def payment_service(settings, evaluator, audit, notifier, cache, events):
    return PaymentService(settings, evaluator, audit, notifier, cache, events)


@pytest.fixture
def document_service(audit, notifier, cache):
    return DocumentService(audit, notifier, cache)


def supplier_payload(**overrides) -> dict:
    n = next(_seq)
    data = {
        "name": f"Supplier {n}",
        "legal_name": f"Supplier {n} Ltd",
        "tax_id": f"TAX-{n:05d}",
        "registration_number": f"REG-{n:05d}",
        "email": f"supplier{n}@example.com",
        "address": "1 Market Street",
        "city": "Springfield",
        "country": "US",
        "postal_code": "12345",
        "phone_number": "+1-555-0100",
    }
    data.update(overrides)
    return data


def contract_payload(supplier_id: str, **overrides) -> dict:
    n = next(_seq)
    today = date.today()
    data = {
        "title": f"Contract {n}",
        "supplier_id": supplier_id,
        "contract_number": f"CN-{n:05d}",
        "start_date": today,
        "end_date": today + timedelta(days=365),
        "value": 100_000,
        "currency": "USD",
        "terms": "Net 30",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_supplier_data():
    return supplier_payload


@pytest.fixture
def make_contract_data():
    return contract_payload


@pytest.fixture
def create_supplier(db, supplier_service, actors):
    async def _create(ctx: RequestContext | None = None, **overrides):
        async with db.get_session() as session:
            return await supplier_service.create_supplier(
                session, ctx or actors.specialist, supplier_payload(**overrides),
            )
    return _create


@pytest.fixture
def create_contract(db, contract_service, actors, create_supplier):
    async def _create(ctx: RequestContext | None = None, supplier_id: str | None = None, **overrides):
        if supplier_id is None:
            supplier_id = (await create_supplier()).id
        async with db.get_session() as session:
            return await contract_service.create_contract(
                session, ctx or actors.specialist, contract_payload(supplier_id, **overrides),
            )
    return _create


@pytest.fixture
def create_payment(db, payment_service, actors, create_supplier):
    async def _create(ctx: RequestContext | None = None, supplier_id: str | None = None, **overrides):
        if supplier_id is None:
            supplier_id = (await create_supplier()).id
        data = {"supplier_id": supplier_id, "amount": 2500, "invoice_number": f"INV-{next(_seq)}"}
        data.update(overrides)
        async with db.get_session() as session:
            return await payment_service.create_payment(session, ctx or actors.specialist, data)
    return _create


# ── HTTP fixtures ──

@pytest.fixture
def app():
    """Create a test app with in-memory DB."""
    os.environ["PROCUREMENT_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["PROCUREMENT_SECRET_KEY"] = SECRET_KEY

    # Clear caches and singletons so new env vars take effect
    from procurement_core.common.config import get_settings
    get_settings.cache_clear()

    from procurement_core.deps import reset_singletons
    reset_singletons()

    from procurement_core.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from procurement_core.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
async def http_actors(client):
    from procurement_core.deps import get_db
    return await seed_actors(get_db())


@pytest.fixture
def headers_for():
    from procurement_core.common.security import issue_token

    def _headers(ctx: RequestContext) -> dict:
        if ctx.principal is None:
            return {}
        return {"Authorization": f"Bearer {issue_token(ctx.principal)}"}
    return _headers
