"""Tests for the permission evaluator and permission administration."""

from types import SimpleNamespace

import pytest

from procurement_core.audit.service import AuditAction
from procurement_core.common.exceptions import (
    BadUserInputError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
)
from procurement_core.common.security import APPROVER_ROLES, Principal, Role
from procurement_core.permissions.evaluator import PermissionEvaluator, role_map_key
from procurement_core.permissions.models import PermissionModel
from procurement_core.permissions.service import PermissionService


def principal(role: Role, id: str = "u-1") -> Principal:
    return Principal(id=id, email=f"{id}@example.com", role=role)


@pytest.fixture
def permission_service(evaluator, audit, cache):
    return PermissionService(evaluator, audit, cache)


async def grant(db, role: Role, resource: str, action: str, is_granted: bool = True):
    async with db.get_session() as session:
        session.add(PermissionModel(
            role=role.value, resource=resource, action=action, is_granted=is_granted,
        ))


class TestCheckRole:
    def test_allowed(self):
        PermissionEvaluator.check_role(principal(Role.PROCUREMENT_MANAGER), APPROVER_ROLES, "approve")

    def test_denied_carries_context(self):
        with pytest.raises(ForbiddenError) as exc:
            PermissionEvaluator.check_role(
                principal(Role.PROCUREMENT_SPECIALIST), APPROVER_ROLES, "approve suppliers",
            )
        assert exc.value.code == "FORBIDDEN"
        assert exc.value.message == "You do not have permission to approve suppliers"
        assert exc.value.context["user_role"] == "PROCUREMENT_SPECIALIST"
        assert set(exc.value.context["required_roles"]) == {"ADMIN", "PROCUREMENT_MANAGER"}

    def test_admin_not_implicit(self):
        with pytest.raises(ForbiddenError):
            PermissionEvaluator.check_role(
                principal(Role.ADMIN), [Role.PROCUREMENT_MANAGER], "do manager things",
            )

    def test_require_role_anonymous(self, evaluator):
        from procurement_core.common.security import RequestContext
        with pytest.raises(UnauthenticatedError):
            evaluator.require_role(RequestContext(), APPROVER_ROLES, "approve")


class TestCheckOwnership:
    def test_missing_entity_is_not_found(self):
        with pytest.raises(NotFoundError):
            PermissionEvaluator.check_ownership(None, principal(Role.ADMIN), "update")

    def test_owner_passes(self):
        entity = SimpleNamespace(id="s-1", created_by_id="u-1")
        PermissionEvaluator.check_ownership(entity, principal(Role.PROCUREMENT_SPECIALIST), "update")

    def test_non_owner_specialist_forbidden(self):
        entity = SimpleNamespace(id="s-1", created_by_id="someone-else")
        with pytest.raises(ForbiddenError) as exc:
            PermissionEvaluator.check_ownership(
                entity, principal(Role.PROCUREMENT_SPECIALIST), "update",
            )
        assert exc.value.message == "You do not have permission to update this entity"

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.PROCUREMENT_MANAGER])
    def test_privileged_roles_bypass(self, role):
        entity = SimpleNamespace(id="s-1", created_by_id="someone-else")
        PermissionEvaluator.check_ownership(entity, principal(role), "update")

    def test_custom_owner_field(self):
        entity = SimpleNamespace(id="p-1", requested_by_id="u-1")
        PermissionEvaluator.check_ownership(
            entity, principal(Role.PROCUREMENT_SPECIALIST), "update", "requested_by_id",
        )


class TestGrants:
    async def test_admin_short_circuits(self, db, evaluator, cache):
        async with db.get_session() as session:
            assert await evaluator.has_granted_permission(
                session, principal(Role.ADMIN), "suppliers", "approve",
            )
        assert "ADMIN" not in evaluator.local_cache
        assert await cache.get(role_map_key("ADMIN")) is None

    async def test_granted_from_table(self, db, evaluator):
        await grant(db, Role.PROCUREMENT_SPECIALIST, "suppliers", "create")
        async with db.get_session() as session:
            p = principal(Role.PROCUREMENT_SPECIALIST)
            assert await evaluator.has_granted_permission(session, p, "suppliers", "create")
            assert not await evaluator.has_granted_permission(session, p, "suppliers", "delete")

    async def test_explicit_denial(self, db, evaluator):
        await grant(db, Role.PROCUREMENT_SPECIALIST, "payments", "approve", is_granted=False)
        async with db.get_session() as session:
            assert not await evaluator.has_granted_permission(
                session, principal(Role.PROCUREMENT_SPECIALIST), "payments", "approve",
            )

    async def test_table_load_populates_both_tiers(self, db, evaluator, cache):
        await grant(db, Role.PROCUREMENT_MANAGER, "contracts", "approve")
        async with db.get_session() as session:
            await evaluator.has_granted_permission(
                session, principal(Role.PROCUREMENT_MANAGER), "contracts", "approve",
            )
        expected = {"contracts": {"approve": True}}
        assert evaluator.local_cache.get("PROCUREMENT_MANAGER") == expected
        assert await cache.get(role_map_key("PROCUREMENT_MANAGER")) == expected

    async def test_shared_tier_feeds_local_tier(self, db, evaluator, cache):
        await cache.set(role_map_key("PROCUREMENT_SPECIALIST"), {"suppliers": {"rate": True}}, 600)
        async with db.get_session() as session:
            assert await evaluator.has_granted_permission(
                session, principal(Role.PROCUREMENT_SPECIALIST), "suppliers", "rate",
            )
        assert "PROCUREMENT_SPECIALIST" in evaluator.local_cache

    async def test_require_granted_permission_context(self, db, evaluator):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError) as exc:
                await evaluator.require_granted_permission(
                    session, principal(Role.PROCUREMENT_SPECIALIST), "payments", "approve",
                )
        assert exc.value.context["resource"] == "payments"
        assert exc.value.context["action"] == "approve"

    async def test_forget_role_clears_tiers(self, db, evaluator, cache):
        async with db.get_session() as session:
            await evaluator.get_role_map(session, Role.PROCUREMENT_MANAGER)
        await evaluator.forget_role(Role.PROCUREMENT_MANAGER)
        assert "PROCUREMENT_MANAGER" not in evaluator.local_cache
        assert await cache.get(role_map_key("PROCUREMENT_MANAGER")) is None


class TestPermissionService:
    async def test_create_requires_admin(self, db, actors, permission_service):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await permission_service.create_permission(
                    session, actors.manager, Role.PROCUREMENT_SPECIALIST, "suppliers", "create",
                )

    async def test_create_and_duplicate(self, db, actors, permission_service):
        async with db.get_session() as session:
            perm = await permission_service.create_permission(
                session, actors.admin, Role.PROCUREMENT_SPECIALIST, "suppliers", "create",
                description="Create suppliers",
            )
            assert perm.role == "PROCUREMENT_SPECIALIST"
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await permission_service.create_permission(
                    session, actors.admin, "PROCUREMENT_SPECIALIST", "suppliers", "create",
                )

    async def test_unknown_role_rejected(self, db, actors, permission_service):
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await permission_service.create_permission(
                    session, actors.admin, "JANITOR", "suppliers", "create",
                )

    async def test_mutation_forgets_cached_role_map(self, db, actors, permission_service, evaluator):
        specialist = actors.specialist.principal
        async with db.get_session() as session:
            assert not await evaluator.has_granted_permission(session, specialist, "suppliers", "rate")
        async with db.get_session() as session:
            perm = await permission_service.create_permission(
                session, actors.admin, Role.PROCUREMENT_SPECIALIST, "suppliers", "rate",
            )
        async with db.get_session() as session:
            assert await evaluator.has_granted_permission(session, specialist, "suppliers", "rate")
        async with db.get_session() as session:
            await permission_service.update_permission(
                session, actors.admin, perm.id, {"is_granted": False},
            )
        async with db.get_session() as session:
            assert not await evaluator.has_granted_permission(session, specialist, "suppliers", "rate")

    async def test_list_is_cached_and_invalidated(self, db, actors, permission_service, cache):
        async with db.get_session() as session:
            first = await permission_service.list_permissions(session, actors.admin)
        assert first["total"] == 0
        assert await cache.store.keys("permissions:*")
        async with db.get_session() as session:
            await permission_service.create_permission(
                session, actors.admin, Role.PROCUREMENT_MANAGER, "contracts", "approve",
            )
        assert await cache.store.keys("permissions:*") == []
        async with db.get_session() as session:
            second = await permission_service.list_permissions(session, actors.admin)
        assert second["total"] == 1

    async def test_role_map_visibility(self, db, actors, permission_service):
        async with db.get_session() as session:
            own = await permission_service.role_permissions_map(
                session, actors.specialist, Role.PROCUREMENT_SPECIALIST,
            )
            assert own == {}
            with pytest.raises(ForbiddenError):
                await permission_service.role_permissions_map(
                    session, actors.specialist, Role.PROCUREMENT_MANAGER,
                )
            assert await permission_service.role_permissions_map(
                session, actors.admin, Role.PROCUREMENT_MANAGER,
            ) == {}

    async def test_delete_audits(self, db, actors, permission_service, audit):
        async with db.get_session() as session:
            perm = await permission_service.create_permission(
                session, actors.admin, Role.PROCUREMENT_MANAGER, "payments", "approve",
            )
        async with db.get_session() as session:
            assert await permission_service.delete_permission(session, actors.admin, perm.id)
        async with db.get_session() as session:
            entries = await audit.entries_for(session, "PERMISSION", perm.id)
        assert [e.action for e in entries] == [AuditAction.CREATE.value, AuditAction.DELETE.value]

    async def test_delete_missing(self, db, actors, permission_service):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await permission_service.delete_permission(session, actors.admin, "nope")
