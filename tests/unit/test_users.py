"""Tests for user administration."""

import pytest

from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.common.security import Role
from procurement_core.users.service import UserService, principal_for


@pytest.fixture
def user_service(audit, cache):
    return UserService(audit, cache)


class TestCreateUser:
    async def test_admin_creates(self, db, user_service, actors):
        async with db.get_session() as session:
            user = await user_service.create_user(
                session, actors.admin, "new.buyer@example.com", "New", "Buyer",
                Role.PROCUREMENT_SPECIALIST, department="Operations",
            )
        assert user.role == "PROCUREMENT_SPECIALIST"
        assert user.is_active is True
        assert principal_for(user).role is Role.PROCUREMENT_SPECIALIST

    async def test_manager_forbidden(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_service.create_user(
                    session, actors.manager, "x@example.com", "X", "Y", "PROCUREMENT_SPECIALIST",
                )

    async def test_duplicate_email_case_insensitive(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await user_service.create_user(
                    session, actors.admin, "MANAGER@example.com", "Dup", "User", "PROCUREMENT_MANAGER",
                )

    async def test_unknown_role(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(BadUserInputError):
                await user_service.create_user(
                    session, actors.admin, "role@example.com", "Bad", "Role", "AUDITOR",
                )


class TestUpdateUser:
    async def test_self_profile_edit(self, db, user_service, actors):
        user_id = actors.specialist.principal.id
        async with db.get_session() as session:
            user = await user_service.update_user(
                session, actors.specialist, user_id, {"department": "Sourcing"},
            )
        assert user.department == "Sourcing"

    async def test_cannot_edit_others(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_service.update_user(
                    session, actors.specialist, actors.other_specialist.principal.id,
                    {"department": "Sourcing"},
                )

    async def test_role_change_is_admin_only(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_service.update_user(
                    session, actors.specialist, actors.specialist.principal.id,
                    {"role": "ADMIN"},
                )
        async with db.get_session() as session:
            promoted = await user_service.update_user(
                session, actors.admin, actors.specialist.principal.id,
                {"role": Role.PROCUREMENT_MANAGER},
            )
        assert promoted.role == "PROCUREMENT_MANAGER"

    async def test_admin_cannot_change_own_status(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_service.update_user(
                    session, actors.admin, actors.admin.principal.id, {"is_active": False},
                )

    async def test_missing_user(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(NotFoundError):
                await user_service.update_user(session, actors.admin, "missing", {"department": "X"})


class TestReads:
    async def test_get_self_allowed(self, db, user_service, actors):
        async with db.get_session() as session:
            data = await user_service.get_user(session, actors.specialist, actors.specialist.principal.id)
        assert data["email"] == "specialist@example.com"
        assert "password_hash" not in data

    async def test_specialist_cannot_view_others(self, db, user_service, actors):
        async with db.get_session() as session:
            with pytest.raises(ForbiddenError):
                await user_service.get_user(session, actors.specialist, actors.manager.principal.id)

    async def test_list_filters(self, db, user_service, actors):
        async with db.get_session() as session:
            specialists = await user_service.list_users(
                session, actors.manager, role=Role.PROCUREMENT_SPECIALIST,
            )
            searched = await user_service.list_users(session, actors.admin, search="other")
        assert specialists["total"] == 2
        assert searched["total"] == 1

    async def test_cached_user_refreshed_after_update(self, db, user_service, actors):
        user_id = actors.specialist.principal.id
        async with db.get_session() as session:
            await user_service.get_user(session, actors.admin, user_id)
        async with db.get_session() as session:
            await user_service.update_user(session, actors.admin, user_id, {"last_name": "Renamed"})
        async with db.get_session() as session:
            data = await user_service.get_user(session, actors.admin, user_id)
        assert data["last_name"] == "Renamed"


class TestBootstrapAdmin:
    async def test_idempotent(self, db, user_service):
        async with db.get_session() as session:
            first = await user_service.bootstrap_admin(session, "root@example.com")
        async with db.get_session() as session:
            second = await user_service.bootstrap_admin(session, "ROOT@example.com")
        assert first.id == second.id
        assert first.role == "ADMIN"
