"""
AutismCad Backend — User Administration Unit Tests
===================================================

What we test:
    ✅ unknown roles are refused before anything is written
    ✅ creating with an existing email overwrites that account
    ✅ admin-geral always receives every permission
    ✅ users cannot delete themselves
"""

from unittest.mock import MagicMock

import pytest

from autismcad.auth.password import verify_password
from autismcad.exceptions import NotFoundError, ValidationError
from autismcad.models.user import RolePermission, User
from autismcad.schemas.users import RolePermissionsUpdate, UserCreate, UserUpdate
from autismcad.services.users_service import UsersService


class TestUsers:
    def setup_method(self):
        self.service = UsersService()

    @pytest.mark.asyncio
    async def test_unknown_role(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)
        data = UserCreate(nome="Rita", email="rita@clinica.com", senha="12345678", role="financeiro")

        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_user(mock_db_session, data)
        assert exc_info.value.code == "INVALID_ROLE"
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_create(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalar="recepcao"), make_result(scalar=None)]
        data = UserCreate(nome="Rita", email="rita@clinica.com", senha="12345678", role=" recepcao ")

        result = await self.service.create_user(mock_db_session, data)

        user = mock_db_session.add.call_args[0][0]
        assert isinstance(user, User)
        assert user.role == "recepcao"
        assert verify_password("12345678", user.senha_hash)
        assert result["role"] == "recepcao"

    @pytest.mark.asyncio
    async def test_create_overwrites_existing_email(self, mock_db_session, make_result):
        existing = User(id=5, nome="Antiga", email="rita@clinica.com", senha_hash="x", role="terapeuta", ativo=False)
        mock_db_session.execute.side_effect = [make_result(scalar="recepcao"), make_result(scalar=existing)]
        data = UserCreate(nome="Rita", email="rita@clinica.com", senha="12345678", role="recepcao")

        result = await self.service.create_user(mock_db_session, data)

        assert result["id"] == 5
        assert existing.ativo is True
        assert existing.role == "recepcao"
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_missing(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalar="admin"), make_result(scalar=None)]
        data = UserUpdate(nome="X", email="x@clinica.com", role="admin")

        with pytest.raises(NotFoundError):
            await self.service.update_user(mock_db_session, 40, data)

    @pytest.mark.asyncio
    async def test_self_delete(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.delete_user(mock_db_session, 3, requester_id=3)
        assert exc_info.value.code == "SELF_DELETE"

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_log_in(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=MagicMock(ativo=False))

        assert await self.service.get_active_by_email(mock_db_session, "a@b.com") is None


class TestRolePermissions:
    @pytest.mark.asyncio
    async def test_admin_geral_gets_everything(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalars=[1, 2, 3]), make_result()]

        result = await UsersService().update_role_permissions(
            mock_db_session, "admin-geral", RolePermissionsUpdate(permissions=[1])
        )

        assert result["permissions"] == [1, 2, 3]
        assert mock_db_session.add.call_count == 3

    @pytest.mark.asyncio
    async def test_grants_replaced(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalars=[4]), make_result()]

        result = await UsersService().update_role_permissions(
            mock_db_session, "recepcao", RolePermissionsUpdate(permissions=[4, -1, 0, 999])
        )

        assert result == {"ok": True, "role": "recepcao", "permissions": [4]}
        grant = mock_db_session.add.call_args[0][0]
        assert isinstance(grant, RolePermission)
        assert grant.permission_id == 4

    @pytest.mark.asyncio
    async def test_empty_list_clears_grants(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result()

        result = await UsersService().update_role_permissions(
            mock_db_session, "terapeuta", RolePermissionsUpdate(permissions=[])
        )

        assert result["permissions"] == []
        assert mock_db_session.execute.await_count == 1
        mock_db_session.add.assert_not_called()
