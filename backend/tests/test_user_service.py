"""
User API Backend — User Service Unit Tests
===========================================

What:  Tests for UserService business logic.
How:   Uses mock DB sessions (no real database).

What we test:
    ✅ Create lower-cases the email and flushes the new row
    ✅ Duplicate email (pre-check or unique constraint) raises ConflictError
    ✅ Missing user raises NotFoundError on get/update/delete
    ✅ List returns the page with its count
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from app.exceptions import ConflictError, NotFoundError
from app.schemas.user import UserCreate, UserUpdate
from app.services.user_service import UserService


def result_with(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


class TestCreateUser:
    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_create_user_success(self, mock_db_session):
        mock_db_session.execute.return_value = result_with(None)

        def fill_defaults(user):
            # Column defaults are applied by SQLAlchemy at flush time
            user.id = uuid4()
            user.created_at = user.updated_at = datetime.now(timezone.utc)

        mock_db_session.add.side_effect = fill_defaults

        result = await self.service.create_user(
            mock_db_session, UserCreate(email="Ada@Example.com", name="Ada Lovelace")
        )

        assert result.email == "ada@example.com"
        assert result.name == "Ada Lovelace"
        mock_db_session.add.assert_called_once()
        mock_db_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_email_raises_conflict(self, mock_db_session, sample_user):
        mock_db_session.execute.return_value = result_with(sample_user)

        with pytest.raises(ConflictError) as exc_info:
            await self.service.create_user(
                mock_db_session, UserCreate(email="ada@example.com", name="Ada")
            )

        assert exc_info.value.status_code == 409
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unique_violation_on_flush_raises_conflict(self, mock_db_session):
        mock_db_session.execute.return_value = result_with(None)
        mock_db_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        )

        with pytest.raises(ConflictError):
            await self.service.create_user(
                mock_db_session, UserCreate(email="ada@example.com", name="Ada")
            )


class TestReadUpdateDelete:
    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_get_user_found(self, mock_db_session, sample_user):
        mock_db_session.execute.return_value = result_with(sample_user)

        result = await self.service.get_user(mock_db_session, sample_user.id)

        assert result.id == sample_user.id
        assert result.email == sample_user.email

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["get", "update", "delete"])
    async def test_missing_user_raises_not_found(self, mock_db_session, operation):
        mock_db_session.execute.return_value = result_with(None)
        user_id = uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            if operation == "get":
                await self.service.get_user(mock_db_session, user_id)
            elif operation == "update":
                await self.service.update_user(mock_db_session, user_id, UserUpdate(name="New Name"))
            else:
                await self.service.delete_user(mock_db_session, user_id)

        assert exc_info.value.message == "User not found"

    @pytest.mark.asyncio
    async def test_update_user_changes_name(self, mock_db_session, sample_user):
        mock_db_session.execute.return_value = result_with(sample_user)
        before = sample_user.updated_at

        result = await self.service.update_user(
            mock_db_session, sample_user.id, UserUpdate(name="Grace Hopper")
        )

        assert result.name == "Grace Hopper"
        assert result.updated_at >= before
        mock_db_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_without_name_keeps_name(self, mock_db_session, sample_user):
        mock_db_session.execute.return_value = result_with(sample_user)

        result = await self.service.update_user(mock_db_session, sample_user.id, UserUpdate())

        assert result.name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_delete_user(self, mock_db_session, sample_user):
        mock_db_session.execute.return_value = result_with(sample_user)

        await self.service.delete_user(mock_db_session, sample_user.id)

        mock_db_session.delete.assert_awaited_once_with(sample_user)
        mock_db_session.flush.assert_awaited_once()


class TestListUsers:
    @pytest.mark.asyncio
    async def test_list_returns_page_and_count(self, mock_db_session, sample_user):
        result = MagicMock()
        result.scalars.return_value.all.return_value = [sample_user]
        mock_db_session.execute.return_value = result

        page = await UserService().list_users(mock_db_session, limit=10, offset=0)

        assert page.count == 1
        assert page.users[0].id == sample_user.id

    @pytest.mark.asyncio
    async def test_empty_page(self, mock_db_session):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db_session.execute.return_value = result

        page = await UserService().list_users(mock_db_session)

        assert page.count == 0
        assert page.users == []
