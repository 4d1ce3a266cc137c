"""Tests for SqlReferralStorage against a mocked AsyncSession."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from refbot.db.models import User
from refbot.services.referrals.errors import InviteCodeUnavailable, StorageError
from refbot.services.referrals.storage import SqlReferralStorage


def db_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


@pytest.fixture
def sql_storage(mock_session):
    return SqlReferralStorage(mock_session)


class TestReads:
    @pytest.mark.asyncio
    async def test_get_user(self, sql_storage, mock_session):
        user = User(tg_id=42)
        mock_session.get = AsyncMock(return_value=user)

        assert await sql_storage.get_user(42) is user
        mock_session.get.assert_awaited_once_with(User, 42)

    @pytest.mark.asyncio
    async def test_get_user_locked_uses_select(self, sql_storage, mock_session):
        user = User(tg_id=42)
        mock_session.get = AsyncMock()
        mock_session.scalar = AsyncMock(return_value=user)

        assert await sql_storage.get_user(42, lock=True) is user
        mock_session.get.assert_not_awaited()
        stmt = mock_session.scalar.await_args.args[0]
        assert stmt._for_update_arg is not None

    @pytest.mark.asyncio
    async def test_database_error_becomes_storage_error(self, sql_storage, mock_session):
        mock_session.get = AsyncMock(side_effect=db_down())

        with pytest.raises(StorageError) as exc:
            await sql_storage.get_user(42)
        assert isinstance(exc.value.__cause__, OperationalError)

    @pytest.mark.asyncio
    async def test_get_invite_code_error(self, sql_storage, mock_session):
        mock_session.get = AsyncMock(side_effect=db_down())

        with pytest.raises(StorageError):
            await sql_storage.get_invite_code("VERANO")


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_user(self, sql_storage, mock_session):
        user = await sql_storage.create_user(tg_id=42, first_name="Ana")

        assert user.tg_id == 42
        mock_session.add.assert_called_once_with(user)
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_user_conflict(self, sql_storage, mock_session):
        mock_session.flush = AsyncMock(side_effect=SQLAlchemyError("duplicate key"))

        with pytest.raises(StorageError):
            await sql_storage.create_user(tg_id=42)

    @pytest.mark.asyncio
    async def test_update_user(self, sql_storage, mock_session):
        user = User(tg_id=42, first_name="Old")
        mock_session.get = AsyncMock(return_value=user)

        updated = await sql_storage.update_user(42, first_name="New", referred_by_tg_id=7)

        assert updated is user
        assert user.first_name == "New"
        assert user.referred_by_tg_id == 7
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_missing_user(self, sql_storage, mock_session):
        mock_session.get = AsyncMock(return_value=None)

        with pytest.raises(StorageError):
            await sql_storage.update_user(42, first_name="New")
        mock_session.flush.assert_not_awaited()


class TestIncrementInviteCodeUse:
    @pytest.mark.asyncio
    async def test_counter_taken(self, sql_storage, mock_session):
        mock_session.execute = AsyncMock(return_value=MagicMock(rowcount=1))

        await sql_storage.increment_invite_code_use("VERANO")

        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_row_means_unavailable(self, sql_storage, mock_session):
        """Disabled, expired, exhausted or missing: the conditional UPDATE matches nothing."""
        mock_session.execute = AsyncMock(return_value=MagicMock(rowcount=0))

        with pytest.raises(InviteCodeUnavailable) as exc:
            await sql_storage.increment_invite_code_use("VERANO")
        assert exc.value.code == "VERANO"

    @pytest.mark.asyncio
    async def test_database_error(self, sql_storage, mock_session):
        mock_session.execute = AsyncMock(side_effect=db_down())

        with pytest.raises(StorageError):
            await sql_storage.increment_invite_code_use("VERANO")


class TestRunAtomically:
    @pytest.mark.asyncio
    async def test_commit_on_success(self, sql_storage, mock_session):
        operation = AsyncMock(return_value="done")

        assert await sql_storage.run_atomically(operation) == "done"
        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rollback_and_reraise(self, sql_storage, mock_session):
        operation = AsyncMock(side_effect=StorageError("update_user failed"))

        with pytest.raises(StorageError, match="update_user failed"):
            await sql_storage.run_atomically(operation)
        mock_session.commit.assert_not_awaited()
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_raw_database_error_is_wrapped(self, sql_storage, mock_session):
        operation = AsyncMock(side_effect=db_down())

        with pytest.raises(StorageError):
            await sql_storage.run_atomically(operation)
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self, sql_storage, mock_session):
        mock_session.commit = AsyncMock(side_effect=db_down())

        with pytest.raises(StorageError):
            await sql_storage.run_atomically(AsyncMock(return_value="done"))
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_original_error(self, sql_storage, mock_session):
        mock_session.rollback = AsyncMock(side_effect=db_down())
        operation = AsyncMock(side_effect=InviteCodeUnavailable("VERANO"))

        with pytest.raises(InviteCodeUnavailable):
            await sql_storage.run_atomically(operation)
        mock_session.rollback.assert_awaited_once()
