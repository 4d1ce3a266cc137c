from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Protocol, TypeVar

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from refbot.db.models import InviteCode, User
from refbot.services.referrals.errors import InviteCodeUnavailable, StorageError

log = logging.getLogger(__name__)

T = TypeVar("T")


class ReferralStorage(Protocol):
    """Storage operations the referral core needs.

    Every method may raise StorageError. `run_atomically` executes the given
    coroutine function as one all-or-nothing unit: if it raises, none of the
    writes performed inside it survive.
    """

    async def get_user(self, tg_id: int, *, lock: bool = False) -> User | None: ...

    async def create_user(self, **fields: Any) -> User: ...

    async def update_user(self, tg_id: int, **fields: Any) -> User: ...

    async def get_invite_code(self, code: str) -> InviteCode | None: ...

    async def increment_invite_code_use(self, code: str) -> None: ...

    async def run_atomically(self, operation: Callable[[], Awaitable[T]]) -> T: ...


@contextmanager
def _storage_errors(op: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        log.warning("referral_storage_error op=%s err=%s", op, e)
        raise StorageError(f"{op} failed") from e


class SqlReferralStorage:
    """ReferralStorage on top of an AsyncSession (PostgreSQL).

    The storage owns the session transaction: `run_atomically` commits on
    success and rolls back on any exception.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_user(self, tg_id: int, *, lock: bool = False) -> User | None:
        with _storage_errors("get_user"):
            if not lock:
                return await self.session.get(User, int(tg_id))
            q = (
                select(User)
                .where(User.tg_id == int(tg_id))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return await self.session.scalar(q)

    async def create_user(self, **fields: Any) -> User:
        with _storage_errors("create_user"):
            user = User(**fields)
            self.session.add(user)
            await self.session.flush()
            return user

    async def update_user(self, tg_id: int, **fields: Any) -> User:
        with _storage_errors("update_user"):
            user = await self.session.get(User, int(tg_id))
            if user is None:
                raise StorageError(f"update_user: user {tg_id} does not exist")
            for k, v in fields.items():
                setattr(user, k, v)
            await self.session.flush()
            return user

    async def get_invite_code(self, code: str) -> InviteCode | None:
        with _storage_errors("get_invite_code"):
            return await self.session.get(InviteCode, code)

    async def increment_invite_code_use(self, code: str) -> None:
        # Validity is re-checked in the UPDATE itself so two concurrent uses
        # of the last slot cannot both pass.
        stmt = (
            update(InviteCode)
            .where(
                InviteCode.code == code,
                InviteCode.enabled.is_(True),
                or_(InviteCode.expires_at.is_(None), InviteCode.expires_at > func.now()),
                or_(InviteCode.max_uses.is_(None), InviteCode.current_uses < InviteCode.max_uses),
            )
            .values(current_uses=InviteCode.current_uses + 1)
            .execution_options(synchronize_session="fetch")
        )
        with _storage_errors("increment_invite_code_use"):
            res = await self.session.execute(stmt)
        if res.rowcount != 1:
            raise InviteCodeUnavailable(code)

    async def run_atomically(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            with _storage_errors("run_atomically"):
                result = await operation()
                await self.session.commit()
        except BaseException:
            await self._rollback()
            raise
        return result

    async def _rollback(self) -> None:
        # a failed rollback must not replace the error that caused it
        try:
            await self.session.rollback()
        except SQLAlchemyError:
            log.exception("referral_storage_rollback_failed")
