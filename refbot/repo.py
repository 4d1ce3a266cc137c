from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from refbot.core.ids import parse_tg_id
from refbot.db.models import User

log = logging.getLogger(__name__)


async def get_user(session: AsyncSession, tg_id: int) -> User | None:
    return await session.get(User, int(tg_id))


async def find_user_by_username(session: AsyncSession, username: str) -> User | None:
    """Case-insensitive username lookup (without the leading @)."""
    username = (username or "").strip().lstrip("@")
    if not username:
        return None
    q = (
        select(User)
        .where(func.lower(User.tg_username) == username.lower())
        .order_by(User.created_at.asc())
        .limit(1)
    )
    return await session.scalar(q)


async def find_user(session: AsyncSession, identifier: str) -> User | None:
    """Resolve admin input like '123', '@username' or 'username' to a stored user.

    Digits are tried as a tg_id first and then as a username.
    """
    s = (identifier or "").strip()
    if not s:
        return None
    if s.startswith("@"):
        return await find_user_by_username(session, s[1:])
    tg_id = parse_tg_id(s)
    if tg_id is not None:
        user = await get_user(session, tg_id)
        if user:
            return user
    return await find_user_by_username(session, s)


async def list_users(session: AsyncSession) -> list[User]:
    res = await session.scalars(select(User).order_by(User.created_at.asc(), User.tg_id.asc()))
    return list(res.all())


async def list_direct_referrals(session: AsyncSession, tg_id: int) -> list[User]:
    q = (
        select(User)
        .where(User.referred_by_tg_id == int(tg_id))
        .order_by(User.created_at.asc(), User.tg_id.asc())
    )
    res = await session.scalars(q)
    return list(res.all())


async def get_users_by_ids(session: AsyncSession, tg_ids: set[int]) -> dict[int, User]:
    if not tg_ids:
        return {}
    res = await session.scalars(select(User).where(User.tg_id.in_(tg_ids)))
    return {int(u.tg_id): u for u in res.all()}


async def set_last_bot_message(session: AsyncSession, tg_id: int, *, message_id: int, tag: str) -> None:
    user = await session.get(User, int(tg_id))
    if not user:
        return
    user.last_bot_message_id = int(message_id)
    user.last_bot_message_tag = tag
    await session.flush()
