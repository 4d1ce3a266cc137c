from __future__ import annotations

import logging
import re
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from refbot.core.ids import INT32_MAX
from refbot.core.time import utcnow
from refbot.db.models import InviteCode
from refbot.services.referrals.errors import InvalidInviteCode

log = logging.getLogger(__name__)

# Telegram deep-link payload alphabet
CODE_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")

# ten years
MAX_TTL_DAYS = 3650


def normalize_code(raw: str) -> str:
    code = (raw or "").strip()
    if not CODE_RE.fullmatch(code):
        raise InvalidInviteCode("el código debe tener de 1 a 64 caracteres A-Z, a-z, 0-9, _ o -")
    if code.isdigit():
        # digits-only payloads are read as user ids first
        raise InvalidInviteCode("el código no puede ser solo numérico")
    return code


class InviteCodeService:
    async def create(
        self,
        session: AsyncSession,
        *,
        code: str,
        owner_tg_id: int,
        max_uses: int | None = None,
        ttl_days: int | None = None,
    ) -> InviteCode:
        code = normalize_code(code)
        if max_uses is not None and not 1 <= max_uses <= INT32_MAX:
            raise InvalidInviteCode(f"max_uses debe estar entre 1 y {INT32_MAX}")
        if ttl_days is not None and not 1 <= ttl_days <= MAX_TTL_DAYS:
            raise InvalidInviteCode(f"los días de validez deben estar entre 1 y {MAX_TTL_DAYS}")

        if await session.get(InviteCode, code) is not None:
            raise InvalidInviteCode(f"el código {code} ya existe")

        item = InviteCode(
            code=code,
            owner_tg_id=int(owner_tg_id),
            enabled=True,
            max_uses=max_uses,
            current_uses=0,
            expires_at=(utcnow() + timedelta(days=ttl_days)) if ttl_days else None,
        )
        session.add(item)
        await session.flush()
        log.info("invite_code_created code=%s owner=%s max_uses=%s ttl_days=%s", code, owner_tg_id, max_uses, ttl_days)
        return item

    async def disable(self, session: AsyncSession, *, code: str) -> bool:
        item = await session.get(InviteCode, (code or "").strip())
        if item is None:
            return False
        item.enabled = False
        await session.flush()
        log.info("invite_code_disabled code=%s", item.code)
        return True

    async def list_all(self, session: AsyncSession) -> list[InviteCode]:
        res = await session.scalars(select(InviteCode).order_by(InviteCode.created_at.desc()))
        return list(res.all())


invite_code_service = InviteCodeService()
