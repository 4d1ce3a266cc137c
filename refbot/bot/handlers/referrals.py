from __future__ import annotations

import logging

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy.exc import SQLAlchemyError

from refbot.bot.keyboards import kb_invite_share
from refbot.bot.ui import invite_forward_text, my_referrals_text, referral_link, send_replacing
from refbot.core.config import settings
from refbot.db.session import session_scope
from refbot.repo import get_user, list_direct_referrals

log = logging.getLogger(__name__)

router = Router()


@router.message(Command("invitar", "refer"))
async def cmd_invite(message: Message) -> None:
    tg_id = message.from_user.id

    try:
        async with session_scope() as session:
            user = await get_user(session, tg_id)
        if not user:
            await message.answer("Por favor, inicia el bot con /start antes de obtener un enlace de invitación.")
            return

        link = referral_link(settings.bot_username, tg_id)
        name = user.first_name or user.tg_username or "tú"
        await send_replacing(
            message,
            f"¡Perfecto, {name}! ✨\nEl siguiente mensaje está listo para que lo reenvíes a tus amigos:",
            tag="invite",
        )
    except SQLAlchemyError:
        log.exception("invite_failed", extra={"tg_id": tg_id})
        await message.answer("Ocurrió un error al generar tu enlace de invitación.")
        return

    # forwardable message
    await message.answer(
        invite_forward_text(settings.community_name, link),
        reply_markup=kb_invite_share(link),
    )


@router.message(Command("mis_invitados", "my_referrals"))
async def cmd_my_referrals(message: Message) -> None:
    tg_id = message.from_user.id

    try:
        async with session_scope() as session:
            user = await get_user(session, tg_id)
            if not user:
                await message.answer("Por favor, inicia el bot con /start primero.")
                return
            referrals = await list_direct_referrals(session, tg_id)
    except SQLAlchemyError:
        log.exception("my_referrals_failed", extra={"tg_id": tg_id})
        await message.answer("Ocurrió un error al buscar tus invitados.")
        return

    await message.answer(my_referrals_text(referrals))
