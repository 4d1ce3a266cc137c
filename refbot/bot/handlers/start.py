from __future__ import annotations

import logging

from aiogram import Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import CommandObject, CommandStart
from aiogram.types import Message
from sqlalchemy.exc import SQLAlchemyError

from refbot.bot.ui import send_replacing, start_text
from refbot.core.config import settings
from refbot.db.session import session_scope
from refbot.services.referrals.errors import ReferralError
from refbot.services.referrals.schemas import Actor, UpsertResult
from refbot.services.referrals.service import referral_service
from refbot.services.referrals.storage import SqlReferralStorage

log = logging.getLogger(__name__)

router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message, command: CommandObject) -> None:
    from_user = message.from_user
    if from_user is None:
        await message.answer("No se pudo identificar al usuario.")
        return

    actor = Actor(tg_id=from_user.id, first_name=from_user.first_name, username=from_user.username)

    # /start <payload>: referrer tg_id or custom invite code
    try:
        async with session_scope() as session:
            result = await referral_service.resolve(
                SqlReferralStorage(session),
                actor=actor,
                payload=command.args,
                admin_id=settings.admin_tg_id,
            )
    except (ReferralError, SQLAlchemyError):
        log.exception("start_failed", extra={"tg_id": from_user.id})
        await message.answer("Ocurrió un error al procesar tu comando /start. Por favor, inténtalo de nuevo.")
        return

    await send_replacing(message, start_text(result), tag="start")

    if result.referral_applied and result.referrer is not None:
        await _notify_referrer(message, result)


async def _notify_referrer(message: Message, result: UpsertResult) -> None:
    """Best-effort: tell the referrer someone joined through them."""
    referrer = result.referrer
    how = f"con tu código {result.user.used_invite_code}" if result.user.used_invite_code else "con tu enlace"
    try:
        await message.bot.send_message(
            chat_id=int(referrer.tg_id),
            text=f"🎉 {result.user.display_name} se ha unido {how}.",
        )
    except TelegramAPIError as e:
        log.info("referrer_notify_failed referrer=%s err=%s", referrer.tg_id, e)
