from __future__ import annotations

import logging

from aiogram import F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import Message, MessageOriginUser
from sqlalchemy.exc import SQLAlchemyError

from refbot.bot.auth import is_admin
from refbot.bot.keyboards import kb_admin_contact
from refbot.bot.ui import parse_relay_card_id, relay_card_text
from refbot.core.config import settings
from refbot.db.session import session_scope
from refbot.repo import get_user

log = logging.getLogger(__name__)

router = Router()


def _relay_target(message: Message) -> int | None:
    """tg_id of the user behind the bot message the admin replied to.

    Either the forwarded user message (when the sender allows forward
    attribution) or the info card the bot sends next to it.
    """
    replied = message.reply_to_message
    if replied is None or replied.from_user is None:
        return None
    if replied.from_user.id != message.bot.id:
        return None
    if isinstance(replied.forward_origin, MessageOriginUser):
        return replied.forward_origin.sender_user.id
    return parse_relay_card_id(replied.text)


@router.message(F.text, F.reply_to_message, lambda m: m.from_user and is_admin(m.from_user.id))
async def on_admin_reply(message: Message) -> None:
    target_id = _relay_target(message)
    if target_id is None:
        return

    try:
        await message.bot.send_message(chat_id=target_id, text=f"Respuesta del Administrador:\n\n{message.text}")
    except TelegramAPIError as e:
        log.info("admin_relay_reply_failed target=%s err=%s", target_id, e)
        await message.answer("Error al enviar la respuesta. Es posible que el usuario haya bloqueado al bot.")
        return
    await message.answer(f"Respuesta enviada a ID: {target_id}.")


@router.message(F.text, ~F.text.startswith("/"))
async def on_user_text(message: Message) -> None:
    """Forward plain text of registered users to the admin with an info card."""
    sender_id = message.from_user.id
    if is_admin(sender_id):
        return

    try:
        async with session_scope() as session:
            user = await get_user(session, sender_id)
    except SQLAlchemyError:
        log.exception("relay_lookup_failed", extra={"tg_id": sender_id})
        await message.answer("Ocurrió un error al enviar tu mensaje al administrador.")
        return
    if not user:
        log.info("relay_unregistered_sender tg_id=%s", sender_id)
        return

    try:
        await message.forward(chat_id=settings.admin_tg_id)
        await message.bot.send_message(
            chat_id=settings.admin_tg_id,
            text=relay_card_text(user),
            reply_markup=kb_admin_contact(user),
        )
    except TelegramAPIError as e:
        log.warning("relay_to_admin_failed tg_id=%s err=%s", sender_id, e)
