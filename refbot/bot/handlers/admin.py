from __future__ import annotations

import logging

from aiogram import Router
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from sqlalchemy.exc import SQLAlchemyError

from refbot.bot.middlewares import AdminOnlyMiddleware
from refbot.bot.ui import (
    invite_codes_text,
    truncate,
    user_details_text,
    users_overview_text,
)
from refbot.core.config import settings
from refbot.core.ids import INT32_MAX, parse_uint
from refbot.db.session import session_scope
from refbot.repo import find_user, get_users_by_ids, list_direct_referrals, list_users
from refbot.services.referrals.errors import InvalidInviteCode, ReferralError
from refbot.services.referrals.invite_codes import invite_code_service
from refbot.services.referrals.service import referral_service
from refbot.services.referrals.storage import SqlReferralStorage

log = logging.getLogger(__name__)

router = Router()
router.message.middleware(AdminOnlyMiddleware())

# storage failures surfaced at the command boundary
DB_ERRORS = (ReferralError, SQLAlchemyError)


@router.message(Command("admin_ver_usuarios", "admin_view_users"))
async def cmd_admin_view_users(message: Message) -> None:
    try:
        async with session_scope() as session:
            users = await list_users(session)
            referrer_ids = {int(u.referred_by_tg_id) for u in users if u.referred_by_tg_id is not None}
            referrers = await get_users_by_ids(session, referrer_ids)
    except DB_ERRORS:
        log.exception("admin_view_users_failed")
        await message.answer("Ocurrió un error al obtener los usuarios.")
        return

    await message.answer(truncate(users_overview_text(users, referrers), settings.admin_list_limit_chars))


@router.message(Command("admin_info_usuario", "admin_view_referrals"))
async def cmd_admin_user_info(message: Message, command: CommandObject) -> None:
    target = (command.args or "").split(maxsplit=1)
    if not target:
        await message.answer(
            "Por favor, proporciona un ID de Usuario o @username. Uso: /admin_info_usuario <ID_o_@USERNAME>"
        )
        return
    identifier = target[0]

    try:
        async with session_scope() as session:
            user = await find_user(session, identifier)
            if not user:
                await message.answer(f'Usuario "{identifier}" no encontrado.')
                return
            chain = await referral_service.walk_ancestry(
                SqlReferralStorage(session),
                user,
                max_depth=settings.referral_chain_max_depth,
            )
            referrals = await list_direct_referrals(session, user.tg_id)
    except DB_ERRORS:
        log.exception("admin_user_info_failed identifier=%s", identifier)
        await message.answer("Ocurrió un error al obtener los detalles del usuario.")
        return

    await message.answer(truncate(user_details_text(user, chain, referrals), settings.admin_list_limit_chars))


@router.message(Command("responder", "reply"))
async def cmd_admin_reply(message: Message, command: CommandObject) -> None:
    parts = (command.args or "").split(maxsplit=1)
    if len(parts) < 2:
        await message.answer("Uso: /responder <ID_o_@username_Usuario> <mensaje>")
        return
    identifier, text = parts

    try:
        async with session_scope() as session:
            user = await find_user(session, identifier)
    except DB_ERRORS:
        log.exception("admin_reply_lookup_failed identifier=%s", identifier)
        await message.answer("Ocurrió un error al intentar enviar el mensaje.")
        return
    if not user:
        await message.answer(
            f'No se encontró al usuario "{identifier}". Verifica el ID o username (prueba con @ si es username).'
        )
        return

    try:
        await message.bot.send_message(chat_id=int(user.tg_id), text=f"Respuesta del Administrador:\n\n{text}")
    except TelegramForbiddenError:
        await message.answer(f"No se pudo enviar el mensaje: {identifier} ha bloqueado al bot.")
        return
    except TelegramBadRequest as e:
        log.info("admin_reply_failed target=%s err=%s", user.tg_id, e)
        await message.answer(f"No se pudo enviar el mensaje. Es posible que {identifier} haya bloqueado al bot o no exista.")
        return

    target = f"@{user.tg_username}" if user.tg_username else str(user.tg_id)
    await message.answer(f"Tu mensaje ha sido enviado a {target}.")


# ==========================
# Invite codes
# ==========================

@router.message(Command("admin_codigos", "admin_codes"))
async def cmd_admin_codes(message: Message) -> None:
    try:
        async with session_scope() as session:
            codes = await invite_code_service.list_all(session)
    except DB_ERRORS:
        log.exception("admin_codes_failed")
        await message.answer("Ocurrió un error al obtener los códigos de invitación.")
        return
    await message.answer(truncate(invite_codes_text(codes), settings.admin_list_limit_chars))


def _opt_int(raw: str | None) -> int | None:
    """Optional numeric argument; '-' or missing means no limit."""
    if raw is None or raw == "-":
        return None
    n = parse_uint(raw, max_value=INT32_MAX)
    if n is None:
        raise InvalidInviteCode(f"'{raw}' no es un número válido")
    return n


@router.message(Command("admin_nuevo_codigo", "admin_new_code"))
async def cmd_admin_new_code(message: Message, command: CommandObject) -> None:
    args = (command.args or "").split()
    if not args or len(args) > 3:
        await message.answer(
            "Uso: /admin_nuevo_codigo <código> [usos_máximos|-] [días_de_validez|-]\n"
            "Ejemplo: /admin_nuevo_codigo VERANO 50 30"
        )
        return

    try:
        max_uses = _opt_int(args[1] if len(args) > 1 else None)
        ttl_days = _opt_int(args[2] if len(args) > 2 else None)
        async with session_scope() as session:
            item = await invite_code_service.create(
                session,
                code=args[0],
                owner_tg_id=message.from_user.id,
                max_uses=max_uses,
                ttl_days=ttl_days,
            )
            await session.commit()
    except InvalidInviteCode as e:
        await message.answer(f"❌ {e}")
        return
    except DB_ERRORS:
        log.exception("admin_new_code_failed code=%s", args[0])
        await message.answer("Ocurrió un error al crear el código de invitación.")
        return

    link = f"https://t.me/{settings.bot_username}?start={item.code}"
    await message.answer(f"✅ Código {item.code} creado.\nEnlace: {link}")


@router.message(Command("admin_desactivar_codigo", "admin_disable_code"))
async def cmd_admin_disable_code(message: Message, command: CommandObject) -> None:
    code = (command.args or "").strip()
    if not code:
        await message.answer("Uso: /admin_desactivar_codigo <código>")
        return

    try:
        async with session_scope() as session:
            ok = await invite_code_service.disable(session, code=code)
            await session.commit()
    except DB_ERRORS:
        log.exception("admin_disable_code_failed code=%s", code)
        await message.answer("Ocurrió un error al desactivar el código de invitación.")
        return

    if not ok:
        await message.answer(f'No existe el código "{code}".')
        return
    await message.answer(f"✅ Código {code} desactivado.")
