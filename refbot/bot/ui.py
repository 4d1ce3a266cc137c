from __future__ import annotations

import logging
import re

from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from aiogram.types import Message

from refbot.core.time import fmt_date
from refbot.db.models import InviteCode, User, UserRole
from refbot.db.session import session_scope
from refbot.repo import get_user, set_last_bot_message
from refbot.services.referrals.schemas import AncestryChain, ChainEnd, UpsertResult

log = logging.getLogger(__name__)

TRUNCATED_SUFFIX = "\n\n[Lista truncada... existen más usuarios]"

# "(ID: 123)" inside the admin info card of a relayed message
_CARD_ID_RE = re.compile(r"\(ID: (\d+)\)")


def username_info(username: str | None) -> str:
    return f"@{username}" if username else "N/A"


def user_label(user: User) -> str:
    """Name (ID: 1, @handle)."""
    extra = f", @{user.tg_username}" if user.tg_username else ""
    return f"{user.display_name} (ID: {user.tg_id}{extra})"


def referral_link(bot_username: str, tg_id: int) -> str:
    return f"https://t.me/{bot_username}?start={tg_id}"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATED_SUFFIX


def start_text(result: UpsertResult) -> str:
    user = result.user
    name = user.first_name or user.tg_username or "usuario"
    referrer_name = None
    if result.referral_applied and result.referrer is not None:
        referrer_name = result.referrer.first_name or result.referrer.tg_username or "otro usuario"

    if result.is_new_user:
        text = f"¡Hola, {name}! 👋 "
        text += f"Has sido invitado/a por {referrer_name}." if referrer_name else "Te has registrado correctamente."
    else:
        text = f"¡Hola de nuevo, {name}! 👋"
        if referrer_name:
            text += f"\nAhora has quedado registrado/a como invitado/a por {referrer_name}."

    text += (
        "\nUsa /invitar para obtener tu enlace y traer a más amigos, "
        "o /mis_invitados para ver a quiénes has invitado."
    )
    if user.role == UserRole.ADMIN:
        text += "\nLos comandos de administrador están disponibles para ti."
    return text


def invite_forward_text(community_name: str, link: str) -> str:
    return (
        "¡Hola! 👋\n\n"
        f"Te estoy invitando a unirte a {community_name}. ¡Creo que te podría interesar!\n\n"
        "Usa mi enlace personal para empezar:\n"
        f"🔗 {link}\n\n"
        "¡Espero verte por allí! 😉"
    )


def my_referrals_text(referrals: list[User]) -> str:
    if not referrals:
        return "Aún no has invitado a nadie. ¡Anímate a compartir tu enlace con /invitar!"
    lines = ["👍 Estos son los usuarios que has invitado:"]
    for u in referrals:
        lines.append(f"- {u.display_name} (Se unió el: {fmt_date(u.created_at)})")
    return "\n".join(lines)


def users_overview_text(users: list[User], referrers: dict[int, User]) -> str:
    if not users:
        return "No hay usuarios registrados en la base de datos."
    parts = ["Usuarios Registrados:\n"]
    for u in users:
        if u.referred_by_tg_id is None:
            referred_by = "Nadie"
        else:
            ref = referrers.get(int(u.referred_by_tg_id))
            referred_by = user_label(ref) if ref else f"Usuario eliminado (ID: {u.referred_by_tg_id})"
        if u.used_invite_code:
            referred_by += f" [código {u.used_invite_code}]"
        parts.append(
            f"ID: {u.tg_id}\n"
            f"  Nombre: {u.first_name or u.tg_username or 'N/A'}\n"
            f"  Username: {username_info(u.tg_username)}\n"
            f"  Rol: {u.role.value if isinstance(u.role, UserRole) else u.role}\n"
            f"  Invitado por: {referred_by}\n"
            f"  Registrado: {fmt_date(u.created_at)}\n"
        )
    return "\n".join(parts)


def chain_text(user: User, chain: AncestryChain) -> str:
    """Ancestry as 'X fue invitado/a por Y' lines, nearest referrer first."""
    if not chain.ancestors and chain.end == ChainEnd.ROOT:
        return "Cadena de invitación: nadie lo/la invitó."

    lines = ["Cadena de invitación:"]
    child_name = user.display_name
    for a in chain.ancestors:
        lines.append(f"- {child_name} fue invitado/a por {a.display_name} (ID: {a.tg_id}, Username: {username_info(a.username)})")
        child_name = a.display_name

    if chain.end == ChainEnd.BROKEN_LINK:
        lines.append(f"- {child_name} fue invitado/a por un usuario que ya no existe (ID: {chain.missing_tg_id})")
    elif chain.end == ChainEnd.DEPTH_LIMIT:
        lines.append(f"- … cadena cortada tras {len(chain.ancestors)} niveles")
    return "\n".join(lines)


def user_details_text(user: User, chain: AncestryChain, referrals: list[User]) -> str:
    text = (
        f"Detalles del usuario: {user.display_name} "
        f"(ID: {user.tg_id}, Username: {username_info(user.tg_username)}):\n\n"
    )
    if user.used_invite_code:
        text += f"Código de invitación usado: {user.used_invite_code}\n"
    text += chain_text(user, chain) + "\n"

    text += "\nUsuarios que ha invitado:\n"
    if referrals:
        for r in referrals:
            text += (
                f"- {r.display_name} (ID: {r.tg_id}, Username: {username_info(r.tg_username)}, "
                f"Se unió: {fmt_date(r.created_at)})\n"
            )
    else:
        text += "- Ninguno\n"
    return text


def invite_codes_text(codes: list[InviteCode]) -> str:
    if not codes:
        return "No hay códigos de invitación. Crea uno con /admin_nuevo_codigo <código> [usos] [días]."
    lines = ["Códigos de invitación:"]
    for c in codes:
        state = "activo" if c.is_usable() else ("desactivado" if not c.enabled else "agotado/caducado")
        uses = f"{c.current_uses}/{c.max_uses if c.max_uses is not None else '∞'}"
        expires = fmt_date(c.expires_at) if c.expires_at else "sin caducidad"
        lines.append(f"- {c.code}: {state}, usos {uses}, caduca {expires}, dueño {c.owner_tg_id}")
    return "\n".join(lines)


def relay_card_text(user: User) -> str:
    text = f"Nuevo mensaje recibido de: {user.first_name or 'Usuario'} (ID: {user.tg_id})"
    if user.tg_username:
        text += f"\nUsername: @{user.tg_username}"
    else:
        text += "\n(El usuario no tiene un username público)"
    return text


def parse_relay_card_id(text: str | None) -> int | None:
    m = _CARD_ID_RE.search(text or "")
    return int(m.group(1)) if m else None


async def send_replacing(message: Message, text: str, *, tag: str, **kwargs) -> Message:
    """Answer with `text`, deleting the previous bot message that carried the same tag."""
    tg_id = message.from_user.id
    async with session_scope() as session:
        user = await get_user(session, tg_id)
        prev_id = user.last_bot_message_id if user and user.last_bot_message_tag == tag else None

    if prev_id:
        try:
            await message.bot.delete_message(chat_id=message.chat.id, message_id=prev_id)
        except (TelegramBadRequest, TelegramForbiddenError) as e:
            # too old (48h) or already deleted
            log.info("last_message_delete_failed tg_id=%s message_id=%s err=%s", tg_id, prev_id, e)

    sent = await message.answer(text, **kwargs)

    async with session_scope() as session:
        await set_last_bot_message(session, tg_id, message_id=sent.message_id, tag=tag)
        await session.commit()
    return sent
