from urllib.parse import quote

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from refbot.db.models import User


def kb_invite_share(referral_link: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="📤 Compartir enlace", url=f"https://t.me/share/url?url={quote(referral_link, safe='')}")
    b.adjust(1)
    return b.as_markup()


def kb_admin_contact(user: User) -> InlineKeyboardMarkup:
    # one row: direct chat (only with a public username) + profile by id
    b = InlineKeyboardBuilder()
    if user.tg_username:
        b.button(text=f"💬 Chat Directo (@{user.tg_username})", url=f"https://t.me/{user.tg_username}")
    b.button(text=f"👤 Ver Perfil (ID: {user.tg_id})", url=f"tg://user?id={user.tg_id}")
    return b.as_markup()
