from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from refbot.db.base import Base


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    tg_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    # Telegram profile snapshot, refreshed on every /start
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tg_username: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        default=UserRole.USER,
        server_default=UserRole.USER.value,
        nullable=False,
    )

    # ==========================
    # Referrals
    # ==========================
    # Who invited this user. Plain column, not a FK: a deleted referrer must
    # show up as a broken link in the ancestry chain.
    referred_by_tg_id: Mapped[int | None] = mapped_column(BigInteger, index=True, nullable=True)
    # Custom invite code consumed when the referral was attributed.
    used_invite_code: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    referred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Last message the bot sent to this user (delete-and-replace screens).
    last_bot_message_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_bot_message_tag: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def display_name(self) -> str:
        return self.first_name or self.tg_username or f"Usuario {self.tg_id}"

    @property
    def is_referred(self) -> bool:
        return self.referred_by_tg_id is not None or self.used_invite_code is not None
