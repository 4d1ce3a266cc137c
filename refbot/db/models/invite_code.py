from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Integer, String, func, true
from sqlalchemy.orm import Mapped, mapped_column

from refbot.core.time import as_utc, utcnow
from refbot.db.base import Base


class InviteCode(Base):
    """Admin-issued reusable invite token.

    Using it in /start credits the code owner as the referrer.
    """

    __tablename__ = "invite_codes"
    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_invite_codes_uses_within_max",
        ),
    )

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_tg_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true(), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)  # NULL = unlimited
    current_uses: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def is_usable(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if not self.enabled:
            return False
        if self.expires_at is not None and as_utc(self.expires_at) <= now:
            return False
        if self.max_uses is not None and self.current_uses >= self.max_uses:
            return False
        return True

    def __repr__(self) -> str:
        return f"<InviteCode(code={self.code}, uses={self.current_uses}/{self.max_uses or '∞'})>"
