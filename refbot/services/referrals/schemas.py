from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union

from refbot.db.models import InviteCode, User


@dataclass(frozen=True)
class Actor:
    """Telegram user an inbound event arrives for."""

    tg_id: int
    first_name: str | None = None
    username: str | None = None


# ---- payload interpretation ---------------------------------------------------

@dataclass(frozen=True)
class DirectReferrer:
    referrer: User


@dataclass(frozen=True)
class CustomCode:
    code: InviteCode
    owner: User


# None means the payload proposes no attribution.
PayloadInterpretation = Union[DirectReferrer, CustomCode, None]


@dataclass(frozen=True)
class UpsertResult:
    user: User
    is_new_user: bool
    referral_applied: bool
    # Referrer credited by this call (direct referrer or code owner); None when
    # nothing was applied, even if the user was attributed earlier.
    referrer: User | None = None


# ---- ancestry ---------------------------------------------------------------

class ChainEnd(str, enum.Enum):
    ROOT = "ROOT"
    BROKEN_LINK = "BROKEN_LINK"
    DEPTH_LIMIT = "DEPTH_LIMIT"


@dataclass(frozen=True)
class AncestorEntry:
    tg_id: int
    first_name: str | None
    username: str | None

    @classmethod
    def from_user(cls, user: User) -> "AncestorEntry":
        return cls(tg_id=int(user.tg_id), first_name=user.first_name, username=user.tg_username)

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or f"Usuario {self.tg_id}"


@dataclass(frozen=True)
class AncestryChain:
    ancestors: list[AncestorEntry] = field(default_factory=list)
    end: ChainEnd = ChainEnd.ROOT
    # referrer id that has no stored user (only for BROKEN_LINK)
    missing_tg_id: int | None = None
