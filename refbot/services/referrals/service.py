from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from refbot.core.ids import parse_tg_id
from refbot.core.time import utcnow
from refbot.db.models import User, UserRole
from refbot.services.referrals.errors import InviteCodeUnavailable
from refbot.services.referrals.invite_codes import CODE_RE
from refbot.services.referrals.schemas import (
    Actor,
    AncestorEntry,
    AncestryChain,
    ChainEnd,
    CustomCode,
    DirectReferrer,
    PayloadInterpretation,
    UpsertResult,
)
from refbot.services.referrals.storage import ReferralStorage

log = logging.getLogger(__name__)

DEFAULT_CHAIN_MAX_DEPTH = 10


def _role_for(tg_id: int, admin_id: int) -> UserRole:
    return UserRole.ADMIN if int(tg_id) == int(admin_id) else UserRole.USER


class ReferralService:
    async def interpret_payload(
        self, storage: ReferralStorage, *, actor_tg_id: int, payload: str | None
    ) -> PayloadInterpretation:
        """Turn a /start payload into an attribution candidate.

        Tries a direct referral (payload is a user id) first and an invite
        code second. Anything unusable yields None, never an error.
        """
        if not payload or not payload.strip():
            return None

        referrer_id = parse_tg_id(payload)
        if referrer_id is not None:
            if referrer_id == int(actor_tg_id):
                log.info("referral_self_rejected tg_id=%s", actor_tg_id)
            else:
                referrer = await storage.get_user(referrer_id)
                if referrer is not None:
                    return DirectReferrer(referrer=referrer)
                log.info("referral_referrer_not_found tg_id=%s referrer=%s", actor_tg_id, referrer_id)

        # codes are created within CODE_RE, nothing else can match
        code = await storage.get_invite_code(payload) if CODE_RE.fullmatch(payload) else None
        if code is None:
            log.info("referral_payload_ignored tg_id=%s payload=%r", actor_tg_id, payload)
            return None
        if not code.is_usable(utcnow()):
            log.info("invite_code_not_usable tg_id=%s code=%s", actor_tg_id, code.code)
            return None
        if int(code.owner_tg_id) == int(actor_tg_id):
            log.info("invite_code_self_rejected tg_id=%s code=%s", actor_tg_id, code.code)
            return None
        owner = await storage.get_user(code.owner_tg_id)
        if owner is None:
            log.warning("invite_code_owner_missing code=%s owner=%s", code.code, code.owner_tg_id)
            return None
        return CustomCode(code=code, owner=owner)

    async def resolve(
        self,
        storage: ReferralStorage,
        *,
        actor: Actor,
        payload: str | None,
        admin_id: int,
    ) -> UpsertResult:
        """Register or refresh `actor` and attribute a referral at most once.

        The user write and, for invite codes, the use-counter increment run in
        a single storage.run_atomically unit.
        """
        role = _role_for(actor.tg_id, admin_id)
        candidate = await self.interpret_payload(storage, actor_tg_id=actor.tg_id, payload=payload)

        async def _upsert() -> UpsertResult:
            now = utcnow()
            existing = await storage.get_user(actor.tg_id, lock=True)
            profile = {
                "first_name": actor.first_name,
                "tg_username": actor.username,
                "role": role,
                "updated_at": now,
            }

            # first attribution wins, whatever the payload kind
            referral = None
            if candidate is not None and (existing is None or not existing.is_referred):
                referral = await self._consume(storage, candidate, now)

            if existing is None:
                user = await storage.create_user(tg_id=int(actor.tg_id), created_at=now, **profile, **(referral or {}))
            else:
                user = await storage.update_user(actor.tg_id, **profile, **(referral or {}))
            return UpsertResult(
                user=user,
                is_new_user=existing is None,
                referral_applied=referral is not None,
                referrer=_referrer_of(candidate) if referral is not None else None,
            )

        result = await storage.run_atomically(_upsert)
        if result.referral_applied:
            log.info(
                "referral_applied tg_id=%s referrer=%s code=%s new=%s",
                actor.tg_id,
                result.user.referred_by_tg_id,
                result.user.used_invite_code,
                result.is_new_user,
                extra={
                    "tg_id": actor.tg_id,
                    "referrer": result.user.referred_by_tg_id,
                    "code": result.user.used_invite_code,
                },
            )
        return result

    async def _consume(
        self, storage: ReferralStorage, candidate: DirectReferrer | CustomCode, now: datetime
    ) -> dict[str, Any] | None:
        """Referral fields for the user row; takes a code use when needed.

        None when the code was used up between lookup and increment.
        """
        if isinstance(candidate, DirectReferrer):
            return {"referred_by_tg_id": int(candidate.referrer.tg_id), "referred_at": now}
        try:
            await storage.increment_invite_code_use(candidate.code.code)
        except InviteCodeUnavailable:
            log.info("invite_code_exhausted_concurrently code=%s", candidate.code.code)
            return None
        return {
            "referred_by_tg_id": int(candidate.owner.tg_id),
            "used_invite_code": candidate.code.code,
            "referred_at": now,
        }

    async def walk_ancestry(
        self,
        storage: ReferralStorage,
        user: User,
        *,
        max_depth: int = DEFAULT_CHAIN_MAX_DEPTH,
    ) -> AncestryChain:
        """Follow referred_by upwards, nearest referrer first.

        Bounded by `max_depth` hops since storage does not prevent cycles.
        """
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1")

        ancestors: list[AncestorEntry] = []
        current = user
        while True:
            parent_id = current.referred_by_tg_id
            if parent_id is None:
                return AncestryChain(ancestors=ancestors, end=ChainEnd.ROOT)
            if len(ancestors) >= max_depth:
                log.warning("referral_chain_depth_limit tg_id=%s depth=%s", user.tg_id, max_depth)
                return AncestryChain(ancestors=ancestors, end=ChainEnd.DEPTH_LIMIT)
            parent = await storage.get_user(parent_id)
            if parent is None:
                log.warning("referral_chain_broken tg_id=%s missing=%s", current.tg_id, parent_id)
                return AncestryChain(ancestors=ancestors, end=ChainEnd.BROKEN_LINK, missing_tg_id=int(parent_id))
            ancestors.append(AncestorEntry.from_user(parent))
            current = parent


def _referrer_of(candidate: PayloadInterpretation) -> User | None:
    if isinstance(candidate, DirectReferrer):
        return candidate.referrer
    if isinstance(candidate, CustomCode):
        return candidate.owner
    return None


referral_service = ReferralService()
