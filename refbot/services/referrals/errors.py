from __future__ import annotations


class ReferralError(Exception):
    """Base class for referral core failures."""


class StorageError(ReferralError):
    """A storage lookup or write failed; nothing from the failed unit was persisted."""


class InviteCodeUnavailable(ReferralError):
    """The code could not be consumed (disabled, expired or exhausted by a concurrent use)."""

    def __init__(self, code: str) -> None:
        super().__init__(f"invite code {code!r} is no longer usable")
        self.code = code


class InvalidInviteCode(ReferralError):
    """Admin tooling rejected a code definition."""
