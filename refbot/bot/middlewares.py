from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import Message, TelegramObject, Update

from refbot.bot.auth import is_admin

log = logging.getLogger(__name__)

Handler = Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]]


class CorrelationIdMiddleware(BaseMiddleware):
    """Puts corr_id, update_id and tg_id into handler data for log extras.

    Also logs how long the update took at DEBUG.
    """

    async def __call__(self, handler: Handler, event: TelegramObject, data: Dict[str, Any]) -> Any:
        update: Update | None = data.get("event_update")
        if update:
            data["corr_id"] = f"u{update.update_id}"
            data["update_id"] = update.update_id
        from_user = getattr(event, "from_user", None)
        if from_user:
            data["tg_id"] = from_user.id

        started = time.monotonic()
        try:
            return await handler(event, data)
        finally:
            log.debug(
                "update_handled ms=%d",
                (time.monotonic() - started) * 1000,
                extra={"corr_id": data.get("corr_id"), "tg_id": data.get("tg_id")},
            )


class AdminOnlyMiddleware(BaseMiddleware):
    """Lets only the configured admin reach the handlers of a router."""

    async def __call__(self, handler: Handler, event: TelegramObject, data: Dict[str, Any]) -> Any:
        from_user = getattr(event, "from_user", None)
        if from_user and is_admin(from_user.id):
            return await handler(event, data)

        log.info(
            "admin_command_denied tg_id=%s",
            from_user.id if from_user else None,
            extra={"corr_id": data.get("corr_id")},
        )
        if isinstance(event, Message):
            await event.answer("Lo siento, este comando solo está disponible para administradores.")
        return None
