from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.types import ErrorEvent
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from refbot.bot.handlers.admin import router as admin_router
from refbot.bot.handlers.referrals import router as referrals_router
from refbot.bot.handlers.relay import router as relay_router
from refbot.bot.handlers.start import router as start_router
from refbot.bot.middlewares import CorrelationIdMiddleware
from refbot.core.config import settings

log = logging.getLogger(__name__)


async def on_error(event: ErrorEvent) -> bool:
    update = event.update
    log.error(
        "update_failed update_id=%s type=%s",
        update.update_id,
        update.event_type,
        exc_info=event.exception,
        extra={"update_id": update.update_id},
    )
    # no reply: in webhook mode Telegram would redeliver on errors
    return True


def build_dispatcher() -> Dispatcher:
    dp = Dispatcher()
    dp.message.middleware(CorrelationIdMiddleware())
    dp.callback_query.middleware(CorrelationIdMiddleware())

    dp.include_router(start_router)
    dp.include_router(referrals_router)
    dp.include_router(admin_router)
    # plain-text relay must stay last
    dp.include_router(relay_router)

    dp.errors.register(on_error)
    return dp


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _run_webhook(bot: Bot, dp: Dispatcher) -> None:
    if not settings.webhook_url:
        raise RuntimeError("WEBHOOK_URL is required when RUN_MODE=webhook")

    app = web.Application()
    app.router.add_get("/health", health_handler)
    SimpleRequestHandler(
        dispatcher=dp,
        bot=bot,
        secret_token=settings.webhook_secret,
    ).register(app, path=settings.webhook_path)
    setup_application(app, dp, bot=bot)

    await bot.set_webhook(
        url=settings.webhook_url.rstrip("/") + settings.webhook_path,
        secret_token=settings.webhook_secret,
        allowed_updates=dp.resolve_used_update_types(),
    )

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.webapp_host, port=settings.webapp_port)
    await site.start()
    log.info("bot_webhook_started host=%s port=%s path=%s", settings.webapp_host, settings.webapp_port, settings.webhook_path)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def run_bot() -> None:
    bot = Bot(token=settings.bot_token)
    dp = build_dispatcher()

    try:
        if settings.run_mode == "webhook":
            await _run_webhook(bot, dp)
        else:
            # a leftover webhook blocks getUpdates
            await bot.delete_webhook(drop_pending_updates=False)
            log.info("bot_start mode=polling")
            await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()
