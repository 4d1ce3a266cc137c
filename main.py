"""
Referral bot entrypoint.
Required env vars:
 - BOT_TOKEN
 - BOT_USERNAME (used to build referral links)
 - ADMIN_TG_ID
 - DATABASE_URL
Optional: RUN_MODE (polling | webhook), WEBHOOK_URL, WEBHOOK_PATH, WEBHOOK_SECRET,
WEBAPP_HOST, WEBAPP_PORT, COMMUNITY_NAME, REFERRAL_CHAIN_MAX_DEPTH,
ADMIN_LIST_LIMIT_CHARS, RUN_MIGRATIONS, DB_ECHO, LOG_LEVEL, LOG_FORMAT
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys

from refbot.bot.app import run_bot
from refbot.core.config import settings
from refbot.core.logging import setup_logging
from refbot.db.session import dispose_engine, init_engine

log = logging.getLogger(__name__)


def _run_alembic_upgrade_head_best_effort() -> None:
    """Apply migrations at boot (best-effort)."""
    try:
        subprocess.check_call([sys.executable, "-m", "alembic", "upgrade", "head"])
        log.info("alembic_upgrade_head_ok")
    except (subprocess.CalledProcessError, OSError):
        log.exception("alembic_upgrade_head_failed")


async def main() -> None:
    setup_logging()
    if settings.run_migrations:
        _run_alembic_upgrade_head_best_effort()
    init_engine(settings.database_url, echo=settings.db_echo)

    log.info("bot_boot mode=%s admin=%s", settings.run_mode, settings.admin_tg_id)
    try:
        await run_bot()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
