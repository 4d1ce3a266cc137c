import os
from dataclasses import dataclass

from refbot.core.ids import parse_tg_id
from refbot.db.urls import make_async_db_url


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class Settings:
    bot_token: str
    bot_username: str
    database_url: str

    # the single administrator (role ADMIN, admin commands, relay target)
    admin_tg_id: int

    # texts
    community_name: str = "esta comunidad"

    # referrals
    referral_chain_max_depth: int = 10
    admin_list_limit_chars: int = 4000

    # runtime
    # polling: long polling (local development)
    # webhook: aiohttp server receiving Telegram updates (production)
    run_mode: str = "polling"
    webhook_url: str | None = None
    webhook_path: str = "/telegram"
    webhook_secret: str | None = None
    webapp_host: str = "0.0.0.0"
    webapp_port: int = 8080
    run_migrations: bool = True
    # SQL statements in the log (debugging only)
    db_echo: bool = False


def _load_settings() -> Settings:
    bot_token = (os.getenv("BOT_TOKEN") or "").strip()
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is missing")

    bot_username = (os.getenv("BOT_USERNAME") or "").strip().lstrip("@")
    if not bot_username:
        raise RuntimeError("BOT_USERNAME is missing")

    database_url_raw = os.getenv("DATABASE_URL", "").strip()
    if not database_url_raw:
        raise RuntimeError("DATABASE_URL is missing")

    admin_tg_id = parse_tg_id(os.getenv("ADMIN_TG_ID"))
    if admin_tg_id is None:
        raise RuntimeError("ADMIN_TG_ID is missing or invalid (must be digits)")

    run_mode = os.getenv("RUN_MODE", "polling").strip().lower()
    if run_mode not in ("polling", "webhook"):
        raise RuntimeError("RUN_MODE must be 'polling' or 'webhook'")

    return Settings(
        bot_token=bot_token,
        bot_username=bot_username,
        database_url=make_async_db_url(database_url_raw),
        admin_tg_id=admin_tg_id,
        community_name=(os.getenv("COMMUNITY_NAME") or "esta comunidad").strip(),
        referral_chain_max_depth=int(os.getenv("REFERRAL_CHAIN_MAX_DEPTH", "10")),
        admin_list_limit_chars=int(os.getenv("ADMIN_LIST_LIMIT_CHARS", "4000")),
        run_mode=run_mode,
        webhook_url=(os.getenv("WEBHOOK_URL") or "").strip() or None,
        webhook_path=os.getenv("WEBHOOK_PATH", "/telegram").strip(),
        webhook_secret=(os.getenv("WEBHOOK_SECRET") or "").strip() or None,
        webapp_host=os.getenv("WEBAPP_HOST", "0.0.0.0").strip(),
        webapp_port=int(os.getenv("WEBAPP_PORT") or os.getenv("PORT") or "8080"),
        run_migrations=_env_bool("RUN_MIGRATIONS", True),
        db_echo=_env_bool("DB_ECHO", False),
    )


settings = _load_settings()
