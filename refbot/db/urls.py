"""DATABASE_URL normalisation.

Hosting providers hand out `postgres://` URLs. The bot needs the asyncpg
dialect, alembic needs a sync (psycopg2) one. No settings are read here so
alembic can import it without the bot's environment.
"""

_SCHEMES = ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://")


def _strip_scheme(url: str) -> str:
    url = (url or "").strip()
    for scheme in _SCHEMES:
        if url.startswith(scheme):
            return url[len(scheme) :]
    raise RuntimeError("Unsupported DATABASE_URL format")


def make_async_db_url(url: str) -> str:
    return "postgresql+asyncpg://" + _strip_scheme(url)


def make_sync_db_url(url: str) -> str:
    return "postgresql://" + _strip_scheme(url)
