from refbot.core.config import settings


def is_admin(tg_id: int) -> bool:
    return int(tg_id) == int(settings.admin_tg_id)
