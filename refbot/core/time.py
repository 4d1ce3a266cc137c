from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # asyncpg returns aware datetimes; naive values come from tests and sqlite tooling
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def fmt_date(dt: datetime | None) -> str:
    if not dt:
        return "—"
    return as_utc(dt).strftime("%d/%m/%Y")
