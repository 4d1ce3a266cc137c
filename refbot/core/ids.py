import re

# users.tg_id is a signed BIGINT
TG_ID_MAX = 2**63 - 1
# INTEGER columns (invite_codes.max_uses)
INT32_MAX = 2**31 - 1

# ASCII only: str.isdigit() also accepts "²" or "①", which int() rejects
_DIGITS_RE = re.compile(r"[0-9]+")


def parse_uint(raw: str | None, *, max_value: int) -> int | None:
    """Non-negative decimal integer up to max_value, else None."""
    s = (raw or "").strip()
    if not _DIGITS_RE.fullmatch(s) or len(s) > len(str(max_value)):
        return None
    n = int(s)
    return n if n <= max_value else None


def parse_tg_id(raw: str | None) -> int | None:
    n = parse_uint(raw, max_value=TG_ID_MAX)
    return n or None
