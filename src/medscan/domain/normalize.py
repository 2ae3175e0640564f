import calendar
import re
from datetime import date, datetime
from typing import List, Optional, Union

from ..errors import UnparseableDateError
from ..logging import get_logger
from .models import DateOrder, Fallback, Found, NormalizedDate

_LOG = get_logger("normalize")

Instant = Union[date, datetime]

_COMPONENT = re.compile(r"\d{1,4}")


def as_date(now: Optional[Instant] = None) -> date:
    """Return the calendar date of an evaluation instant (today when omitted)."""
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def add_months(d: date, months: int) -> date:
    """Shift by calendar months; the day is clamped to the target month's end."""
    idx = d.month - 1 + months
    y = d.year + idx // 12
    m = idx % 12 + 1
    day = min(d.day, calendar.monthrange(y, m)[1])
    return date(y, m, day)


def one_year_after(now: Optional[Instant] = None) -> date:
    """Same month/day one year later; 29 February maps to 28 February."""
    today = as_date(now)
    return add_months(today, 12)


def _split_components(token: str) -> List[str]:
    has_slash = "/" in token
    has_hyphen = "-" in token
    if has_slash and has_hyphen:
        raise UnparseableDateError(token, "mixed '/' and '-' separators")
    if not (has_slash or has_hyphen):
        raise UnparseableDateError(token, "no date separator")
    parts = token.split("/" if has_slash else "-")
    if len(parts) != 3:
        raise UnparseableDateError(token, f"expected 3 components, got {len(parts)}")
    for part in parts:
        if not _COMPONENT.fullmatch(part):
            raise UnparseableDateError(token, f"non-numeric component {part!r}")
    return parts


def parse_expiry_token(token: str, order: DateOrder = DateOrder.DMY) -> date:
    """Strictly parse a raw expiry token into a calendar date.

    Slash-delimited tokens get their two-digit year expanded to 20xx.
    Hyphen-delimited tokens are taken as written, so a two-digit year there
    cannot produce a four-digit year and is rejected.

    Raises UnparseableDateError for anything that is not a valid date.
    """
    s = (token or "").strip()
    parts = _split_components(s)
    year_idx = 0 if order == DateOrder.YMD else 2
    if "/" in s and len(parts[year_idx]) == 2:
        parts[year_idx] = "20" + parts[year_idx]

    if order == DateOrder.YMD:
        y_s, m_s, d_s = parts
    else:
        d_s, m_s, y_s = parts
    if len(y_s) != 4:
        raise UnparseableDateError(s, f"year {y_s!r} is not four digits")
    try:
        return date(int(y_s), int(m_s), int(d_s))
    except ValueError as exc:
        raise UnparseableDateError(s, str(exc)) from exc


def normalize_expiry_date(
    token: Optional[str],
    order: DateOrder = DateOrder.DMY,
    now: Optional[Instant] = None,
) -> NormalizedDate:
    """Turn an optional raw expiry token into a canonical date. Never raises.

    Missing or unparseable tokens fall back to one calendar year after `now`,
    so a failed extraction never makes a record look expired.
    """
    if token is None or not token.strip():
        fallback = one_year_after(now)
        _LOG.debug(f"No expiry token; using fallback {fallback.isoformat()}")
        return NormalizedDate(Fallback(fallback, reason="not_found"))
    try:
        parsed = parse_expiry_token(token, order)
    except UnparseableDateError as exc:
        fallback = one_year_after(now)
        _LOG.warning(f"{exc}; using fallback {fallback.isoformat()}")
        return NormalizedDate(Fallback(fallback, reason="unparseable"))
    _LOG.debug(f"Expiry token {token!r} ({order.value}) -> {parsed.isoformat()}")
    return NormalizedDate(Found(parsed, source=token))
