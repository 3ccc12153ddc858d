"""Shipping date parsing for natural-language date expressions."""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

FALLBACK_DAYS = 14

_RELATIVE = re.compile(
    r"\b(?:tra|fra|in)\s+(\d+)\s+"
    r"(giorn[oi]|settiman[ae]|mes[ei]|days?|weeks?|months?)\b"
)
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_EU_DATE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})")

_NAMED_OFFSETS = {
    "domani": relativedelta(days=1),
    "tomorrow": relativedelta(days=1),
    "dopodomani": relativedelta(days=2),
    "day after tomorrow": relativedelta(days=2),
    "the day after tomorrow": relativedelta(days=2),
}

_NAMED_PHRASES = (
    ("prossima settimana", relativedelta(weeks=1)),
    ("next week", relativedelta(weeks=1)),
    ("prossimo mese", relativedelta(months=1)),
    ("next month", relativedelta(months=1)),
)


def _offset_for(amount: int, unit: str) -> relativedelta:
    if unit.startswith(("giorn", "day")):
        return relativedelta(days=amount)
    if unit.startswith(("settiman", "week")):
        return relativedelta(weeks=amount)
    return relativedelta(months=amount)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_known(text: str, reference: datetime) -> Optional[datetime]:
    lowered = text.lower().strip()

    match = _RELATIVE.search(lowered)
    if match:
        return reference + _offset_for(int(match.group(1)), match.group(2))

    if lowered in _NAMED_OFFSETS:
        return reference + _NAMED_OFFSETS[lowered]

    for phrase, offset in _NAMED_PHRASES:
        if phrase in lowered:
            return reference + offset

    match = _ISO_DATE.search(text)
    if match and "t" not in lowered[match.end():match.end() + 1]:
        year, month, day = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            pass

    match = _EU_DATE.search(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            pass

    if "T" in text:
        try:
            return _as_utc(date_parser.isoparse(text.strip()))
        except ValueError:
            pass

    return None


def parse_shipping_date(text: str, reference: Optional[datetime] = None) -> datetime:
    """Resolve a shipping date expression to an absolute UTC timestamp.

    Understands Italian and English relative offsets ("tra 2 settimane",
    "in 3 days"), named offsets ("domani", "next week"), YYYY-MM-DD,
    DD/MM/YYYY, DD-MM-YYYY and full ISO timestamps. Anything else
    resolves to reference + 14 days.

    Args:
        text: Date expression as written by the user.
        reference: Point in time relative offsets are computed from,
            defaults to now (UTC).

    Returns:
        Timezone-aware UTC datetime.

    Examples:
        >>> ref = datetime(2026, 1, 10, tzinfo=timezone.utc)
        >>> parse_shipping_date("tra 2 settimane", ref).date().isoformat()
        '2026-01-24'
    """
    reference = _as_utc(reference or datetime.now(timezone.utc))
    parsed = _parse_known(text or "", reference)
    if parsed is None:
        logger.warning(f"SHIPPING_DATE: Unrecognized date '{text}', using +{FALLBACK_DAYS} days")
        return reference + timedelta(days=FALLBACK_DAYS)
    return parsed


def to_iso(value: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return _as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_display(value: datetime) -> str:
    """Readable date, e.g. '1 February 2026'."""
    return f"{value.day} {value.strftime('%B %Y')}"
