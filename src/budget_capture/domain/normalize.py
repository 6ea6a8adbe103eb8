import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from ..logging import get_logger
from .models import DATE_FORMAT

_LOG = get_logger("normalize")


def _normalize_number_string(s: str) -> str:
    """Turn '1.250,50' / '1,250.50' / '12,5' into dot-decimal text."""
    has_dot = "." in s
    has_comma = "," in s
    if has_dot and has_comma:
        if s.rfind(",") > s.rfind("."):
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if has_comma:
        if re.search(r",\d{1,2}$", s):
            return s.replace(",", ".")
        return s.replace(",", "")
    return s


def coerce_positive(value: Any) -> Optional[Decimal]:
    """Return value as a positive Decimal, or None when absent/non-numeric/<=0.

    Handles numbers and strings like '5', '5,50', '1.250,00', '12 €'.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            num = Decimal(str(value))
        except InvalidOperation:
            return None
    else:
        s = str(value).strip().replace(" ", "").replace("€", "")
        if not s:
            return None
        m = re.search(r"-?\d[\d.,]*", _normalize_number_string(s) if "," in s else s)
        if not m:
            return None
        try:
            num = Decimal(_normalize_number_string(m.group(0)))
        except InvalidOperation:
            _LOG.debug(f"Could not parse number from {value!r}")
            return None
    if not num.is_finite() or num <= 0:
        return None
    return num


def clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    s = re.sub(r"\s+", " ", value).strip()
    return s or None


def upper_text(value: Any) -> Optional[str]:
    s = clean_text(value)
    return s.upper() if s else None


def today_display(today: Optional[date] = None) -> str:
    return (today or date.today()).strftime(DATE_FORMAT)


def normalize_display_date(value: Any, today: Optional[date] = None) -> str:
    """Return the date as DD/MM/YYYY display text.

    Only unambiguous numeric forms are rewritten (D.M.YYYY, D-M-YY, YYYY-MM-DD);
    any other legible text is kept verbatim. Empty -> today.
    """
    v = clean_text(value)
    if not v:
        return today_display(today)
    m = re.fullmatch(r"(\d{4})-(\d{1,2})-(\d{1,2})", v)
    if m:
        y, mth, d = m.groups()
        return f"{int(d):02d}/{int(mth):02d}/{y}"
    m = re.fullmatch(r"(\d{1,2})[./-](\d{1,2})[./-](\d{2,4})", v)
    if m:
        d, mth, y = m.groups()
        if len(y) == 2:
            y = ("20" + y) if int(y) < 70 else ("19" + y)
        if len(y) == 4 and 1 <= int(mth) <= 12 and 1 <= int(d) <= 31:
            return f"{int(d):02d}/{int(mth):02d}/{y}"
    return v


def format_money(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}€"


def format_units(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    return format(value.normalize(), "f")
