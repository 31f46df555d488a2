import re
from datetime import date
from typing import Optional

import phonenumbers

from helpers.config import PHONE_DEFAULT_REGION, PHONE_NATIONAL_NUMBER_LENGTH


def normalize_phone(raw: Optional[str], default_region: str = PHONE_DEFAULT_REGION) -> str:
    """
    '042 123 456' -> '+6142123456', '(02) 9876-5432' -> '+61298765432',
    '61 412 345 678' -> '+61412345678'. Length is not validated; a malformed
    number passes through and fails at the provider.
    """
    s = (raw or "").strip()
    if not s:
        return ""
    has_plus = s.startswith("+")
    digits = re.sub(r"\D", "", s)
    if not digits:
        return ""

    country_code = str(phonenumbers.country_code_for_region(default_region))

    if digits.startswith(country_code):
        # bare '61...' only counts as international when long enough for a full number
        if has_plus or len(digits) >= len(country_code) + PHONE_NATIONAL_NUMBER_LENGTH:
            return "+" + digits
    if has_plus:
        return "+" + digits
    if digits.startswith("0"):
        return f"+{country_code}{digits[1:]}"
    return f"+{country_code}{digits}"


def phone_variants(raw: Optional[str]) -> list[str]:
    # stored numbers are free-form, so look up both as-typed and canonical
    out = []
    for v in ((raw or "").strip(), normalize_phone(raw)):
        if v and v not in out:
            out.append(v)
    return out


def normalize_date_iso(raw: Optional[str], default: Optional[date] = None) -> str:
    # "26th of October 2025" -> "2025-10-26"
    from dateutil import parser
    fallback = (default or date.today()).isoformat()
    if not raw or not str(raw).strip():
        return fallback
    try:
        dt = parser.parse(str(raw), dayfirst=True, fuzzy=True)
        return dt.strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        return fallback


def normalize_time_hhmm(raw: Optional[str]) -> Optional[str]:
    # Accept "10 a.m.", "10am", "10:00 am", "10:00" etc. -> "10:00"
    if not raw:
        return None
    s = str(raw).lower().strip().replace(".", "")
    m = re.match(r"^(\d{1,2})(?::?(\d{2}))?\s*(am|pm)?$", s)
    if not m:
        return str(raw)
    hh = int(m.group(1))
    mm = int(m.group(2) or "0")
    ampm = m.group(3)
    if ampm == "pm" and hh != 12: hh += 12
    if ampm == "am" and hh == 12: hh = 0
    return f"{hh:02d}:{mm:02d}"
