from __future__ import annotations

import re

_STRIP_RE = re.compile(r"[\s\-()]")
_MSISDN_RE = re.compile(r"[0-9]{12}")

COUNTRY_CODE = "254"


def normalize_phone(phone: object) -> str | None:
    """Convert a Kenyan phone number to MSISDN form (``2547XXXXXXXX``).

    Accepts ``07XXXXXXXX``, ``2547XXXXXXXX`` and ``+2547XXXXXXXX`` with any
    spaces, dashes or parentheses. Returns None for anything else.
    """

    if phone is None:
        return None

    cleaned = _STRIP_RE.sub("", str(phone))
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("0"):
        cleaned = COUNTRY_CODE + cleaned[1:]

    if not _MSISDN_RE.fullmatch(cleaned):
        return None
    return cleaned
