from __future__ import annotations
import re

_NON_DIGIT = re.compile(r"[^0-9]")


def normalize_recipient(raw: str) -> str:
    """Canonicalize a recipient handle before it reaches a send mechanism.

    Emails (anything containing '@') are only trimmed. Everything else is treated as a
    phone number: non-digits are stripped and a leading '+' is kept. Deliverability is
    left to the mechanism.
    """
    trimmed = raw.strip()
    if "@" in trimmed:
        return trimmed
    digits = _NON_DIGIT.sub("", trimmed)
    return f"+{digits}" if trimmed.startswith("+") else digits
