"""Phone number helpers."""

import re


def normalize_phone(phone: str) -> str:
    """
    Normalize a North American number to E.164.

    10 digits get a +1 prefix, 11 digits starting with 1 get a +. Anything
    else is returned as +digits when it already had a +, unchanged otherwise.
    """
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if phone.strip().startswith("+") and digits:
        return f"+{digits}"
    return phone
