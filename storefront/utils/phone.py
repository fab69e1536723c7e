# storefront/utils/phone.py
import re

MIN_SUFFIX_DIGITS = 7


def phone_digits(raw: str | None) -> str:
    return re.sub(r"\D", "", raw or "")


def phones_match(stored: str, given: str) -> bool:
    """Same digits, or the same number with and without a country prefix."""
    a, b = phone_digits(stored), phone_digits(given)
    if not a or not b:
        return False
    if a == b:
        return True
    shorter, longer = sorted((a, b), key=len)
    return len(shorter) >= MIN_SUFFIX_DIGITS and longer.endswith(shorter)
