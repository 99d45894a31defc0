"""Phone number helpers for Peruvian customer identifiers."""

import re
from typing import Optional

COUNTRY_CODE = "51"
LOCAL_DIGITS = 9


def normalize_phone(value: str) -> str:
    """Normalize a phone number to digits, adding the country code to local numbers.

    Examples:
        >>> normalize_phone("987 654 321")
        '51987654321'
        >>> normalize_phone("+51 (987) 654-321")
        '51987654321'
        >>> normalize_phone("")
        ''
    """
    if not value:
        return ""
    digits = re.sub(r"[^\d]", "", str(value).strip())
    if len(digits) == LOCAL_DIGITS and not digits.startswith(COUNTRY_CODE):
        digits = COUNTRY_CODE + digits
    return digits


def phone_variants(value: str) -> list[str]:
    """Return lookup variants of a number, with and without the country code."""
    normalized = normalize_phone(value)
    if not normalized:
        return []
    variants = [normalized]
    if normalized.startswith(COUNTRY_CODE) and len(normalized) >= LOCAL_DIGITS + 2:
        variants.append(normalized[len(COUNTRY_CODE):])
    elif len(normalized) >= LOCAL_DIGITS:
        variants.append(normalized[-LOCAL_DIGITS:])
    return list(dict.fromkeys(variants))


def is_valid_peruvian_phone(value: str) -> bool:
    digits = re.sub(r"[^\d]", "", value or "")
    if len(digits) == LOCAL_DIGITS:
        return True
    return len(digits) == LOCAL_DIGITS + 2 and digits.startswith(COUNTRY_CODE + "9")


def format_phone(value: str) -> str:
    """Format a number for display, e.g. ``+51 987 654 321``."""
    normalized = normalize_phone(value)
    if len(normalized) == LOCAL_DIGITS + 2 and normalized.startswith(COUNTRY_CODE):
        local = normalized[2:]
        return f"+{COUNTRY_CODE} {local[:3]} {local[3:6]} {local[6:]}"
    if len(normalized) == LOCAL_DIGITS:
        return f"{normalized[:3]} {normalized[3:6]} {normalized[6:]}"
    return normalized


def extract_local_phone(text: str, digits: int = LOCAL_DIGITS) -> Optional[str]:
    """Return the utterance as a local number if it is one, else None.

    Separators customers type between groups (commas, dots, dashes and
    spaces) are removed first.
    """
    cleaned = re.sub(r"[,.\s-]", "", text or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith(COUNTRY_CODE) and len(cleaned) == digits + 2:
        cleaned = cleaned[2:]
    if len(cleaned) == digits and cleaned.isdigit():
        return cleaned
    return None
