"""
Format validation for customer-entered fields.

Each field has a ``FieldRule``: a normalizer, a validator, and the
re-prompt shown when validation fails. Handlers call ``validate_field``
and either advance with the normalized value or re-prompt in place.

Usage:
    ok, value = validate_field("dni", "12345678")
    # (True, "12345678")
    ok, prompt = validate_field("dni", "12345")
    # (False, "❌ El DNI debe tener 8 dígitos...")
"""

import re
from dataclasses import dataclass
from typing import Callable

from dialogue_router.config import settings
from dialogue_router.errors import ValidationError
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.normalizer import clean_for_echo
from dialogue_router.utils import is_valid_peruvian_phone, normalize_phone

logger = get_turn_logger(__name__)

_rules = settings.validation
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _validate_name(value: str) -> bool:
    return len(value) >= _rules.min_name_length


def _validate_dni(value: str) -> bool:
    return value.isdigit() and len(value) == _rules.dni_length


def _validate_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def _validate_password(value: str) -> bool:
    return len(value) >= _rules.min_password_length


def _validate_phone(value: str) -> bool:
    return is_valid_peruvian_phone(value)


def _validate_address(value: str) -> bool:
    return len(value) >= _rules.min_address_length


def _compact(value: str) -> str:
    return re.sub(r"[\s.-]", "", value)


def _title(value: str) -> str:
    return " ".join(part.capitalize() for part in clean_for_echo(value).split())


@dataclass(frozen=True)
class FieldRule:
    """How one customer-entered field is cleaned, checked and re-prompted."""

    name: str
    display_name: str
    validator: Callable[[str], bool]
    error_prompt: str
    normalizer: Callable[[str], str] = clean_for_echo


FIELD_RULES: dict[str, FieldRule] = {
    rule.name: rule
    for rule in [
        FieldRule(
            name="name",
            display_name="nombre",
            validator=_validate_name,
            normalizer=_title,
            error_prompt=(
                f"❌ El nombre debe tener al menos {_rules.min_name_length} caracteres.\n\n"
                "Por favor, ingresa tu *nombre completo*:"
            ),
        ),
        FieldRule(
            name="dni",
            display_name="DNI",
            validator=_validate_dni,
            normalizer=_compact,
            error_prompt=(
                f"❌ El DNI debe tener {_rules.dni_length} dígitos.\n\n"
                f"Por favor, ingresa tu *DNI* ({_rules.dni_length} dígitos):"
            ),
        ),
        FieldRule(
            name="email",
            display_name="correo electrónico",
            validator=_validate_email,
            normalizer=lambda v: clean_for_echo(v).lower(),
            error_prompt=(
                "❌ El correo electrónico no es válido.\n\n"
                "Por favor, ingresa un email válido (ejemplo: nombre@correo.com):"
            ),
        ),
        FieldRule(
            name="password",
            display_name="contraseña",
            validator=_validate_password,
            normalizer=lambda v: v.strip(),
            error_prompt=(
                f"❌ La contraseña debe tener al menos {_rules.min_password_length} caracteres.\n\n"
                "Por favor, ingresa una *contraseña*:"
            ),
        ),
        FieldRule(
            name="telefono",
            display_name="teléfono",
            validator=_validate_phone,
            normalizer=normalize_phone,
            error_prompt=(
                "❌ El número de teléfono no es válido.\n\n"
                f"Por favor, ingresa un número de {_rules.phone_digits} dígitos "
                "(ejemplo: 987654321):"
            ),
        ),
        FieldRule(
            name="direccion",
            display_name="dirección",
            validator=_validate_address,
            error_prompt=(
                f"❌ La dirección debe tener al menos {_rules.min_address_length} caracteres.\n\n"
                "Por favor, ingresa una dirección completa:"
            ),
        ),
    ]
}


def clean_field(field: str, raw: str) -> str:
    """Apply only the field's normalizer, without validating."""
    return FIELD_RULES[field].normalizer(raw or "")


def validate_field(field: str, raw: str) -> tuple[bool, str]:
    """Validate ``raw`` for ``field``.

    Returns:
        (True, normalized_value) or (False, re-prompt text).
    """
    rule = FIELD_RULES[field]
    value = clean_field(field, raw)
    if not rule.validator(value):
        logger.debug("Validation failed for %s", field)
        return False, rule.error_prompt
    return True, value


def require_field(field: str, raw: str) -> str:
    """Like ``validate_field`` but raises ``ValidationError`` on bad input."""
    ok, result = validate_field(field, raw)
    if not ok:
        raise ValidationError(field, result)
    return result
