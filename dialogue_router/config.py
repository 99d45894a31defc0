"""
Centralized configuration with environment variable overrides.

Intent thresholds, AI timeouts, session limits and input validation
rules are all configurable here. Scoring and routing code reads these
values instead of embedding literals.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from dialogue_router.logging_context import attach_to_handlers, get_turn_logger

load_dotenv()

logger = get_turn_logger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BusinessConfig:
    """Store-specific settings shown to customers."""

    name: str = os.getenv("STORE_NAME", "Tienda Kardex")
    currency: str = os.getenv("CURRENCY_SYMBOL", "S/")
    yape_number: str = os.getenv("YAPE_NUMBER", "51956216912")
    plin_number: str = os.getenv("PLIN_NUMBER", "51956216912")
    wallet_holder: str = os.getenv("WALLET_HOLDER", "Tu Negocio")


@dataclass(frozen=True)
class IntentConfig:
    """Scoring constants for the intent detection cascade."""

    threshold: float = _safe_float("INTENT_THRESHOLD", "0.6")
    contextual_bonus: float = _safe_float("INTENT_CONTEXTUAL_BONUS", "0.3")
    delegated_confidence: float = _safe_float("INTENT_DELEGATED_CONFIDENCE", "0.7")
    no_match_confidence: float = _safe_float("INTENT_NO_MATCH_CONFIDENCE", "0.3")
    phonetic_weight: float = _safe_float("PHONETIC_WEIGHT", "0.3")
    phonetic_similarity: float = _safe_float("PHONETIC_SIMILARITY", "0.85")
    fuzzy_similarity: float = _safe_float("FUZZY_SIMILARITY", "0.7")


@dataclass(frozen=True)
class AIConfig:
    """LLM collaborator settings and call bounds."""

    model: str = os.getenv("AI_MODEL", "phi3:mini")
    order_parse_timeout_sec: float = _safe_float("AI_ORDER_PARSE_TIMEOUT", "30.0")
    light_timeout_sec: float = _safe_float("AI_LIGHT_TIMEOUT", "5.0")
    reply_timeout_sec: float = _safe_float("AI_REPLY_TIMEOUT", "15.0")
    temperature: float = _safe_float("AI_TEMPERATURE", "0.8")
    top_p: float = _safe_float("AI_TOP_P", "0.95")
    top_k: int = _safe_int("AI_TOP_K", "50")
    max_tokens: int = _safe_int("AI_MAX_TOKENS", "300")
    extraction_temperature: float = _safe_float("AI_EXTRACTION_TEMPERATURE", "0.3")


@dataclass(frozen=True)
class SessionConfig:
    """Per-conversation limits."""

    history_limit: int = _safe_int("SESSION_HISTORY_LIMIT", "10")
    ai_history_turns: int = _safe_int("AI_HISTORY_TURNS", "5")
    sms_code_ttl_minutes: int = _safe_int("SMS_CODE_TTL_MINUTES", "10")
    sms_max_attempts: int = _safe_int("SMS_MAX_ATTEMPTS", "3")


@dataclass(frozen=True)
class ValidationConfig:
    """Format rules for customer-entered data."""

    min_name_length: int = _safe_int("MIN_NAME_LENGTH", "2")
    dni_length: int = _safe_int("DNI_LENGTH", "8")
    min_password_length: int = _safe_int("MIN_PASSWORD_LENGTH", "6")
    phone_digits: int = _safe_int("PHONE_DIGITS", "9")
    min_address_length: int = _safe_int("MIN_ADDRESS_LENGTH", "5")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    intent: IntentConfig = field(default_factory=IntentConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    bot_name: str = os.getenv("BOT_NAME", "sales-assistant")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, value in [
        ("INTENT_THRESHOLD", config.intent.threshold),
        ("INTENT_CONTEXTUAL_BONUS", config.intent.contextual_bonus),
        ("INTENT_DELEGATED_CONFIDENCE", config.intent.delegated_confidence),
        ("INTENT_NO_MATCH_CONFIDENCE", config.intent.no_match_confidence),
        ("PHONETIC_WEIGHT", config.intent.phonetic_weight),
        ("PHONETIC_SIMILARITY", config.intent.phonetic_similarity),
        ("FUZZY_SIMILARITY", config.intent.fuzzy_similarity),
        ("AI_TOP_P", config.ai.top_p),
    ]:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")

    for name, value in [
        ("AI_TEMPERATURE", config.ai.temperature),
        ("AI_EXTRACTION_TEMPERATURE", config.ai.extraction_temperature),
    ]:
        if not 0.0 <= value <= 2.0:
            raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")

    for name, value in [
        ("AI_ORDER_PARSE_TIMEOUT", config.ai.order_parse_timeout_sec),
        ("AI_LIGHT_TIMEOUT", config.ai.light_timeout_sec),
        ("AI_REPLY_TIMEOUT", config.ai.reply_timeout_sec),
    ]:
        if value <= 0:
            raise ValueError(f"{name} must be > 0, got {value}")

    for name, value in [
        ("AI_TOP_K", config.ai.top_k),
        ("AI_MAX_TOKENS", config.ai.max_tokens),
        ("SESSION_HISTORY_LIMIT", config.session.history_limit),
        ("AI_HISTORY_TURNS", config.session.ai_history_turns),
        ("SMS_CODE_TTL_MINUTES", config.session.sms_code_ttl_minutes),
        ("SMS_MAX_ATTEMPTS", config.session.sms_max_attempts),
        ("MIN_NAME_LENGTH", config.validation.min_name_length),
        ("DNI_LENGTH", config.validation.dni_length),
        ("MIN_PASSWORD_LENGTH", config.validation.min_password_length),
        ("PHONE_DIGITS", config.validation.phone_digits),
        ("MIN_ADDRESS_LENGTH", config.validation.min_address_length),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")

    if config.session.ai_history_turns > config.session.history_limit:
        raise ValueError(
            "AI_HISTORY_TURNS must not exceed SESSION_HISTORY_LIMIT, "
            f"got {config.session.ai_history_turns} > {config.session.history_limit}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(customer_key)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    attach_to_handlers(logging.getLogger().handlers)
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
