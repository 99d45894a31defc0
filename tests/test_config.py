"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from dialogue_router.config import (
    AIConfig,
    AppConfig,
    IntentConfig,
    SessionConfig,
    ValidationConfig,
    _safe_float,
    _safe_int,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_invalid_temperature_too_high(self):
        config = replace(AppConfig(), ai=replace(AIConfig(), temperature=3.0))
        with pytest.raises(ValueError, match="AI_TEMPERATURE"):
            _validate_config(config)

    def test_invalid_extraction_temperature_negative(self):
        config = replace(AppConfig(), ai=replace(AIConfig(), extraction_temperature=-0.5))
        with pytest.raises(ValueError, match="AI_EXTRACTION_TEMPERATURE"):
            _validate_config(config)

    def test_intent_threshold_above_one(self):
        config = replace(AppConfig(), intent=replace(IntentConfig(), threshold=1.5))
        with pytest.raises(ValueError, match="INTENT_THRESHOLD"):
            _validate_config(config)

    def test_zero_timeout_rejected(self):
        config = replace(AppConfig(), ai=replace(AIConfig(), order_parse_timeout_sec=0))
        with pytest.raises(ValueError, match="AI_ORDER_PARSE_TIMEOUT"):
            _validate_config(config)

    def test_zero_dni_length_rejected(self):
        config = replace(AppConfig(), validation=replace(ValidationConfig(), dni_length=0))
        with pytest.raises(ValueError, match="DNI_LENGTH"):
            _validate_config(config)

    def test_ai_history_cannot_exceed_history_limit(self):
        config = replace(
            AppConfig(),
            session=replace(SessionConfig(), history_limit=4, ai_history_turns=5),
        )
        with pytest.raises(ValueError, match="AI_HISTORY_TURNS"):
            _validate_config(config)

    def test_default_bounds(self):
        config = AppConfig()
        assert config.ai.order_parse_timeout_sec == pytest.approx(30.0)
        assert config.intent.threshold == pytest.approx(0.6)
        assert config.session.history_limit == 10

    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("ROUTER_TEST_INT", "many")
        with pytest.raises(ValueError, match="ROUTER_TEST_INT"):
            _safe_int("ROUTER_TEST_INT", "1")
