"""Tests for text normalization and transcription correction."""

import pytest

from dialogue_router.nlu.normalizer import (
    clean_for_echo,
    correct_transcription,
    normalize,
    normalize_for_search,
    strip_accents,
    tokenize,
)


class TestNormalize:
    def test_lowercases_and_strips_accents(self):
        assert normalize("¿Cuánto CUESTA?") == "cuanto cuesta"

    def test_punctuation_becomes_space(self):
        assert normalize("hola,¿tienes mouse?") == "hola tienes mouse"

    def test_known_mistranscriptions_are_fixed(self):
        assert normalize("quiero un sansung") == "quiero un samsung"
        assert normalize("gonzilar") == "cancelar"
        assert normalize("firumon") == "confirmo"

    def test_voice_fillers_removed(self):
        assert normalize("ehh mmm hola") == "hola"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_input_returns_empty_string(self, value):
        assert normalize(value) == ""

    @pytest.mark.parametrize("value", [
        "¿Cuánto cuesta el SANSUNG Galaxy?",
        "kiero 2 maus lenobo!!",
        "Periodo para YAPEO",
        "ñandú, pingüino & acción",
        "987-654-321",
    ])
    def test_idempotent(self, value):
        once = normalize(value)
        assert normalize(once) == once

    def test_non_string_input_does_not_raise(self):
        assert normalize(12345) == "12345"


class TestSearchNormalization:
    def test_synonyms_folded(self):
        assert normalize_for_search("portátil lenobo") == "laptop lenovo"

    def test_stopwords_removed(self):
        assert normalize_for_search("precio de un celular") == "telefono"

    def test_audifono_variants(self):
        assert normalize_for_search("auriculares sony") == "audifonos sony"


class TestTranscriptionCorrection:
    def test_unlisted_variant_snaps_to_command(self):
        assert correct_transcription("transfrencia") == "transferencia"

    def test_inflections_are_not_rewritten(self):
        assert correct_transcription("mis pedidos") == "mis pedidos"

    def test_short_tokens_left_alone(self):
        assert correct_transcription("si") == "si"

    def test_ordinary_words_unchanged(self):
        assert correct_transcription("quiero una laptop") == "quiero una laptop"


class TestHelpers:
    def test_clean_for_echo_keeps_accents(self):
        assert clean_for_echo("  Cuánto   cuesta ") == "Cuánto cuesta"

    def test_strip_accents(self):
        assert strip_accents("dirección") == "direccion"

    def test_tokenize(self):
        assert tokenize("Hola, ¿qué tal?") == ["hola", "que", "tal"]
