"""Tests for shared utility functions."""

from dialogue_router.utils import (
    extract_local_phone,
    format_phone,
    is_valid_peruvian_phone,
    normalize_phone,
    phone_variants,
)


class TestNormalizePhone:
    def test_adds_country_code_to_local_number(self):
        assert normalize_phone("987654321") == "51987654321"

    def test_strips_spaces(self):
        assert normalize_phone("987 654 321") == "51987654321"

    def test_strips_dashes(self):
        assert normalize_phone("987-654-321") == "51987654321"

    def test_mixed_separators(self):
        assert normalize_phone("+51 (987) 654-321") == "51987654321"

    def test_full_number_unchanged(self):
        assert normalize_phone("51987654321") == "51987654321"

    def test_strips_whitespace(self):
        assert normalize_phone("  51987654321  ") == "51987654321"

    def test_empty(self):
        assert normalize_phone("") == ""


class TestPhoneVariants:
    def test_full_number_yields_local_variant(self):
        assert phone_variants("51987654321") == ["51987654321", "987654321"]

    def test_local_number_yields_both(self):
        assert phone_variants("987654321") == ["51987654321", "987654321"]

    def test_empty(self):
        assert phone_variants("") == []


class TestPhoneChecks:
    def test_local_is_valid(self):
        assert is_valid_peruvian_phone("987654321")

    def test_full_mobile_is_valid(self):
        assert is_valid_peruvian_phone("+51 987 654 321")

    def test_short_is_invalid(self):
        assert not is_valid_peruvian_phone("98765")

    def test_format_phone(self):
        assert format_phone("987654321") == "+51 987 654 321"


class TestExtractLocalPhone:
    def test_plain_digits(self):
        assert extract_local_phone("987654321") == "987654321"

    def test_grouped_with_separators(self):
        assert extract_local_phone("987, 654.321") == "987654321"

    def test_country_code_removed(self):
        assert extract_local_phone("+51987654321") == "987654321"

    def test_words_are_not_a_phone(self):
        assert extract_local_phone("mi numero es 987654321") is None

    def test_wrong_length(self):
        assert extract_local_phone("98765432") is None
