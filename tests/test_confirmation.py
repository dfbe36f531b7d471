"""Tests for confirmation code generation."""

from app.services.booking.confirmation import (
    AMBIGUOUS_CHARACTERS,
    CONFIRMATION_ALPHABET,
    generate_confirmation_code,
)


class TestConfirmationCode:
    def test_default_length(self):
        assert len(generate_confirmation_code()) == 6

    def test_custom_length(self):
        assert len(generate_confirmation_code(10)) == 10

    def test_alphabet_has_no_look_alikes(self):
        assert not AMBIGUOUS_CHARACTERS & set(CONFIRMATION_ALPHABET)
        assert len(set(CONFIRMATION_ALPHABET)) == 32

    def test_codes_use_alphabet_only(self):
        codes = {generate_confirmation_code() for _ in range(200)}

        assert all(set(code) <= set(CONFIRMATION_ALPHABET) for code in codes)
        # 32^6 possibilities, duplicates among 200 draws are vanishingly unlikely
        assert len(codes) > 190
