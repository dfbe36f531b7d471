"""Confirmation code generation.

Codes are short enough to read over the phone and drawn from an alphabet
without the look-alike characters 0/O and 1/I.
"""

import secrets

from app.config import get_settings

settings = get_settings()

CONFIRMATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
AMBIGUOUS_CHARACTERS = frozenset("0O1I")


def generate_confirmation_code(length: int | None = None) -> str:
    length = length or settings.confirmation_code_length
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(length))
