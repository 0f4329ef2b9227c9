"""Checksum validators applied to pattern matches.

A regex alone accepts any digit run of the right shape; these checks cut the
false positives for identifiers that carry a check digit.
"""

import re
from typing import Callable, Optional

_VERHOEFF_D = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
    (1, 2, 3, 4, 0, 6, 7, 8, 9, 5),
    (2, 3, 4, 0, 1, 7, 8, 9, 5, 6),
    (3, 4, 0, 1, 2, 8, 9, 5, 6, 7),
    (4, 0, 1, 2, 3, 9, 5, 6, 7, 8),
    (5, 9, 8, 7, 6, 0, 4, 3, 2, 1),
    (6, 5, 9, 8, 7, 1, 0, 4, 3, 2),
    (7, 6, 5, 9, 8, 2, 1, 0, 4, 3),
    (8, 7, 6, 5, 9, 3, 2, 1, 0, 4),
    (9, 8, 7, 6, 5, 4, 3, 2, 1, 0),
)

_VERHOEFF_P = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
    (1, 5, 7, 6, 2, 8, 3, 0, 9, 4),
    (5, 8, 0, 3, 7, 9, 6, 1, 4, 2),
    (8, 9, 1, 6, 0, 4, 3, 5, 2, 7),
    (9, 4, 5, 3, 1, 2, 6, 8, 7, 0),
    (4, 2, 8, 6, 5, 7, 3, 9, 0, 1),
    (2, 7, 9, 3, 8, 0, 6, 4, 1, 5),
    (7, 0, 4, 6, 9, 1, 3, 2, 5, 8),
)


def validate_verhoeff(number: str) -> bool:
    """Validate a digit string whose last digit is a Verhoeff check digit.

    Args:
        number: Digit string, separators allowed.

    Returns:
        True if the checksum holds, False otherwise.
    """
    digits = re.sub(r"\D", "", number)
    if not digits:
        return False

    check = 0
    for i, digit in enumerate(reversed(digits)):
        check = _VERHOEFF_D[check][_VERHOEFF_P[i % 8][int(digit)]]
    return check == 0


def validate_aadhar(number: str) -> bool:
    """Validate an Aadhaar number: 12 digits, no leading 0/1, Verhoeff checksum."""
    digits = re.sub(r"\D", "", number)
    if len(digits) != 12 or digits[0] in "01":
        return False
    return validate_verhoeff(digits)


def validate_luhn(card_number: str) -> bool:
    """Validate a card number with the Luhn (mod 10) algorithm.

    Args:
        card_number: Card number string (with or without separators).

    Returns:
        True if valid according to Luhn, False otherwise.
    """
    card = re.sub(r"\D", "", card_number)

    if not 13 <= len(card) <= 19:
        return False

    total = 0
    is_second = False
    for digit in reversed(card):
        d = int(digit)
        if is_second:
            d *= 2
            if d > 9:
                d -= 9
        total += d
        is_second = not is_second

    return total % 10 == 0


_VALIDATORS: dict[str, Callable[[str], bool]] = {
    "aadhar": validate_aadhar,
    "luhn": validate_luhn,
    "verhoeff": validate_verhoeff,
}


def get_validator(name: str) -> Optional[Callable[[str], bool]]:
    """Look up a validator by the name used in data-class definition files."""
    return _VALIDATORS.get(name.lower())
