"""
Polish tax identification number (NIP) validation.

A NIP has ten digits; the last one is a check digit computed as the
weighted sum of the first nine digits modulo 11. A remainder of 10 can
never be written as a single digit, so such numbers are invalid.
"""

from typing import Optional

from .results import ValidationResult

NIP_LENGTH = 10
NIP_WEIGHTS: tuple[int, ...] = (6, 5, 7, 2, 3, 4, 5, 6, 7)

FIELD_NAME = "TaxId"


def normalize_tax_id(value: str) -> str:
    """Strip the hyphens and spaces commonly used to format a NIP."""
    return value.replace("-", "").replace(" ", "")


def _checksum_ok(digits: str) -> bool:
    total = sum(int(digit) * weight for digit, weight in zip(digits, NIP_WEIGHTS))
    check_digit = total % 11
    if check_digit == 10:
        return False
    return check_digit == int(digits[9])


def validate_tax_id(value: Optional[str]) -> ValidationResult:
    """
    Validate a NIP and report at most one error.

    Args:
        value: Raw NIP, optionally formatted with hyphens or spaces

    Returns:
        ValidationResult with NIP_EMPTY, NIP_INVALID_LENGTH,
        NIP_INVALID_CHARACTERS or NIP_INVALID_CHECKSUM on failure
    """
    if value is None or not value.strip():
        return ValidationResult.with_error("NIP_EMPTY", "Tax ID (NIP) is required", FIELD_NAME)

    nip = normalize_tax_id(value)

    if len(nip) != NIP_LENGTH:
        return ValidationResult.with_error(
            "NIP_INVALID_LENGTH",
            f"Tax ID (NIP) must have exactly {NIP_LENGTH} digits, got {len(nip)} characters",
            FIELD_NAME,
        )

    if not (nip.isascii() and nip.isdigit()):
        return ValidationResult.with_error(
            "NIP_INVALID_CHARACTERS", "Tax ID (NIP) may contain digits only", FIELD_NAME
        )

    if not _checksum_ok(nip):
        return ValidationResult.with_error(
            "NIP_INVALID_CHECKSUM", "Tax ID (NIP) has an invalid checksum", FIELD_NAME
        )

    return ValidationResult.success()


def is_valid_tax_id(value: Optional[str]) -> bool:
    """Fast boolean check equivalent to ``validate_tax_id(value).is_valid``."""
    if value is None or not value.strip():
        return False

    nip = normalize_tax_id(value)
    if len(nip) != NIP_LENGTH or not (nip.isascii() and nip.isdigit()):
        return False

    return _checksum_ok(nip)
