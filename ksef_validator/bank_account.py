"""
Bank account number validation (IBAN and Polish NRB).

Accounts starting with two letters are treated as IBANs and checked with
the ISO 13616 mod-97 algorithm. Digit-only accounts are treated as the
domestic NRB form; a 26-digit NRB is an IBAN without the "PL" prefix and
is checked the same way.
"""

import re
from typing import Optional

from .config import (
    MAX_ACCOUNT_LENGTH,
    MIN_ACCOUNT_LENGTH,
    POLISH_IBAN_LENGTH,
    POLISH_NRB_LENGTH,
)
from .results import ValidationResult

FIELD_NAME = "AccountNumber"

IBAN_SHAPE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]+$")


def normalize_account_number(value: str) -> str:
    """Remove spaces and upper-case the account number."""
    return value.replace(" ", "").upper()


def _looks_like_iban(account: str) -> bool:
    return account[:2].isalpha()


def _is_digits(account: str) -> bool:
    return account.isascii() and account.isdigit()


def iban_checksum_ok(iban: str) -> bool:
    """
    ISO 13616 check: move the first four characters to the end, replace
    letters with A=10 ... Z=35 and require the resulting number mod 97 == 1.
    """
    rearranged = iban[4:] + iban[:4]
    numeral = "".join(
        str(ord(char) - ord("A") + 10) if char.isalpha() else char
        for char in rearranged
    )
    return int(numeral) % 97 == 1


def validate_bank_account(value: Optional[str]) -> ValidationResult:
    """
    Validate an IBAN or domestic NRB account number.

    Length outside [10, 34] is an error. Country-specific length deviations
    (a "PL" IBAN that is not 28 characters, an NRB that is not 26 digits)
    are warnings only.
    """
    result = ValidationResult()

    if value is None or not value.strip():
        result.add_error("IBAN_EMPTY", "Bank account number is required", FIELD_NAME)
        return result

    account = normalize_account_number(value)

    if len(account) < MIN_ACCOUNT_LENGTH:
        result.add_error(
            "IBAN_TOO_SHORT",
            f"Bank account number is too short (minimum {MIN_ACCOUNT_LENGTH} characters)",
            FIELD_NAME,
        )
        return result

    if len(account) > MAX_ACCOUNT_LENGTH:
        result.add_error(
            "IBAN_TOO_LONG",
            f"Bank account number is too long (maximum {MAX_ACCOUNT_LENGTH} characters)",
            FIELD_NAME,
        )
        return result

    if _looks_like_iban(account):
        if not IBAN_SHAPE.match(account):
            result.add_error("IBAN_INVALID_FORMAT", "Invalid IBAN format", FIELD_NAME)
            return result

        if not iban_checksum_ok(account):
            result.add_error("IBAN_INVALID_CHECKSUM", "Invalid IBAN checksum", FIELD_NAME)

        if account.startswith("PL") and len(account) != POLISH_IBAN_LENGTH:
            result.add_warning(
                "IBAN_POLISH_LENGTH",
                f"Polish IBAN should have {POLISH_IBAN_LENGTH} characters, got {len(account)}",
                FIELD_NAME,
            )
        return result

    if not _is_digits(account):
        result.add_error(
            "NRB_INVALID_CHARACTERS", "Domestic account number (NRB) may contain digits only", FIELD_NAME
        )
        return result

    if len(account) == POLISH_NRB_LENGTH:
        if not iban_checksum_ok("PL" + account):
            result.add_error(
                "NRB_INVALID_CHECKSUM", "Invalid domestic account number (NRB) checksum", FIELD_NAME
            )
    else:
        result.add_warning(
            "NRB_UNUSUAL_LENGTH",
            f"Account number has an unusual length ({len(account)} characters); "
            f"a Polish NRB has {POLISH_NRB_LENGTH} digits",
            FIELD_NAME,
        )

    return result


def is_valid_bank_account(value: Optional[str]) -> bool:
    """Fast boolean check equivalent to ``validate_bank_account(value).is_valid``."""
    if value is None or not value.strip():
        return False

    account = normalize_account_number(value)
    if not MIN_ACCOUNT_LENGTH <= len(account) <= MAX_ACCOUNT_LENGTH:
        return False

    if _looks_like_iban(account):
        return bool(IBAN_SHAPE.match(account)) and iban_checksum_ok(account)

    if not _is_digits(account):
        return False

    if len(account) == POLISH_NRB_LENGTH:
        return iban_checksum_ok("PL" + account)

    return True
