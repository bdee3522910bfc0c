"""
Configuration constants and enums for the KSeF invoice validator.
"""

import logging
import os
from decimal import Decimal
from enum import Enum
from typing import Final

# ============================================================================
# Validation Tolerances
# ============================================================================

# Tolerance for monetary comparisons (e.g., quantity × unit price ≈ net amount)
AMOUNT_TOLERANCE: Final[Decimal] = Decimal(os.getenv("AMOUNT_TOLERANCE", "0.02"))

# ============================================================================
# Field Limits
# ============================================================================

MAX_TEXT_FIELD_LENGTH: Final[int] = 512   # names, product descriptions
MAX_SHORT_TEXT_LENGTH: Final[int] = 256   # invoice number, place, unit, correction reason
MAX_LINE_ITEMS: Final[int] = 10_000

# ============================================================================
# Date Plausibility
# ============================================================================

MAX_ISSUE_DATE_AGE_DAYS: Final[int] = 5 * 365
MAX_SALE_AFTER_ISSUE_DAYS: Final[int] = 30
MAX_PERIOD_END_AHEAD_DAYS: Final[int] = 60
MAX_PERIOD_LENGTH_DAYS: Final[int] = 366

# ============================================================================
# Bank Accounts
# ============================================================================

MIN_ACCOUNT_LENGTH: Final[int] = 10
MAX_ACCOUNT_LENGTH: Final[int] = 34
POLISH_IBAN_LENGTH: Final[int] = 28
POLISH_NRB_LENGTH: Final[int] = 26

# ============================================================================
# Schema Namespaces
# ============================================================================

FA2_NAMESPACE: Final[str] = "http://crd.gov.pl/wzor/2023/06/29/12648/"
FA3_NAMESPACE: Final[str] = "http://crd.gov.pl/wzor/2025/06/25/13775/"
DEFINITION_TYPES_NAMESPACE: Final[str] = (
    "http://crd.gov.pl/xml/schematy/dziedzinowe/mf/2022/01/05/eD/DefinicjeTypy/"
)

# Package-relative location of the bundled XSD files
SCHEMA_RESOURCE_DIR: Final[str] = "resources/schemas"

# ============================================================================
# Rule Categories
# ============================================================================

class ErrorCategory(str, Enum):
    """Categories for business validation rules."""
    STRUCTURE = "structure"
    SELLER = "seller"
    BUYER = "buyer"
    INVOICE_DATA = "invoice_data"
    LINE_ITEMS = "line_items"
    AMOUNTS = "amounts"
    PAYMENT = "payment"


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("ksef_validator")


logger = setup_logging()
