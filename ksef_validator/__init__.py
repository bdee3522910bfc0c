"""
KSeF Invoice Validator

A Python library for validating Polish structured e-invoices (FA(2)/FA(3))
against business rules and the official XSD schemas.
"""

__version__ = "0.1.0"
__author__ = "KSeF Validator Team"

from .bank_account import is_valid_bank_account, validate_bank_account
from .dates import validate_issue_date, validate_period, validate_sale_date
from .results import ValidationIssue, ValidationResult
from .schemas import Invoice, InvoiceData, LineItem, VatRate
from .serializer import InvoiceSerializationError, InvoiceXmlSerializer
from .tax_id import is_valid_tax_id, validate_tax_id
from .validator import validate_batch, validate_invoice
from .xsd import SchemaLoadError, SchemaVersion, XsdValidator

__all__ = [
    "Invoice",
    "InvoiceData",
    "LineItem",
    "VatRate",
    "ValidationIssue",
    "ValidationResult",
    "validate_tax_id",
    "is_valid_tax_id",
    "validate_bank_account",
    "is_valid_bank_account",
    "validate_issue_date",
    "validate_sale_date",
    "validate_period",
    "validate_invoice",
    "validate_batch",
    "InvoiceXmlSerializer",
    "InvoiceSerializationError",
    "SchemaVersion",
    "SchemaLoadError",
    "XsdValidator",
]
