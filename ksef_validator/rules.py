"""
Business rules for KSeF invoices.

Rules are organized by section, in the order they run:
- Structure rules: seller, buyer and invoice data must be present
- Party rules: seller and buyer identification
- Invoice data rules: number, dates, corrections
- Line item rules: numbering, names, per-line amount consistency
- Amount rules: per-rate summaries and grand total against the lines
- Payment rules: bank account numbers

Each rule appends issues to a shared ValidationResult and never raises for
bad data. A missing section only skips the rules for that section.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Callable, Optional

from .bank_account import validate_bank_account
from .config import (
    AMOUNT_TOLERANCE,
    MAX_LINE_ITEMS,
    MAX_SHORT_TEXT_LENGTH,
    MAX_TEXT_FIELD_LENGTH,
    ErrorCategory,
)
from .dates import validate_issue_date, validate_period, validate_sale_date
from .results import ValidationResult
from .schemas import BankAccount, Invoice, InvoiceData, LineItem, VatRate
from .tax_id import validate_tax_id

# Type alias for rule check functions
# The function takes the Invoice, the accumulator and a context dict (e.g. "today")
RuleCheckFn = Callable[[Invoice, ValidationResult, dict], None]

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Current-rate buckets exposed by the header: (rate, net field, VAT field, label)
RATE_SUMMARY_FIELDS: list[tuple[VatRate, str, str, str]] = [
    (VatRate.RATE_23, "net_amount_23", "vat_amount_23", "23"),
    (VatRate.RATE_8, "net_amount_8", "vat_amount_8", "8"),
    (VatRate.RATE_5, "net_amount_5", "vat_amount_5", "5"),
    (VatRate.RATE_4, "net_amount_4", "vat_amount_4", "4"),
]


@dataclass
class ValidationRule:
    """
    Represents a single business rule.

    Attributes:
        code: Machine-readable rule identifier (e.g. "line_items")
        description: Human-readable description of the rule
        category: Section of the document the rule inspects
        check: Function that appends its findings to the result
    """
    code: str
    description: str
    category: ErrorCategory
    check: RuleCheckFn


def _today(context: Optional[dict]) -> Optional[date]:
    return (context or {}).get("today")


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


# ============================================================================
# Structure Rules
# ============================================================================

def check_structure(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """Seller, buyer and invoice data must all be present."""
    if invoice.seller is None:
        result.add_error("INV_SELLER_MISSING", "Seller is required", "Seller")
    if invoice.buyer is None:
        result.add_error("INV_BUYER_MISSING", "Buyer is required", "Buyer")
    if invoice.invoice_data is None:
        result.add_error("INV_DATA_MISSING", "Invoice data is required", "InvoiceData")


# ============================================================================
# Party Rules
# ============================================================================

def check_seller(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """Seller needs a valid NIP and a name of at most 512 characters."""
    seller = invoice.seller
    if seller is None:
        return

    if _is_blank(seller.tax_id):
        result.add_error("SELLER_NIP_MISSING", "Seller tax ID (NIP) is required", "Seller.TaxId")
    else:
        result.merge(validate_tax_id(seller.tax_id), field_prefix="Seller", message_prefix="Seller")

    if _is_blank(seller.name):
        result.add_error("SELLER_NAME_MISSING", "Seller name is required", "Seller.Name")
    elif len(seller.name) > MAX_TEXT_FIELD_LENGTH:
        result.add_error(
            "SELLER_NAME_TOO_LONG",
            f"Seller name is too long (max {MAX_TEXT_FIELD_LENGTH} characters, got {len(seller.name)})",
            "Seller.Name",
        )


def check_buyer(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """
    Buyer needs at least one identification route.

    A domestic NIP, when given, must pass the checksum.
    """
    buyer = invoice.buyer
    if buyer is None:
        return

    if not buyer.has_any_identifier:
        result.add_error(
            "BUYER_ID_MISSING",
            "Buyer needs at least one identifier (NIP, EU VAT number, other ID or the no-ID marker)",
            "Buyer",
        )

    if buyer.has_polish_tax_id:
        result.merge(validate_tax_id(buyer.tax_id), field_prefix="Buyer", message_prefix="Buyer")

    if buyer.name and len(buyer.name) > MAX_TEXT_FIELD_LENGTH:
        result.add_error(
            "BUYER_NAME_TOO_LONG",
            f"Buyer name is too long (max {MAX_TEXT_FIELD_LENGTH} characters, got {len(buyer.name)})",
            "Buyer.Name",
        )


# ============================================================================
# Invoice Data Rules
# ============================================================================

def check_invoice_data(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """Invoice number, issue/sale dates, settlement period and correction data."""
    data = invoice.invoice_data
    if data is None:
        return

    today = _today(context)

    if _is_blank(data.invoice_number):
        result.add_error("INV_NUMBER_MISSING", "Invoice number is required", "InvoiceData.InvoiceNumber")
    elif len(data.invoice_number) > MAX_SHORT_TEXT_LENGTH:
        result.add_error(
            "INV_NUMBER_TOO_LONG",
            f"Invoice number is too long (max {MAX_SHORT_TEXT_LENGTH} characters, "
            f"got {len(data.invoice_number)})",
            "InvoiceData.InvoiceNumber",
        )

    if data.issue_date is None:
        result.add_error("INV_DATE_MISSING", "Issue date is required", "InvoiceData.IssueDate")
    else:
        result.merge(validate_issue_date(data.issue_date, today), field_prefix="InvoiceData")

    if data.has_sale_date:
        result.merge(
            validate_sale_date(data.sale_date, data.issue_date, today),
            field_prefix="InvoiceData",
        )

    if data.sale_period is not None:
        result.merge(
            validate_period(data.sale_period.period_from, data.sale_period.period_to, today),
            field_prefix="InvoiceData",
        )

    if data.has_sale_date and data.has_sale_period:
        result.add_warning(
            "INV_DATE_AND_PERIOD",
            "Invoice has both a sale date and a settlement period; only one is expected",
            "InvoiceData",
        )

    if data.issue_place and len(data.issue_place) > MAX_SHORT_TEXT_LENGTH:
        result.add_error(
            "INV_PLACE_TOO_LONG",
            f"Place of issue is too long (max {MAX_SHORT_TEXT_LENGTH} characters)",
            "InvoiceData.IssuePlace",
        )

    if data.is_correction:
        _check_correction(data, result)


def _check_correction(data: InvoiceData, result: ValidationResult) -> None:
    if _is_blank(data.correction_reason):
        result.add_error(
            "INV_CORR_REASON_MISSING",
            "Correction reason is required for a correcting invoice",
            "InvoiceData.CorrectionReason",
        )
    elif len(data.correction_reason) > MAX_SHORT_TEXT_LENGTH:
        result.add_error(
            "INV_CORR_REASON_TOO_LONG",
            f"Correction reason is too long (max {MAX_SHORT_TEXT_LENGTH} characters)",
            "InvoiceData.CorrectionReason",
        )

    if data.corrected_invoice_data is None:
        result.add_error(
            "INV_CORR_DATA_MISSING",
            "Corrected invoice reference is required for a correcting invoice",
            "InvoiceData.CorrectedInvoiceData",
        )


# ============================================================================
# Line Item Rules
# ============================================================================

def check_line_items(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """
    Line numbering, names, units and per-line amount consistency.

    An invoice without lines only warns.
    """
    if invoice.invoice_data is None:
        return

    items = invoice.invoice_data.line_items
    if not items:
        result.add_warning(
            "INV_NO_ITEMS",
            "Invoice has no line items; most invoices should have at least one",
            "InvoiceData.LineItems",
        )
        return

    if len(items) > MAX_LINE_ITEMS:
        result.add_error(
            "INV_TOO_MANY_ITEMS",
            f"Invoice has too many line items (max {MAX_LINE_ITEMS}, got {len(items)})",
            "InvoiceData.LineItems",
        )

    seen_numbers: set[int] = set()
    for index, item in enumerate(items):
        position = index + 1
        prefix = f"InvoiceData.LineItems[{index}]"

        if item.line_number <= 0:
            result.add_error(
                "ITEM_LINE_NUMBER_INVALID",
                f"Line {position}: line number must be greater than 0",
                f"{prefix}.LineNumber",
            )
        elif item.line_number in seen_numbers:
            result.add_error(
                "ITEM_LINE_NUMBER_DUPLICATE",
                f"Line {position}: duplicate line number {item.line_number}",
                f"{prefix}.LineNumber",
            )
        else:
            seen_numbers.add(item.line_number)

        if _is_blank(item.product_name):
            result.add_error(
                "ITEM_NAME_MISSING",
                f"Line {position}: goods or service name is required",
                f"{prefix}.ProductName",
            )
        elif len(item.product_name) > MAX_TEXT_FIELD_LENGTH:
            result.add_error(
                "ITEM_NAME_TOO_LONG",
                f"Line {position}: goods or service name is too long (max {MAX_TEXT_FIELD_LENGTH} characters)",
                f"{prefix}.ProductName",
            )

        if item.unit and len(item.unit) > MAX_SHORT_TEXT_LENGTH:
            result.add_error(
                "ITEM_UNIT_TOO_LONG",
                f"Line {position}: unit of measure is too long (max {MAX_SHORT_TEXT_LENGTH} characters)",
                f"{prefix}.Unit",
            )

        _check_line_item_amounts(item, position, prefix, result)


def _check_line_item_amounts(item: LineItem, position: int, prefix: str, result: ValidationResult) -> None:
    if item.net_amount is None and item.gross_amount is None:
        result.add_warning(
            "ITEM_NO_AMOUNT",
            f"Line {position}: neither net nor gross value is given",
            prefix,
        )

    if item.quantity is not None and item.unit_net_price is not None and item.net_amount is not None:
        calculated_net = item.quantity * item.unit_net_price
        if abs(calculated_net - item.net_amount) > AMOUNT_TOLERANCE:
            result.add_warning(
                "ITEM_NET_MISMATCH",
                f"Line {position}: net value ({item.net_amount:.2f}) does not match "
                f"quantity × unit price ({calculated_net:.2f})",
                f"{prefix}.NetAmount",
            )

    percentage = item.vat_rate.percentage
    if item.net_amount is not None and item.vat_amount is not None and percentage is not None:
        expected_vat = (item.net_amount * percentage / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_EVEN)
        if abs(expected_vat - item.vat_amount) > AMOUNT_TOLERANCE:
            result.add_warning(
                "ITEM_VAT_MISMATCH",
                f"Line {position}: VAT amount ({item.vat_amount:.2f}) does not match the expected "
                f"{expected_vat:.2f} for rate {item.vat_rate.display}",
                f"{prefix}.VatAmount",
            )


# ============================================================================
# Amount Consistency Rules
# ============================================================================

def sum_line_items_by_rate(items: list[LineItem]) -> dict[VatRate, tuple[Decimal, Decimal]]:
    """
    Sum net and VAT amounts per summary bucket.

    Historical rates are folded into their current successor
    (22% -> 23%, 7% -> 8%, 3% -> 4%).
    """
    sums: dict[VatRate, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for item in items:
        bucket = sums[item.vat_rate.bucket]
        bucket[0] += item.net_amount or ZERO
        bucket[1] += item.vat_amount or ZERO
    return {rate: (net, vat) for rate, (net, vat) in sums.items()}


def check_amount_consistency(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """
    Declared per-rate summaries and the amount due must agree with the lines.

    Mismatches beyond the monetary tolerance only warn.
    """
    data = invoice.invoice_data
    if data is None or not data.line_items:
        return

    sums = sum_line_items_by_rate(data.line_items)

    for rate, net_field, vat_field, label in RATE_SUMMARY_FIELDS:
        if rate not in sums:
            continue
        line_net, line_vat = sums[rate]

        declared_net = getattr(data, net_field)
        if declared_net is not None and abs(line_net - declared_net) > AMOUNT_TOLERANCE:
            result.add_warning(
                "INV_NET_SUM_MISMATCH",
                f"Net total for rate {label}% ({declared_net:.2f}) does not match "
                f"the line items ({line_net:.2f})",
                f"InvoiceData.NetAmount{label}",
            )

        declared_vat = getattr(data, vat_field)
        if declared_vat is not None and abs(line_vat - declared_vat) > AMOUNT_TOLERANCE:
            result.add_warning(
                "INV_VAT_SUM_MISMATCH",
                f"VAT total for rate {label}% ({declared_vat:.2f}) does not match "
                f"the line items ({line_vat:.2f})",
                f"InvoiceData.VatAmount{label}",
            )

    calculated_total = data.total_net_amount + data.total_vat_amount
    if abs(calculated_total - data.total_amount) > AMOUNT_TOLERANCE:
        result.add_warning(
            "INV_TOTAL_MISMATCH",
            f"Amount due ({data.total_amount:.2f}) does not match net + VAT ({calculated_total:.2f})",
            "InvoiceData.TotalAmount",
        )


# ============================================================================
# Payment Rules
# ============================================================================

def _check_account(
    account: BankAccount,
    field_prefix: str,
    label: str,
    empty_code: str,
    result: ValidationResult,
) -> None:
    if _is_blank(account.account_number):
        result.add_error(empty_code, f"{label}: account number is required", f"{field_prefix}.AccountNumber")
        return
    result.merge(validate_bank_account(account.account_number), field_prefix=field_prefix, message_prefix=label)


def check_payment(invoice: Invoice, result: ValidationResult, context: Optional[dict] = None) -> None:
    """Every bank account, including the factoring account, must be valid."""
    if invoice.invoice_data is None or invoice.invoice_data.payment is None:
        return
    payment = invoice.invoice_data.payment

    for index, account in enumerate(payment.bank_accounts or []):
        _check_account(
            account,
            f"InvoiceData.Payment.BankAccounts[{index}]",
            f"Bank account {index + 1}",
            "PAYMENT_ACCOUNT_EMPTY",
            result,
        )

    if payment.factoring_bank_account is not None:
        _check_account(
            payment.factoring_bank_account,
            "InvoiceData.Payment.FactoringBankAccount",
            "Factoring account",
            "PAYMENT_FACTORING_EMPTY",
            result,
        )


# ============================================================================
# Rule Registry
# ============================================================================

# All business rules in execution order
VALIDATION_RULES: list[ValidationRule] = [
    ValidationRule(
        code="structure",
        description="Seller, buyer and invoice data must be present",
        category=ErrorCategory.STRUCTURE,
        check=check_structure,
    ),
    ValidationRule(
        code="seller",
        description="Seller must have a valid NIP and a name",
        category=ErrorCategory.SELLER,
        check=check_seller,
    ),
    ValidationRule(
        code="buyer",
        description="Buyer must have at least one identifier; a NIP must be valid",
        category=ErrorCategory.BUYER,
        check=check_buyer,
    ),
    ValidationRule(
        code="invoice_data",
        description="Invoice number, dates and correction data must be present and plausible",
        category=ErrorCategory.INVOICE_DATA,
        check=check_invoice_data,
    ),
    ValidationRule(
        code="line_items",
        description="Line items must be numbered, named and internally consistent",
        category=ErrorCategory.LINE_ITEMS,
        check=check_line_items,
    ),
    ValidationRule(
        code="amount_consistency",
        description="Per-rate summaries and amount due should match the line items",
        category=ErrorCategory.AMOUNTS,
        check=check_amount_consistency,
    ),
    ValidationRule(
        code="payment",
        description="Bank account numbers must be valid IBAN/NRB numbers",
        category=ErrorCategory.PAYMENT,
        check=check_payment,
    ),
]


def get_rules_by_category(category: ErrorCategory) -> list[ValidationRule]:
    """Get all rules belonging to a specific category."""
    return [rule for rule in VALIDATION_RULES if rule.category == category]


def get_rule_descriptions() -> dict[str, str]:
    """Get a mapping of rule codes to their descriptions."""
    return {rule.code: rule.description for rule in VALIDATION_RULES}
