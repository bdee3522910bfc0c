"""
Validation engine for KSeF invoices.

This module runs the business rules over a document and produces per-invoice
results and aggregated batch summaries. Schema conformance is optional and
is delegated to an XsdValidator when one is supplied.
"""

from collections import Counter
from datetime import date
from typing import TYPE_CHECKING, Optional

from .config import logger
from .results import (
    InvoiceValidationResult,
    ValidationReport,
    ValidationResult,
    ValidationSummary,
)
from .rules import VALIDATION_RULES, ValidationRule
from .schemas import Invoice

if TYPE_CHECKING:
    from .xsd import XsdValidator


def validate_invoice(
    invoice: Invoice,
    today: Optional[date] = None,
    rules: Optional[list[ValidationRule]] = None
) -> ValidationResult:
    """
    Validate a single invoice against all business rules.

    Every rule runs, even after earlier rules reported errors, so one call
    surfaces the complete set of issues.

    Args:
        invoice: The Invoice object to validate
        today: Reference date for date plausibility checks (defaults to date.today())
        rules: Optional list of rules to apply (defaults to all VALIDATION_RULES)

    Returns:
        ValidationResult with all errors and warnings found

    Raises:
        ValueError: If invoice is None
    """
    if invoice is None:
        raise ValueError("invoice must not be None")

    if rules is None:
        rules = VALIDATION_RULES

    context = {"today": today or date.today()}
    result = ValidationResult()

    for rule in rules:
        rule.check(invoice, result, context)

    return result


def _invoice_id(invoice: Invoice, position: int) -> str:
    data = invoice.invoice_data
    if data is not None and data.invoice_number and data.invoice_number.strip():
        return data.invoice_number
    return f"invoice-{position}"


def validate_batch(
    invoices: list[Invoice],
    today: Optional[date] = None,
    rules: Optional[list[ValidationRule]] = None,
    schema_validator: Optional["XsdValidator"] = None,
) -> tuple[list[InvoiceValidationResult], ValidationSummary]:
    """
    Validate a batch of invoices and produce an aggregated summary.

    Args:
        invoices: List of Invoice objects to validate
        today: Reference date for date plausibility checks
        rules: Optional list of rules to apply
        schema_validator: When given, each invoice is also checked for schema conformance

    Returns:
        Tuple of (list of per-invoice results, batch summary)
    """
    logger.info(f"Validating batch of {len(invoices)} invoices")

    results: list[InvoiceValidationResult] = []
    error_codes: list[str] = []
    warning_codes: list[str] = []

    for position, invoice in enumerate(invoices, start=1):
        result = validate_invoice(invoice, today, rules)
        if schema_validator is not None:
            result.merge(schema_validator.validate_against_schema(invoice))

        results.append(InvoiceValidationResult(invoice_id=_invoice_id(invoice, position), result=result))
        error_codes.extend(issue.code for issue in result.errors)
        warning_codes.extend(issue.code for issue in result.warnings)

    valid_count = sum(1 for r in results if r.is_valid)
    invalid_count = len(results) - valid_count

    summary = ValidationSummary(
        total_invoices=len(invoices),
        valid_invoices=valid_count,
        invalid_invoices=invalid_count,
        error_counts=dict(Counter(error_codes)),
        warning_counts=dict(Counter(warning_codes)),
    )

    logger.info(f"Validation complete: {valid_count} valid, {invalid_count} invalid")

    return results, summary


def create_validation_report(
    invoices: list[Invoice],
    today: Optional[date] = None,
    rules: Optional[list[ValidationRule]] = None,
    schema_validator: Optional["XsdValidator"] = None,
) -> ValidationReport:
    """
    Create a complete validation report for a batch of invoices.

    Args:
        invoices: List of Invoice objects to validate
        today: Reference date for date plausibility checks
        rules: Optional list of rules to apply
        schema_validator: Optional schema validator for conformance checks

    Returns:
        ValidationReport containing summary and per-invoice results
    """
    results, summary = validate_batch(invoices, today, rules, schema_validator)

    return ValidationReport(
        summary=summary,
        per_invoice_results=results,
    )


def get_top_errors(summary: ValidationSummary, n: int = 5) -> list[tuple[str, int]]:
    """
    Get the top N most frequent error codes from a summary.

    Args:
        summary: ValidationSummary to analyze
        n: Number of top errors to return

    Returns:
        List of (error_code, count) tuples, sorted by count descending
    """
    sorted_errors = sorted(
        summary.error_counts.items(),
        key=lambda x: x[1],
        reverse=True
    )
    return sorted_errors[:n]


def format_summary_text(summary: ValidationSummary) -> str:
    """
    Format a ValidationSummary as human-readable text for CLI output.

    Args:
        summary: ValidationSummary to format

    Returns:
        Formatted string for display
    """
    lines = [
        "=" * 50,
        "VALIDATION SUMMARY",
        "=" * 50,
        f"Total invoices processed: {summary.total_invoices}",
        f"Valid invoices:           {summary.valid_invoices}",
        f"Invalid invoices:         {summary.invalid_invoices}",
        "",
    ]

    if summary.error_counts:
        lines.append("Top Error Codes:")
        lines.append("-" * 40)
        for error_code, count in get_top_errors(summary):
            lines.append(f"  {error_code}: {count}")
        lines.append("")

    if summary.warning_counts:
        lines.append("Warnings:")
        lines.append("-" * 40)
        for warning_code, count in sorted(summary.warning_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {warning_code}: {count}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)


def format_issues_text(result: ValidationResult) -> str:
    """Render every issue of a result as one line each, errors first."""
    lines = []
    for label, issues in (("ERROR", result.errors), ("WARNING", result.warnings)):
        for issue in issues:
            location = f" [{issue.field_name}]" if issue.field_name else ""
            lines.append(f"{label:<7} {issue.code}{location}: {issue.message}")
    return "\n".join(lines)
