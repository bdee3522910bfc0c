"""
Validation result models shared by every validator.

- ValidationIssue: a single error or warning (code, message, field path)
- ValidationResult: the mutable accumulator returned by each validation call
- InvoiceValidationResult / ValidationSummary / ValidationReport: batch reporting
"""

from typing import Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """
    A single validation finding.

    Attributes:
        code: Stable machine-readable code (e.g. "NIP_INVALID_CHECKSUM")
        message: Human-readable description
        field_name: Dotted path into the document (e.g. "Seller.TaxId")
    """
    code: str = Field(..., min_length=1, description="Stable issue code")
    message: str = Field(..., description="Human-readable description")
    field_name: Optional[str] = Field(None, description="Dotted path of the offending field")

    model_config = {"frozen": True}


class ValidationResult(BaseModel):
    """
    Accumulated outcome of a validation call.

    Errors make the document invalid; warnings flag anomalies without
    rejecting it. Issues keep the order in which they were added.
    """
    errors: list[ValidationIssue] = Field(
        default_factory=list,
        description="Issues that make the document invalid"
    )
    warnings: list[ValidationIssue] = Field(
        default_factory=list,
        description="Issues worth surfacing that do not reject the document"
    )

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def add_error(self, code: str, message: str, field_name: Optional[str] = None) -> None:
        self.errors.append(ValidationIssue(code=code, message=message, field_name=field_name))

    def add_warning(self, code: str, message: str, field_name: Optional[str] = None) -> None:
        self.warnings.append(ValidationIssue(code=code, message=message, field_name=field_name))

    def merge(
        self,
        other: "ValidationResult",
        field_prefix: Optional[str] = None,
        message_prefix: Optional[str] = None,
    ) -> None:
        """
        Append all issues of another result, preserving their order.

        Args:
            other: Result whose issues are appended (not deduplicated)
            field_prefix: Optional path the other result's field names are re-rooted under
            message_prefix: Optional label prepended to each message (e.g. "Seller")
        """
        if field_prefix is None and message_prefix is None:
            self.errors.extend(other.errors)
            self.warnings.extend(other.warnings)
            return

        # Build both lists first; other may be self
        errors = [_reroot(issue, field_prefix, message_prefix) for issue in other.errors]
        warnings = [_reroot(issue, field_prefix, message_prefix) for issue in other.warnings]
        self.errors.extend(errors)
        self.warnings.extend(warnings)

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def with_error(cls, code: str, message: str, field_name: Optional[str] = None) -> "ValidationResult":
        result = cls()
        result.add_error(code, message, field_name)
        return result

    @classmethod
    def with_warning(cls, code: str, message: str, field_name: Optional[str] = None) -> "ValidationResult":
        result = cls()
        result.add_warning(code, message, field_name)
        return result

    def codes(self) -> list[str]:
        """Codes of all errors followed by all warnings."""
        return [issue.code for issue in self.errors] + [issue.code for issue in self.warnings]


def _reroot(
    issue: ValidationIssue,
    field_prefix: Optional[str],
    message_prefix: Optional[str],
) -> ValidationIssue:
    field_name = issue.field_name
    if field_prefix:
        field_name = f"{field_prefix}.{field_name}" if field_name else field_prefix
    message = f"{message_prefix}: {issue.message}" if message_prefix else issue.message
    return ValidationIssue(code=issue.code, message=message, field_name=field_name)


# ============================================================================
# Batch Reporting
# ============================================================================

class InvoiceValidationResult(BaseModel):
    """Validation outcome for one invoice in a batch."""
    invoice_id: str = Field(
        ...,
        description="Identifier for the invoice (typically the invoice number)"
    )
    result: ValidationResult = Field(
        default_factory=ValidationResult,
        description="Combined business-rule and schema findings"
    )

    @property
    def is_valid(self) -> bool:
        return self.result.is_valid


class ValidationSummary(BaseModel):
    """
    Aggregated validation summary for a batch of invoices.

    Counts are keyed by issue code.
    """
    total_invoices: int = Field(..., ge=0)
    valid_invoices: int = Field(..., ge=0)
    invalid_invoices: int = Field(..., ge=0)
    error_counts: dict[str, int] = Field(default_factory=dict)
    warning_counts: dict[str, int] = Field(default_factory=dict)


class ValidationReport(BaseModel):
    """Complete validation report: summary plus per-invoice results."""
    summary: ValidationSummary
    per_invoice_results: list[InvoiceValidationResult] = Field(default_factory=list)
