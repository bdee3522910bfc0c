"""
Tests for the ValidationResult accumulator.
"""

import pytest
from pydantic import ValidationError

from ksef_validator.results import ValidationIssue, ValidationResult


class TestValidationResult:

    def test_empty_result_is_valid(self):
        result = ValidationResult.success()
        assert result.is_valid
        assert not result.has_errors
        assert not result.has_warnings

    def test_warnings_do_not_invalidate(self):
        result = ValidationResult.with_warning("W1", "just a warning")
        assert result.is_valid
        assert result.has_warnings

    def test_errors_invalidate(self):
        result = ValidationResult.with_error("E1", "broken", "Seller.Name")
        assert not result.is_valid
        assert result.errors[0] == ValidationIssue(code="E1", message="broken", field_name="Seller.Name")

    def test_issues_keep_insertion_order(self):
        result = ValidationResult()
        result.add_error("E1", "first")
        result.add_warning("W1", "warning")
        result.add_error("E2", "second")
        assert result.codes() == ["E1", "E2", "W1"]

    def test_issue_is_immutable(self):
        issue = ValidationIssue(code="E1", message="broken")
        with pytest.raises(ValidationError):
            issue.code = "E2"


class TestMerge:

    def test_merge_appends_without_deduplication(self):
        target = ValidationResult.with_error("E1", "first")
        other = ValidationResult.with_error("E1", "first")
        other.add_warning("W1", "warning")

        target.merge(other)

        assert [e.code for e in target.errors] == ["E1", "E1"]
        assert [w.code for w in target.warnings] == ["W1"]

    def test_merge_reroots_field_names(self):
        target = ValidationResult()
        target.merge(
            ValidationResult.with_error("NIP_INVALID_CHECKSUM", "bad checksum", "TaxId"),
            field_prefix="Seller",
            message_prefix="Seller",
        )

        issue = target.errors[0]
        assert issue.field_name == "Seller.TaxId"
        assert issue.message == "Seller: bad checksum"

    def test_merge_prefix_without_field_name(self):
        target = ValidationResult()
        target.merge(ValidationResult.with_warning("W1", "odd"), field_prefix="InvoiceData")
        assert target.warnings[0].field_name == "InvoiceData"
        assert target.warnings[0].message == "odd"

    def test_merge_into_itself_with_prefix(self):
        result = ValidationResult.with_error("E1", "broken", "TaxId")
        result.add_warning("W1", "odd")

        result.merge(result, field_prefix="Seller", message_prefix="Seller")

        assert [e.field_name for e in result.errors] == ["TaxId", "Seller.TaxId"]
        assert [w.message for w in result.warnings] == ["odd", "Seller: odd"]

    def test_merge_into_itself_without_prefix(self):
        result = ValidationResult.with_error("E1", "broken")
        result.merge(result)
        assert result.codes() == ["E1", "E1"]

    def test_merge_leaves_source_untouched(self):
        source = ValidationResult.with_error("E1", "broken", "TaxId")
        ValidationResult().merge(source, field_prefix="Buyer")
        assert source.errors[0].field_name == "TaxId"
