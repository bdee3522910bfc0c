"""
Tests for the business-rule validator.

These tests verify the individual rules, amount reconciliation within the
monetary tolerance and the batch reporting helpers.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import TODAY, make_invoice, make_line_item
from ksef_validator.results import ValidationResult, ValidationSummary
from ksef_validator.rules import (
    VALIDATION_RULES,
    check_amount_consistency,
    check_line_items,
    get_rule_descriptions,
    sum_line_items_by_rate,
)
from ksef_validator.schemas import (
    BankAccount,
    Buyer,
    CorrectedInvoiceData,
    Invoice,
    InvoiceData,
    InvoiceType,
    LineItem,
    SalePeriod,
    VatRate,
)
from ksef_validator.validator import (
    create_validation_report,
    format_issues_text,
    format_summary_text,
    get_top_errors,
    validate_batch,
    validate_invoice,
)


def error_codes(result):
    return [issue.code for issue in result.errors]


def warning_codes(result):
    return [issue.code for issue in result.warnings]


def set_single_line(invoice: Invoice, line: LineItem, net: str, vat: str) -> None:
    """Replace the lines and keep the 23% summary consistent with them."""
    data = invoice.invoice_data
    data.line_items = [line]
    data.net_amount_23 = Decimal(net)
    data.vat_amount_23 = Decimal(vat)
    data.total_amount = Decimal(net) + Decimal(vat)


# ============================================================================
# Whole-document behaviour
# ============================================================================

class TestValidateInvoice:
    """Tests for the validate_invoice function."""

    def test_valid_invoice_passes(self, valid_invoice, today):
        result = validate_invoice(valid_invoice, today)
        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_none_invoice_raises(self):
        with pytest.raises(ValueError):
            validate_invoice(None)

    def test_all_structural_errors_in_one_pass(self, today):
        invoice = Invoice(seller=None, buyer=None, invoice_data=InvoiceData(invoice_number=""))
        result = validate_invoice(invoice, today)

        codes = error_codes(result)
        assert "INV_SELLER_MISSING" in codes
        assert "INV_BUYER_MISSING" in codes
        assert "INV_NUMBER_MISSING" in codes

    def test_missing_invoice_data_skips_only_that_section(self, valid_invoice, today):
        valid_invoice.invoice_data = None
        valid_invoice.seller.tax_id = "5261040829"

        result = validate_invoice(valid_invoice, today)

        assert error_codes(result) == ["INV_DATA_MISSING", "NIP_INVALID_CHECKSUM"]

    def test_rules_run_in_order(self):
        assert [rule.code for rule in VALIDATION_RULES] == [
            "structure",
            "seller",
            "buyer",
            "invoice_data",
            "line_items",
            "amount_consistency",
            "payment",
        ]
        assert set(get_rule_descriptions()) == {rule.code for rule in VALIDATION_RULES}

    def test_custom_rule_subset(self, valid_invoice, today):
        valid_invoice.seller.name = ""
        structure_only = [rule for rule in VALIDATION_RULES if rule.code == "structure"]
        assert validate_invoice(valid_invoice, today, structure_only).is_valid

    def test_repeated_validation_is_identical(self, valid_invoice, today):
        valid_invoice.seller.tax_id = "123"
        assert validate_invoice(valid_invoice, today) == validate_invoice(valid_invoice, today)


# ============================================================================
# Parties
# ============================================================================

class TestSellerRules:

    def test_missing_nip(self, valid_invoice, today):
        valid_invoice.seller.tax_id = "  "
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["SELLER_NIP_MISSING"]
        assert result.errors[0].field_name == "Seller.TaxId"

    def test_invalid_nip_is_rerooted(self, valid_invoice, today):
        valid_invoice.seller.tax_id = "5261040829"
        result = validate_invoice(valid_invoice, today)

        issue = result.errors[0]
        assert issue.code == "NIP_INVALID_CHECKSUM"
        assert issue.field_name == "Seller.TaxId"
        assert issue.message.startswith("Seller: ")

    def test_missing_name(self, valid_invoice, today):
        valid_invoice.seller.name = None
        assert error_codes(validate_invoice(valid_invoice, today)) == ["SELLER_NAME_MISSING"]

    def test_name_too_long(self, valid_invoice, today):
        valid_invoice.seller.name = "x" * 513
        assert error_codes(validate_invoice(valid_invoice, today)) == ["SELLER_NAME_TOO_LONG"]

    def test_name_at_limit(self, valid_invoice, today):
        valid_invoice.seller.name = "x" * 512
        assert validate_invoice(valid_invoice, today).is_valid


class TestBuyerRules:

    def test_no_identifier_at_all(self, valid_invoice, today):
        valid_invoice.buyer = Buyer(name="Anonim")
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["BUYER_ID_MISSING"]
        assert result.errors[0].field_name == "Buyer"

    @pytest.mark.parametrize(
        "buyer",
        [
            Buyer(eu_country_code="DE", eu_vat_id="123456789"),
            Buyer(other_id_country_code="US", other_id="12-3456789"),
            Buyer(no_identifier=True),
        ],
    )
    def test_alternative_identifiers(self, valid_invoice, today, buyer):
        valid_invoice.buyer = buyer
        assert validate_invoice(valid_invoice, today).is_valid

    def test_other_id_needs_country_code(self, valid_invoice, today):
        valid_invoice.buyer = Buyer(other_id="12-3456789")
        assert error_codes(validate_invoice(valid_invoice, today)) == ["BUYER_ID_MISSING"]

    def test_invalid_polish_nip(self, valid_invoice, today):
        valid_invoice.buyer.tax_id = "123"
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["NIP_INVALID_LENGTH"]
        assert result.errors[0].field_name == "Buyer.TaxId"
        assert result.errors[0].message.startswith("Buyer: ")

    def test_name_too_long(self, valid_invoice, today):
        valid_invoice.buyer.name = "x" * 513
        assert error_codes(validate_invoice(valid_invoice, today)) == ["BUYER_NAME_TOO_LONG"]


# ============================================================================
# Invoice data
# ============================================================================

class TestInvoiceDataRules:

    def test_invoice_number_too_long(self, valid_invoice, today):
        valid_invoice.invoice_data.invoice_number = "F" * 257
        assert error_codes(validate_invoice(valid_invoice, today)) == ["INV_NUMBER_TOO_LONG"]

    def test_missing_issue_date(self, valid_invoice, today):
        valid_invoice.invoice_data.issue_date = None
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["INV_DATE_MISSING"]
        assert result.errors[0].field_name == "InvoiceData.IssueDate"

    def test_future_issue_date_is_rerooted(self, valid_invoice, today):
        valid_invoice.invoice_data.issue_date = today + timedelta(days=1)
        result = validate_invoice(valid_invoice, today)
        assert "DATE_ISSUE_FUTURE" in error_codes(result)
        issue = next(e for e in result.errors if e.code == "DATE_ISSUE_FUTURE")
        assert issue.field_name == "InvoiceData.IssueDate"

    def test_future_sale_date(self, valid_invoice, today):
        valid_invoice.invoice_data.sale_date = today + timedelta(days=1)
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["DATE_SALE_FUTURE"]
        assert result.errors[0].field_name == "InvoiceData.SaleDate"

    def test_sale_date_and_period_warns(self, valid_invoice, today):
        valid_invoice.invoice_data.sale_period = SalePeriod(
            period_from=date(2025, 1, 1), period_to=date(2025, 1, 31)
        )
        result = validate_invoice(valid_invoice, today)
        assert result.is_valid
        assert warning_codes(result) == ["INV_DATE_AND_PERIOD"]

    def test_period_only(self, valid_invoice, today):
        valid_invoice.invoice_data.sale_date = None
        valid_invoice.invoice_data.sale_period = SalePeriod(
            period_from=date(2025, 1, 31), period_to=date(2025, 1, 1)
        )
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["DATE_PERIOD_INVALID"]
        assert result.errors[0].field_name == "InvoiceData.SalePeriod"

    def test_place_too_long(self, valid_invoice, today):
        valid_invoice.invoice_data.issue_place = "W" * 257
        assert error_codes(validate_invoice(valid_invoice, today)) == ["INV_PLACE_TOO_LONG"]

    @pytest.mark.parametrize("invoice_type", [InvoiceType.KOR, InvoiceType.KOR_ZAL, InvoiceType.KOR_ROZ])
    def test_correction_requires_reason_and_reference(self, valid_invoice, today, invoice_type):
        valid_invoice.invoice_data.invoice_type = invoice_type
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["INV_CORR_REASON_MISSING", "INV_CORR_DATA_MISSING"]

    def test_complete_correction(self, valid_invoice, today):
        data = valid_invoice.invoice_data
        data.invoice_type = InvoiceType.KOR
        data.correction_reason = "Błędna cena jednostkowa"
        data.corrected_invoice_data = CorrectedInvoiceData(
            corrected_invoice_number="FV/2024/120",
            corrected_invoice_issue_date=date(2024, 12, 20),
        )
        assert validate_invoice(valid_invoice, today).is_valid

    def test_correction_reason_too_long(self, valid_invoice, today):
        data = valid_invoice.invoice_data
        data.invoice_type = InvoiceType.KOR
        data.correction_reason = "r" * 257
        data.corrected_invoice_data = CorrectedInvoiceData(corrected_invoice_number="FV/2024/120")
        assert error_codes(validate_invoice(valid_invoice, today)) == ["INV_CORR_REASON_TOO_LONG"]

    def test_non_correction_ignores_correction_fields(self, valid_invoice, today):
        valid_invoice.invoice_data.invoice_type = InvoiceType.ZAL
        assert validate_invoice(valid_invoice, today).is_valid


# ============================================================================
# Line items
# ============================================================================

class TestLineItemRules:

    @pytest.mark.parametrize("items", [[], None])
    def test_no_items_only_warns(self, valid_invoice, today, items):
        valid_invoice.invoice_data.line_items = items
        result = validate_invoice(valid_invoice, today)
        assert result.is_valid
        assert "INV_NO_ITEMS" in warning_codes(result)

    def test_too_many_items(self):
        invoice = make_invoice()
        invoice.invoice_data.line_items = [make_line_item(line_number=i + 1) for i in range(10_001)]
        result = ValidationResult()
        check_line_items(invoice, result, {"today": TODAY})
        assert error_codes(result) == ["INV_TOO_MANY_ITEMS"]

    def test_line_number_must_be_positive(self, valid_invoice, today):
        valid_invoice.invoice_data.line_items[0].line_number = 0
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["ITEM_LINE_NUMBER_INVALID"]
        assert result.errors[0].field_name == "InvoiceData.LineItems[0].LineNumber"

    def test_duplicate_line_number(self, valid_invoice, today):
        data = valid_invoice.invoice_data
        data.line_items = [make_line_item(1, "500.00", "115.00", quantity="5"), make_line_item(1, "500.00", "115.00", quantity="5")]
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["ITEM_LINE_NUMBER_DUPLICATE"]
        assert result.errors[0].field_name == "InvoiceData.LineItems[1].LineNumber"
        assert result.errors[0].message.startswith("Line 2")

    def test_missing_product_name(self, valid_invoice, today):
        valid_invoice.invoice_data.line_items[0].product_name = " "
        assert error_codes(validate_invoice(valid_invoice, today)) == ["ITEM_NAME_MISSING"]

    def test_product_name_too_long(self, valid_invoice, today):
        valid_invoice.invoice_data.line_items[0].product_name = "p" * 513
        assert error_codes(validate_invoice(valid_invoice, today)) == ["ITEM_NAME_TOO_LONG"]

    def test_unit_too_long(self, valid_invoice, today):
        valid_invoice.invoice_data.line_items[0].unit = "u" * 257
        assert error_codes(validate_invoice(valid_invoice, today)) == ["ITEM_UNIT_TOO_LONG"]

    def test_no_amount_warns(self, valid_invoice, today):
        line = valid_invoice.invoice_data.line_items[0]
        line.net_amount = None
        line.gross_amount = None
        result = ValidationResult()
        check_line_items(valid_invoice, result, {"today": today})
        assert warning_codes(result) == ["ITEM_NO_AMOUNT"]
        assert result.warnings[0].field_name == "InvoiceData.LineItems[0]"

    def test_gross_only_is_enough(self, valid_invoice, today):
        line = valid_invoice.invoice_data.line_items[0]
        line.net_amount = None
        line.gross_amount = Decimal("1230.00")
        result = ValidationResult()
        check_line_items(valid_invoice, result, {"today": today})
        assert result.codes() == []


class TestTolerance:
    """Per-line net recomputation with the 0.02 tolerance (inclusive)."""

    @pytest.mark.parametrize(
        "unit_price, expect_warning",
        [
            ("100.01", False),
            ("100.02", False),
            ("100.03", True),
            ("100.05", True),
            ("99.95", True),
        ],
    )
    def test_net_amount_tolerance(self, valid_invoice, today, unit_price, expect_warning):
        line = make_line_item(net="100.00", vat="23.00", quantity="1", unit_price=unit_price)
        set_single_line(valid_invoice, line, "100.00", "23.00")

        result = validate_invoice(valid_invoice, today)

        assert result.is_valid
        assert ("ITEM_NET_MISMATCH" in warning_codes(result)) is expect_warning
        if expect_warning:
            issue = next(w for w in result.warnings if w.code == "ITEM_NET_MISMATCH")
            assert issue.field_name == "InvoiceData.LineItems[0].NetAmount"

    @pytest.mark.parametrize(
        "vat, expect_warning",
        [("23.00", False), ("23.02", False), ("22.98", False), ("23.03", True), ("25.00", True)],
    )
    def test_vat_amount_tolerance(self, valid_invoice, today, vat, expect_warning):
        line = make_line_item(net="100.00", vat=vat, quantity="1", unit_price="100.00")
        set_single_line(valid_invoice, line, "100.00", vat)

        result = validate_invoice(valid_invoice, today)

        assert ("ITEM_VAT_MISMATCH" in warning_codes(result)) is expect_warning
        if expect_warning:
            issue = next(w for w in result.warnings if w.code == "ITEM_VAT_MISMATCH")
            assert issue.field_name == "InvoiceData.LineItems[0].VatAmount"

    @pytest.mark.parametrize("vat, expect_warning", [("0.50", False), ("0.55", True)])
    def test_vat_midpoint_rounds_half_to_even(self, valid_invoice, today, vat, expect_warning):
        # 10.50 * 5% = 0.525 -> 0.52
        line = make_line_item(net="10.50", vat=vat, rate=VatRate.RATE_5, quantity="1", unit_price="10.50")
        valid_invoice.invoice_data.line_items = [line]

        result = ValidationResult()
        check_line_items(valid_invoice, result, {"today": today})

        assert ("ITEM_VAT_MISMATCH" in warning_codes(result)) is expect_warning
        if expect_warning:
            assert "expected 0.52" in result.warnings[0].message

    @pytest.mark.parametrize(
        "rate",
        [
            VatRate.RATE_0_DOMESTIC,
            VatRate.RATE_0_INTRA_COMMUNITY,
            VatRate.RATE_0_EXPORT,
            VatRate.EXEMPT,
            VatRate.REVERSE_CHARGE,
            VatRate.NOT_SUBJECT_TO_TAX_I,
            VatRate.NOT_SUBJECT_TO_TAX_II,
        ],
    )
    def test_rates_without_percentage_skip_vat_recomputation(self, valid_invoice, today, rate):
        line = make_line_item(net="100.00", vat="5.00", quantity="1", unit_price="100.00", rate=rate)
        valid_invoice.invoice_data.line_items = [line]
        result = ValidationResult()
        check_line_items(valid_invoice, result, {"today": today})
        assert "ITEM_VAT_MISMATCH" not in warning_codes(result)


# ============================================================================
# Amount consistency
# ============================================================================

class TestAmountConsistency:

    def test_historical_rate_folds_into_current_bucket(self, valid_invoice, today):
        data = valid_invoice.invoice_data
        data.line_items = [
            make_line_item(1, "500.00", "110.00", rate=VatRate.RATE_22, quantity="5"),
            make_line_item(2, "1000.00", "230.00", rate=VatRate.RATE_23),
        ]
        data.net_amount_23 = Decimal("1500.00")
        data.vat_amount_23 = Decimal("340.00")
        data.total_amount = Decimal("1840.00")

        result = validate_invoice(valid_invoice, today)

        assert result.is_valid
        assert result.warnings == []

    def test_historical_rate_only_reconciles_against_current_bucket(self, valid_invoice, today):
        data = valid_invoice.invoice_data
        data.line_items = [make_line_item(1, "100.00", "7.00", rate=VatRate.RATE_7, quantity="1")]
        data.net_amount_23 = None
        data.vat_amount_23 = None
        data.net_amount_8 = Decimal("100.00")
        data.vat_amount_8 = Decimal("7.00")
        data.total_amount = Decimal("107.00")

        assert validate_invoice(valid_invoice, today).warnings == []

    def test_sum_by_rate_folds_and_treats_missing_as_zero(self):
        items = [
            make_line_item(1, "100.00", "22.00", rate=VatRate.RATE_22),
            make_line_item(2, "100.00", "23.00", rate=VatRate.RATE_23),
            make_line_item(3, "50.00", "1.50", rate=VatRate.RATE_3),
            LineItem(line_number=4, product_name="x", vat_rate=VatRate.RATE_8),
        ]
        sums = sum_line_items_by_rate(items)
        assert sums[VatRate.RATE_23] == (Decimal("200.00"), Decimal("45.00"))
        assert sums[VatRate.RATE_4] == (Decimal("50.00"), Decimal("1.50"))
        assert sums[VatRate.RATE_8] == (Decimal("0"), Decimal("0"))
        assert VatRate.RATE_22 not in sums

    def test_net_summary_mismatch(self, valid_invoice, today):
        valid_invoice.invoice_data.net_amount_23 = Decimal("900.00")
        valid_invoice.invoice_data.total_amount = Decimal("1130.00")
        result = validate_invoice(valid_invoice, today)
        assert result.is_valid
        assert warning_codes(result) == ["INV_NET_SUM_MISMATCH"]
        assert result.warnings[0].field_name == "InvoiceData.NetAmount23"

    def test_vat_summary_mismatch(self, valid_invoice, today):
        valid_invoice.invoice_data.vat_amount_23 = Decimal("200.00")
        valid_invoice.invoice_data.total_amount = Decimal("1200.00")
        result = validate_invoice(valid_invoice, today)
        assert warning_codes(result) == ["INV_VAT_SUM_MISMATCH"]
        assert result.warnings[0].field_name == "InvoiceData.VatAmount23"

    def test_total_mismatch(self, valid_invoice, today):
        valid_invoice.invoice_data.total_amount = Decimal("1500.00")
        result = validate_invoice(valid_invoice, today)
        assert warning_codes(result) == ["INV_TOTAL_MISMATCH"]
        assert result.warnings[0].field_name == "InvoiceData.TotalAmount"

    def test_total_within_tolerance(self, valid_invoice, today):
        valid_invoice.invoice_data.total_amount = Decimal("1230.02")
        assert validate_invoice(valid_invoice, today).warnings == []

    def test_absent_summary_field_is_not_compared(self, valid_invoice, today):
        data = valid_invoice.invoice_data
        data.net_amount_23 = None
        data.vat_amount_23 = None
        data.total_amount = Decimal("0")
        result = ValidationResult()
        check_amount_consistency(valid_invoice, result, {"today": today})
        assert result.codes() == []

    def test_skipped_without_items(self, valid_invoice, today):
        valid_invoice.invoice_data.line_items = []
        valid_invoice.invoice_data.total_amount = Decimal("5.00")
        result = ValidationResult()
        check_amount_consistency(valid_invoice, result, {"today": today})
        assert result.codes() == []


# ============================================================================
# Payment
# ============================================================================

class TestPaymentRules:

    def test_empty_account_number(self, valid_invoice, today):
        valid_invoice.invoice_data.payment.bank_accounts = [BankAccount(account_number="")]
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["PAYMENT_ACCOUNT_EMPTY"]
        assert result.errors[0].field_name == "InvoiceData.Payment.BankAccounts[0].AccountNumber"

    def test_invalid_account_is_rerooted(self, valid_invoice, today):
        payment = valid_invoice.invoice_data.payment
        payment.bank_accounts.append(BankAccount(account_number="PL61109010140000071219812875"))

        result = validate_invoice(valid_invoice, today)

        assert error_codes(result) == ["IBAN_INVALID_CHECKSUM"]
        issue = result.errors[0]
        assert issue.field_name == "InvoiceData.Payment.BankAccounts[1].AccountNumber"
        assert issue.message.startswith("Bank account 2: ")

    def test_factoring_account_empty(self, valid_invoice, today):
        valid_invoice.invoice_data.payment.factoring_bank_account = BankAccount(account_number=" ")
        result = validate_invoice(valid_invoice, today)
        assert error_codes(result) == ["PAYMENT_FACTORING_EMPTY"]
        assert result.errors[0].field_name == "InvoiceData.Payment.FactoringBankAccount.AccountNumber"

    def test_factoring_account_checked(self, valid_invoice, today):
        valid_invoice.invoice_data.payment.factoring_bank_account = BankAccount(account_number="123456789012")
        result = validate_invoice(valid_invoice, today)
        assert result.is_valid
        assert warning_codes(result) == ["NRB_UNUSUAL_LENGTH"]
        assert result.warnings[0].message.startswith("Factoring account: ")

    def test_no_payment_block(self, valid_invoice, today):
        valid_invoice.invoice_data.payment = None
        assert validate_invoice(valid_invoice, today).is_valid


# ============================================================================
# Batch reporting
# ============================================================================

class TestValidateBatch:
    """Tests for batch validation."""

    def test_batch_with_mixed_invoices(self, valid_invoice, today):
        invalid = make_invoice()
        invalid.seller.tax_id = "5261040829"
        invalid.invoice_data.invoice_number = ""

        results, summary = validate_batch([valid_invoice, invalid], today)

        assert summary.total_invoices == 2
        assert summary.valid_invoices == 1
        assert summary.invalid_invoices == 1
        assert summary.error_counts == {"NIP_INVALID_CHECKSUM": 1, "INV_NUMBER_MISSING": 1}
        assert results[0].invoice_id == "FV/2025/001"
        assert results[1].invoice_id == "invoice-2"

    def test_warning_counts_aggregated(self, today):
        first, second = make_invoice(), make_invoice()
        first.invoice_data.total_amount = Decimal("1.00")
        second.invoice_data.total_amount = Decimal("2.00")

        _, summary = validate_batch([first, second], today)

        assert summary.valid_invoices == 2
        assert summary.warning_counts == {"INV_TOTAL_MISMATCH": 2}

    def test_empty_batch(self):
        results, summary = validate_batch([])
        assert results == []
        assert summary.total_invoices == 0

    def test_report(self, valid_invoice, today):
        report = create_validation_report([valid_invoice], today)
        assert report.summary.valid_invoices == 1
        assert report.per_invoice_results[0].is_valid


class TestFormatting:
    """Tests for text formatting of summaries and results."""

    def test_format_with_errors(self):
        summary = ValidationSummary(
            total_invoices=10,
            valid_invoices=7,
            invalid_invoices=3,
            error_counts={"NIP_INVALID_CHECKSUM": 2, "INV_DATE_MISSING": 1},
            warning_counts={"INV_NO_ITEMS": 4},
        )

        text = format_summary_text(summary)

        assert "Total invoices processed: 10" in text
        assert "NIP_INVALID_CHECKSUM: 2" in text
        assert "INV_NO_ITEMS: 4" in text
        assert get_top_errors(summary, 1) == [("NIP_INVALID_CHECKSUM", 2)]

    def test_format_issues(self):
        result = ValidationResult.with_error("NIP_EMPTY", "Tax ID (NIP) is required", "Seller.TaxId")
        result.add_warning("INV_NO_ITEMS", "no lines")

        lines = format_issues_text(result).splitlines()

        assert lines[0].startswith("ERROR")
        assert "NIP_EMPTY [Seller.TaxId]" in lines[0]
        assert lines[1].startswith("WARNING")
