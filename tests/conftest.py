"""
Shared fixtures: a complete, valid FA(3) invoice and a fixed reference date.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from ksef_validator.schemas import (
    Address,
    BankAccount,
    Buyer,
    Invoice,
    InvoiceData,
    InvoiceHeader,
    LineItem,
    Payment,
    PaymentMethod,
    Seller,
    VatRate,
)

TODAY = date(2025, 2, 1)

VALID_SELLER_NIP = "5261040828"
VALID_BUYER_NIP = "1234563218"
VALID_IBAN = "PL61109010140000071219812874"


def make_line_item(
    line_number: int = 1,
    net: str = "1000.00",
    vat: str = "230.00",
    rate: VatRate = VatRate.RATE_23,
    quantity: str = "10",
    unit_price: str = "100.00",
) -> LineItem:
    return LineItem(
        line_number=line_number,
        product_name="Usługa programistyczna",
        unit="godz.",
        quantity=Decimal(quantity),
        unit_net_price=Decimal(unit_price),
        net_amount=Decimal(net),
        vat_amount=Decimal(vat),
        vat_rate=rate,
    )


def make_invoice() -> Invoice:
    """Build an invoice that passes both business rules and the FA(3) schema."""
    return Invoice(
        header=InvoiceHeader(creation_datetime=datetime(2025, 1, 15, 10, 0, 0)),
        seller=Seller(
            tax_id=VALID_SELLER_NIP,
            name="Przykładowa Firma Sp. z o.o.",
            address=Address(country_code="PL", address_line1="ul. Prosta 1, 00-001 Warszawa"),
        ),
        buyer=Buyer(
            tax_id=VALID_BUYER_NIP,
            name="Nabywca S.A.",
            address=Address(country_code="PL", address_line1="ul. Długa 5, 30-001 Kraków"),
        ),
        invoice_data=InvoiceData(
            currency_code="PLN",
            issue_date=date(2025, 1, 15),
            invoice_number="FV/2025/001",
            sale_date=date(2025, 1, 15),
            net_amount_23=Decimal("1000.00"),
            vat_amount_23=Decimal("230.00"),
            total_amount=Decimal("1230.00"),
            line_items=[make_line_item()],
            payment=Payment(
                due_dates=[date(2025, 2, 14)],
                payment_method=PaymentMethod.TRANSFER,
                bank_accounts=[BankAccount(account_number=VALID_IBAN)],
            ),
        ),
    )


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def valid_invoice() -> Invoice:
    """A complete invoice with no errors and no warnings."""
    return make_invoice()
