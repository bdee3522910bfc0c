"""
Pydantic models for KSeF structured invoices (FA).

The models are a plain record graph: fields are freely settable and carry
no cross-field invariants. Consistency is judged by the validators.
- Invoice, InvoiceHeader and the parties (Seller, Buyer, ThirdParty)
- InvoiceData with per-rate summaries, LineItem, Payment and BankAccount
- Closed enums for VAT rates, invoice types and third-party roles
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class VatRate(str, Enum):
    """VAT rate marker of a line item (P_12); values are the FA(3) tokens."""
    RATE_23 = "23"
    RATE_22 = "22"
    RATE_8 = "8"
    RATE_7 = "7"
    RATE_5 = "5"
    RATE_4 = "4"
    RATE_3 = "3"
    RATE_0_DOMESTIC = "0 KR"
    RATE_0_INTRA_COMMUNITY = "0 WDT"
    RATE_0_EXPORT = "0 EX"
    EXEMPT = "zw"
    REVERSE_CHARGE = "oo"
    NOT_SUBJECT_TO_TAX_I = "np I"
    NOT_SUBJECT_TO_TAX_II = "np II"

    @property
    def percentage(self) -> Optional[Decimal]:
        """Rate used to recompute VAT; None for zero-rated and non-rate variants."""
        return _VAT_PERCENTAGES.get(self)

    @property
    def bucket(self) -> "VatRate":
        """Current-rate summary bucket; historical rates fold into their successor."""
        return _VAT_BUCKETS.get(self, self)

    @property
    def display(self) -> str:
        return _VAT_DISPLAY.get(self, self.value)


_VAT_PERCENTAGES: dict[VatRate, Decimal] = {
    VatRate.RATE_23: Decimal("23"),
    VatRate.RATE_22: Decimal("22"),
    VatRate.RATE_8: Decimal("8"),
    VatRate.RATE_7: Decimal("7"),
    VatRate.RATE_5: Decimal("5"),
    VatRate.RATE_4: Decimal("4"),
    VatRate.RATE_3: Decimal("3"),
}

_VAT_BUCKETS: dict[VatRate, VatRate] = {
    VatRate.RATE_22: VatRate.RATE_23,
    VatRate.RATE_7: VatRate.RATE_8,
    VatRate.RATE_3: VatRate.RATE_4,
}

_VAT_DISPLAY: dict[VatRate, str] = {
    VatRate.RATE_23: "23%",
    VatRate.RATE_22: "22%",
    VatRate.RATE_8: "8%",
    VatRate.RATE_7: "7%",
    VatRate.RATE_5: "5%",
    VatRate.RATE_4: "4%",
    VatRate.RATE_3: "3%",
    VatRate.RATE_0_DOMESTIC: "0%",
    VatRate.RATE_0_INTRA_COMMUNITY: "0% intra-community supply",
    VatRate.RATE_0_EXPORT: "0% export",
    VatRate.EXEMPT: "exempt",
    VatRate.REVERSE_CHARGE: "reverse charge",
    VatRate.NOT_SUBJECT_TO_TAX_I: "not subject to tax I",
    VatRate.NOT_SUBJECT_TO_TAX_II: "not subject to tax II",
}


class InvoiceType(str, Enum):
    """Invoice kind (RodzajFaktury)."""
    VAT = "VAT"
    KOR = "KOR"
    ZAL = "ZAL"
    ROZ = "ROZ"
    UPR = "UPR"
    KOR_ZAL = "KOR_ZAL"
    KOR_ROZ = "KOR_ROZ"

    @property
    def is_correction(self) -> bool:
        return self in (InvoiceType.KOR, InvoiceType.KOR_ZAL, InvoiceType.KOR_ROZ)


class SubjectRole(IntEnum):
    """Role of a third party (Podmiot3)."""
    FACTOR = 1
    RECIPIENT = 2
    ORIGINAL_ENTITY = 3
    ADDITIONAL_BUYER = 4
    INVOICE_ISSUER = 5
    PAYER = 6
    LOCAL_GOVERNMENT_ISSUER = 7
    LOCAL_GOVERNMENT_RECIPIENT = 8
    VAT_GROUP_MEMBER_ISSUER = 9
    VAT_GROUP_MEMBER_RECIPIENT = 10
    EMPLOYEE = 11


class CorrectionType(IntEnum):
    """When a correction takes effect (TypKorekty)."""
    ORIGINAL_DATE = 1
    CORRECTION_DATE = 2
    OTHER_DATE = 3


class PaymentMethod(IntEnum):
    """Payment method (FormaPlatnosci)."""
    CASH = 1
    CARD = 2
    VOUCHER = 3
    CHEQUE = 4
    CREDIT = 5
    TRANSFER = 6
    MOBILE = 7


# ============================================================================
# Common Blocks
# ============================================================================

class Address(BaseModel):
    country_code: str = Field("PL", description="ISO 3166 alpha-2 country code")
    address_line1: str = Field("", description="Street, building, postal code and city")
    address_line2: Optional[str] = None


class ContactData(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None


class SalePeriod(BaseModel):
    """Settlement period (OkresFa) used instead of a single sale date."""
    period_from: date
    period_to: date


class InvoiceHeader(BaseModel):
    """Document header (Naglowek); form_variant selects FA(2) or FA(3)."""
    form_variant: int = Field(3, description="Schema variant: 2 for FA(2), 3 for FA(3)")
    creation_datetime: Optional[datetime] = Field(
        None,
        description="Creation timestamp; the serializer uses the current time when unset"
    )
    system_info: Optional[str] = None


# ============================================================================
# Parties
# ============================================================================

class Seller(BaseModel):
    """Seller (Podmiot1)."""
    tax_id: Optional[str] = Field("", description="Polish NIP, required")
    name: Optional[str] = Field("", description="Full legal name")
    address: Optional[Address] = None
    correspondence_address: Optional[Address] = None
    contact: Optional[ContactData] = None
    eori_number: Optional[str] = None


class Buyer(BaseModel):
    """
    Buyer (Podmiot2).

    Exactly one identification route is expected: domestic NIP, EU VAT
    number, another foreign identifier, or the explicit no-identifier flag.
    """
    tax_id: Optional[str] = None
    eu_country_code: Optional[str] = None
    eu_vat_id: Optional[str] = None
    other_id_country_code: Optional[str] = None
    other_id: Optional[str] = None
    no_identifier: bool = False
    name: Optional[str] = None
    address: Optional[Address] = None
    contact: Optional[ContactData] = None
    customer_number: Optional[str] = None
    is_local_government_unit: bool = False
    is_vat_group: bool = False

    @property
    def has_polish_tax_id(self) -> bool:
        return bool(self.tax_id)

    @property
    def has_eu_vat_id(self) -> bool:
        return bool(self.eu_country_code) and bool(self.eu_vat_id)

    @property
    def has_other_id(self) -> bool:
        return bool(self.other_id_country_code) and bool(self.other_id)

    @property
    def has_any_identifier(self) -> bool:
        return (
            self.has_polish_tax_id
            or self.has_eu_vat_id
            or self.has_other_id
            or self.no_identifier
        )


class ThirdParty(BaseModel):
    """Third party (Podmiot3): factor, recipient, additional buyer, payer, ..."""
    tax_id: Optional[str] = None
    internal_id: Optional[str] = None
    eu_country_code: Optional[str] = None
    eu_vat_id: Optional[str] = None
    other_id_country_code: Optional[str] = None
    other_id: Optional[str] = None
    no_identifier: bool = False
    name: Optional[str] = None
    address: Optional[Address] = None
    role: SubjectRole = SubjectRole.RECIPIENT
    role_description: Optional[str] = None
    share_percentage: Optional[Decimal] = Field(
        None,
        description="Share of an additional buyer, in percent"
    )


# ============================================================================
# Invoice Data
# ============================================================================

class InvoiceAnnotations(BaseModel):
    """Mandatory annotations (Adnotacje); False serializes as 2 ("no")."""
    cash_accounting: bool = False          # P_16
    self_billing: bool = False             # P_17
    reverse_charge: bool = False           # P_18
    split_payment: bool = False            # P_18A
    simplified_triangular: bool = False    # P_23


class CorrectedInvoiceData(BaseModel):
    """Reference to the invoice being corrected (DaneFaKorygowanej)."""
    corrected_invoice_number: str = ""
    corrected_invoice_issue_date: Optional[date] = None
    corrected_invoice_ksef_number: Optional[str] = None


class LineItem(BaseModel):
    """A single invoice line (FaWiersz)."""
    line_number: int = Field(0, description="1-based line number, unique per invoice")
    product_name: Optional[str] = Field("", description="Goods or service name (P_7)")
    unit: Optional[str] = Field(None, description="Unit of measure (P_8A)")
    quantity: Optional[Decimal] = Field(None, description="Quantity (P_8B)")
    unit_net_price: Optional[Decimal] = Field(None, description="Unit net price (P_9A)")
    unit_gross_price: Optional[Decimal] = Field(None, description="Unit gross price (P_9B)")
    discount: Optional[Decimal] = Field(None, description="Discount amount (P_10)")
    net_amount: Optional[Decimal] = Field(None, description="Net value (P_11)")
    vat_amount: Optional[Decimal] = Field(None, description="VAT amount (P_11A)")
    gross_amount: Optional[Decimal] = Field(None, description="Gross value (P_11Vat)")
    vat_rate: VatRate = Field(VatRate.RATE_23, description="VAT rate marker (P_12)")
    sale_date: Optional[date] = Field(None, description="Per-line sale date (P_6A)")
    gtin: Optional[str] = None
    pkwiu: Optional[str] = None
    cn: Optional[str] = None


class BankAccount(BaseModel):
    account_number: str = Field("", description="IBAN or domestic NRB")
    swift: Optional[str] = None
    bank_name: Optional[str] = None
    description: Optional[str] = None


class Payment(BaseModel):
    """Payment block (Platnosc)."""
    due_dates: list[date] = Field(default_factory=list)
    payment_method: Optional[PaymentMethod] = None
    bank_accounts: list[BankAccount] = Field(default_factory=list)
    factoring_bank_account: Optional[BankAccount] = None


class InvoiceData(BaseModel):
    """
    Invoice body (Fa): identification, dates, per-rate summaries, lines
    and payment.

    Per-rate summary fields exist only for the current rate set; lines at
    historical rates (22%, 7%, 3%) are reported under 23%, 8% and 4%.
    """

    # ========================================================================
    # Identification and Dates
    # ========================================================================
    currency_code: str = Field("PLN", description="ISO 4217 currency code (KodWaluty)")
    issue_date: Optional[date] = Field(None, description="Issue date (P_1)")
    issue_place: Optional[str] = Field(None, description="Place of issue (P_1M)")
    invoice_number: Optional[str] = Field("", description="Invoice number (P_2)")
    sale_date: Optional[date] = Field(None, description="Sale/delivery date (P_6)")
    sale_period: Optional[SalePeriod] = Field(None, description="Settlement period (OkresFa)")

    # ========================================================================
    # Per-Rate Summaries
    # ========================================================================
    net_amount_23: Optional[Decimal] = None       # P_13_1
    vat_amount_23: Optional[Decimal] = None       # P_14_1
    net_amount_8: Optional[Decimal] = None        # P_13_2
    vat_amount_8: Optional[Decimal] = None        # P_14_2
    net_amount_5: Optional[Decimal] = None        # P_13_3
    vat_amount_5: Optional[Decimal] = None        # P_14_3
    net_amount_0: Optional[Decimal] = None        # P_13_6_1
    net_amount_wdt: Optional[Decimal] = None      # P_13_6_2
    net_amount_export: Optional[Decimal] = None   # P_13_6_3
    exempt_amount: Optional[Decimal] = None       # P_13_7
    not_taxable_amount: Optional[Decimal] = None  # P_13_8
    not_taxable_amount_ii: Optional[Decimal] = None  # P_13_9
    reverse_charge_amount: Optional[Decimal] = None  # P_13_10
    net_amount_4: Optional[Decimal] = None        # P_13_11
    vat_amount_4: Optional[Decimal] = None        # P_14_11
    total_amount: Decimal = Field(Decimal("0"), description="Amount due (P_15)")

    # ========================================================================
    # Kind, Corrections, Lines, Payment
    # ========================================================================
    annotations: InvoiceAnnotations = Field(default_factory=InvoiceAnnotations)
    invoice_type: InvoiceType = InvoiceType.VAT
    correction_reason: Optional[str] = None
    correction_type: Optional[CorrectionType] = None
    corrected_invoice_data: Optional[CorrectedInvoiceData] = None
    line_items: Optional[list[LineItem]] = Field(default_factory=list)
    payment: Optional[Payment] = None

    @property
    def has_sale_date(self) -> bool:
        return self.sale_date is not None

    @property
    def has_sale_period(self) -> bool:
        return self.sale_period is not None

    @property
    def is_correction(self) -> bool:
        return self.invoice_type.is_correction

    @property
    def total_net_amount(self) -> Decimal:
        return sum(
            (
                amount or Decimal("0")
                for amount in (
                    self.net_amount_23,
                    self.net_amount_8,
                    self.net_amount_5,
                    self.net_amount_4,
                    self.net_amount_0,
                    self.net_amount_wdt,
                    self.net_amount_export,
                    self.exempt_amount,
                    self.not_taxable_amount,
                    self.not_taxable_amount_ii,
                    self.reverse_charge_amount,
                )
            ),
            Decimal("0"),
        )

    @property
    def total_vat_amount(self) -> Decimal:
        return sum(
            (
                amount or Decimal("0")
                for amount in (
                    self.vat_amount_23,
                    self.vat_amount_8,
                    self.vat_amount_5,
                    self.vat_amount_4,
                )
            ),
            Decimal("0"),
        )


class Invoice(BaseModel):
    """
    Structured invoice document (Faktura).

    Sections may be absent (None); the business-rule validator reports a
    missing seller, buyer or invoice data instead of failing.
    """
    header: InvoiceHeader = Field(default_factory=InvoiceHeader)
    seller: Optional[Seller] = Field(default_factory=Seller)
    buyer: Optional[Buyer] = Field(default_factory=Buyer)
    recipients: list[ThirdParty] = Field(default_factory=list)
    invoice_data: Optional[InvoiceData] = Field(default_factory=InvoiceData)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "seller": {
                        "tax_id": "5261040828",
                        "name": "Przykładowa Firma Sp. z o.o.",
                        "address": {"country_code": "PL", "address_line1": "ul. Prosta 1, 00-001 Warszawa"},
                    },
                    "buyer": {
                        "tax_id": "1234563218",
                        "name": "Nabywca S.A.",
                    },
                    "invoice_data": {
                        "currency_code": "PLN",
                        "issue_date": "2025-01-15",
                        "invoice_number": "FV/2025/001",
                        "sale_date": "2025-01-15",
                        "net_amount_23": "1000.00",
                        "vat_amount_23": "230.00",
                        "total_amount": "1230.00",
                        "line_items": [
                            {
                                "line_number": 1,
                                "product_name": "Usługa programistyczna",
                                "unit": "godz.",
                                "quantity": "10",
                                "unit_net_price": "100.00",
                                "net_amount": "1000.00",
                                "vat_amount": "230.00",
                                "vat_rate": "23",
                            }
                        ],
                    },
                }
            ]
        }
    }
