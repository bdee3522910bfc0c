"""
XML serialization of invoices into the FA(2) / FA(3) structured format.

The header's form variant selects the target namespace. Optional fields that
are not set are omitted; required blocks that are missing in the model are
simply not written, so schema validation reports them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from lxml import etree

from .config import FA2_NAMESPACE, FA3_NAMESPACE
from .schemas import (
    Address,
    BankAccount,
    Buyer,
    ContactData,
    Invoice,
    InvoiceData,
    LineItem,
    Payment,
    Seller,
    ThirdParty,
    VatRate,
)
from .tax_id import normalize_tax_id

FORM_CODE = "FA"
SCHEMA_REVISION = "1-0E"

# FA(2) has a single 0% token and a single "not subject to tax" token
FA2_VAT_TOKENS: dict[VatRate, str] = {
    VatRate.RATE_0_DOMESTIC: "0",
    VatRate.RATE_0_INTRA_COMMUNITY: "0",
    VatRate.RATE_0_EXPORT: "0",
    VatRate.NOT_SUBJECT_TO_TAX_I: "np",
    VatRate.NOT_SUBJECT_TO_TAX_II: "np",
}


class InvoiceSerializationError(Exception):
    """Raised when an invoice cannot be turned into XML."""


def _amount(value: Decimal) -> str:
    return f"{value:.2f}"


def _number(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _choice(flag: bool) -> str:
    return "1" if flag else "2"


class _FaWriter:
    """Element factory bound to one target namespace."""

    def __init__(self, form_variant: int):
        self.is_fa2 = form_variant == 2
        self.namespace = FA2_NAMESPACE if self.is_fa2 else FA3_NAMESPACE

    def root(self, name: str) -> etree._Element:
        return etree.Element(f"{{{self.namespace}}}{name}", nsmap={None: self.namespace})

    def sub(self, parent: etree._Element, name: str, text: Optional[str] = None) -> etree._Element:
        element = etree.SubElement(parent, f"{{{self.namespace}}}{name}")
        if text is not None:
            element.text = text
        return element

    def optional(self, parent: etree._Element, name: str, value) -> None:
        if value is None or value == "":
            return
        if isinstance(value, Decimal):
            value = _number(value)
        elif isinstance(value, date):
            value = value.isoformat()
        self.sub(parent, name, str(value))

    def optional_amount(self, parent: etree._Element, name: str, value: Optional[Decimal]) -> None:
        if value is not None:
            self.sub(parent, name, _amount(value))

    def vat_token(self, rate: VatRate) -> str:
        if self.is_fa2:
            return FA2_VAT_TOKENS.get(rate, rate.value)
        return rate.value


class InvoiceXmlSerializer:
    """Serializes Invoice models into FA(2) or FA(3) XML."""

    def serialize_to_bytes(self, invoice: Invoice) -> bytes:
        """
        Serialize an invoice to UTF-8 encoded XML with an XML declaration.

        Raises:
            InvoiceSerializationError: If the invoice is None or lacks the
                seller, buyer or invoice data sections
        """
        if invoice is None:
            raise InvoiceSerializationError("Cannot serialize a missing invoice")
        if invoice.seller is None:
            raise InvoiceSerializationError("Cannot serialize an invoice without a seller")
        if invoice.buyer is None:
            raise InvoiceSerializationError("Cannot serialize an invoice without a buyer")
        if invoice.invoice_data is None:
            raise InvoiceSerializationError("Cannot serialize an invoice without invoice data")

        writer = _FaWriter(invoice.header.form_variant)
        root = writer.root("Faktura")

        self._write_header(writer, root, invoice)
        self._write_seller(writer, root, invoice.seller)
        self._write_buyer(writer, root, invoice.buyer)
        for party in invoice.recipients:
            self._write_third_party(writer, root, party)
        self._write_invoice_data(writer, root, invoice.invoice_data)

        return etree.tostring(root, xml_declaration=True, encoding="utf-8", pretty_print=True)

    def serialize_to_xml(self, invoice: Invoice) -> str:
        """Serialize an invoice to an XML string."""
        return self.serialize_to_bytes(invoice).decode("utf-8")

    # ========================================================================
    # Header and parties
    # ========================================================================

    def _write_header(self, w: _FaWriter, root: etree._Element, invoice: Invoice) -> None:
        header = invoice.header
        naglowek = w.sub(root, "Naglowek")

        form_code = w.sub(naglowek, "KodFormularza", FORM_CODE)
        form_code.set("kodSystemowy", "FA (2)" if w.is_fa2 else "FA (3)")
        form_code.set("wersjaSchemy", SCHEMA_REVISION)

        w.sub(naglowek, "WariantFormularza", "2" if w.is_fa2 else "3")

        created = header.creation_datetime or datetime.now().replace(microsecond=0)
        w.sub(naglowek, "DataWytworzeniaFa", created.isoformat())
        w.optional(naglowek, "SystemInfo", header.system_info)

    def _write_address(self, w: _FaWriter, parent: etree._Element, name: str, address: Optional[Address]) -> None:
        if address is None:
            return
        element = w.sub(parent, name)
        w.sub(element, "KodKraju", address.country_code)
        w.sub(element, "AdresL1", address.address_line1)
        w.optional(element, "AdresL2", address.address_line2)

    def _write_contact(self, w: _FaWriter, parent: etree._Element, contact: Optional[ContactData]) -> None:
        if contact is None or not (contact.email or contact.phone):
            return
        element = w.sub(parent, "DaneKontaktowe")
        w.optional(element, "Email", contact.email)
        w.optional(element, "Telefon", contact.phone)

    def _write_seller(self, w: _FaWriter, root: etree._Element, seller: Seller) -> None:
        podmiot = w.sub(root, "Podmiot1")
        w.optional(podmiot, "NrEORI", seller.eori_number)

        identification = w.sub(podmiot, "DaneIdentyfikacyjne")
        w.sub(identification, "NIP", normalize_tax_id(seller.tax_id or ""))
        w.sub(identification, "Nazwa", seller.name or "")

        self._write_address(w, podmiot, "Adres", seller.address)
        self._write_address(w, podmiot, "AdresKoresp", seller.correspondence_address)
        self._write_contact(w, podmiot, seller.contact)

    def _write_identification(self, w: _FaWriter, parent: etree._Element, party) -> None:
        """Write the first available identification route of a buyer or third party."""
        if party.tax_id:
            w.sub(parent, "NIP", normalize_tax_id(party.tax_id))
        elif getattr(party, "internal_id", None):
            w.sub(parent, "IDWew", party.internal_id)
        elif party.eu_country_code and party.eu_vat_id:
            w.sub(parent, "KodUE", party.eu_country_code)
            w.sub(parent, "NrVatUE", party.eu_vat_id)
        elif party.other_id:
            w.optional(parent, "KodKraju", party.other_id_country_code)
            w.sub(parent, "NrID", party.other_id)
        elif party.no_identifier:
            w.sub(parent, "BrakID", "1")

    def _write_buyer(self, w: _FaWriter, root: etree._Element, buyer: Buyer) -> None:
        podmiot = w.sub(root, "Podmiot2")

        identification = w.sub(podmiot, "DaneIdentyfikacyjne")
        self._write_identification(w, identification, buyer)
        w.optional(identification, "Nazwa", buyer.name)

        self._write_address(w, podmiot, "Adres", buyer.address)
        self._write_contact(w, podmiot, buyer.contact)
        w.optional(podmiot, "NrKlienta", buyer.customer_number)

        if not w.is_fa2:
            w.sub(podmiot, "JST", _choice(buyer.is_local_government_unit))
            w.sub(podmiot, "GV", _choice(buyer.is_vat_group))

    def _write_third_party(self, w: _FaWriter, root: etree._Element, party: ThirdParty) -> None:
        podmiot = w.sub(root, "Podmiot3")

        identification = w.sub(podmiot, "DaneIdentyfikacyjne")
        self._write_identification(w, identification, party)
        w.optional(identification, "Nazwa", party.name)

        self._write_address(w, podmiot, "Adres", party.address)
        w.sub(podmiot, "Rola", str(int(party.role)))
        w.optional(podmiot, "OpisRoli", party.role_description)
        w.optional(podmiot, "Udzial", party.share_percentage)

    # ========================================================================
    # Invoice body
    # ========================================================================

    def _write_invoice_data(self, w: _FaWriter, root: etree._Element, data: InvoiceData) -> None:
        fa = w.sub(root, "Fa")

        w.sub(fa, "KodWaluty", data.currency_code)
        w.optional(fa, "P_1", data.issue_date)
        w.optional(fa, "P_1M", data.issue_place)
        w.sub(fa, "P_2", data.invoice_number or "")

        if data.sale_date is not None:
            w.sub(fa, "P_6", data.sale_date.isoformat())
        elif data.sale_period is not None:
            period = w.sub(fa, "OkresFa")
            w.sub(period, "P_6_Od", data.sale_period.period_from.isoformat())
            w.sub(period, "P_6_Do", data.sale_period.period_to.isoformat())

        for name, value in (
            ("P_13_1", data.net_amount_23),
            ("P_14_1", data.vat_amount_23),
            ("P_13_2", data.net_amount_8),
            ("P_14_2", data.vat_amount_8),
            ("P_13_3", data.net_amount_5),
            ("P_14_3", data.vat_amount_5),
            ("P_13_6_1", data.net_amount_0),
            ("P_13_6_2", data.net_amount_wdt),
            ("P_13_6_3", data.net_amount_export),
            ("P_13_7", data.exempt_amount),
            ("P_13_8", data.not_taxable_amount),
            ("P_13_9", data.not_taxable_amount_ii),
            ("P_13_10", data.reverse_charge_amount),
            ("P_13_11", data.net_amount_4),
            ("P_14_11", data.vat_amount_4),
        ):
            w.optional_amount(fa, name, value)
        w.sub(fa, "P_15", _amount(data.total_amount))

        annotations = data.annotations
        adnotacje = w.sub(fa, "Adnotacje")
        w.sub(adnotacje, "P_16", _choice(annotations.cash_accounting))
        w.sub(adnotacje, "P_17", _choice(annotations.self_billing))
        w.sub(adnotacje, "P_18", _choice(annotations.reverse_charge))
        w.sub(adnotacje, "P_18A", _choice(annotations.split_payment))
        w.sub(adnotacje, "P_23", _choice(annotations.simplified_triangular))

        w.sub(fa, "RodzajFaktury", data.invoice_type.value)
        w.optional(fa, "PrzyczynaKorekty", data.correction_reason)
        if data.correction_type is not None:
            w.sub(fa, "TypKorekty", str(int(data.correction_type)))

        corrected = data.corrected_invoice_data
        if corrected is not None:
            element = w.sub(fa, "DaneFaKorygowanej")
            w.optional(element, "DataWystFaKorygowanej", corrected.corrected_invoice_issue_date)
            w.sub(element, "NrFaKorygowanej", corrected.corrected_invoice_number)
            w.optional(element, "NrKSeFFaKorygowanej", corrected.corrected_invoice_ksef_number)

        for item in data.line_items or []:
            self._write_line_item(w, fa, item)

        if data.payment is not None:
            self._write_payment(w, fa, data.payment)

    def _write_line_item(self, w: _FaWriter, fa: etree._Element, item: LineItem) -> None:
        row = w.sub(fa, "FaWiersz")
        w.sub(row, "NrWierszaFa", str(item.line_number))
        w.optional(row, "P_6A", item.sale_date)
        w.optional(row, "P_7", item.product_name)
        w.optional(row, "GTIN", item.gtin)
        w.optional(row, "PKWiU", item.pkwiu)
        w.optional(row, "CN", item.cn)
        w.optional(row, "P_8A", item.unit)
        w.optional(row, "P_8B", item.quantity)
        w.optional(row, "P_9A", item.unit_net_price)
        w.optional(row, "P_9B", item.unit_gross_price)
        w.optional_amount(row, "P_10", item.discount)
        w.optional_amount(row, "P_11", item.net_amount)
        w.optional_amount(row, "P_11A", item.vat_amount)
        w.optional_amount(row, "P_11Vat", item.gross_amount)
        w.sub(row, "P_12", w.vat_token(item.vat_rate))

    def _write_bank_account(self, w: _FaWriter, parent: etree._Element, name: str, account: BankAccount) -> None:
        element = w.sub(parent, name)
        w.sub(element, "NrRB", account.account_number)
        w.optional(element, "SWIFT", account.swift)
        w.optional(element, "NazwaBanku", account.bank_name)
        w.optional(element, "OpisRachunku", account.description)

    def _write_payment(self, w: _FaWriter, fa: etree._Element, payment: Payment) -> None:
        platnosc = w.sub(fa, "Platnosc")
        for due_date in payment.due_dates:
            term = w.sub(platnosc, "TerminPlatnosci")
            w.sub(term, "Termin", due_date.isoformat())
        if payment.payment_method is not None:
            w.sub(platnosc, "FormaPlatnosci", str(int(payment.payment_method)))
        for account in payment.bank_accounts:
            self._write_bank_account(w, platnosc, "RachunekBankowy", account)
        if payment.factoring_bank_account is not None:
            self._write_bank_account(w, platnosc, "RachunekBankowyFaktora", payment.factoring_bank_account)
