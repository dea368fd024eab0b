"""
Shared fixtures: UBL sample documents and a builder for minimal invoices.
"""

from pathlib import Path
from typing import Callable, Optional, Sequence

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"

NAMESPACES = (
    'xmlns="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2" '
    'xmlns:cac="urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2" '
    'xmlns:cbc="urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"'
)


def _party(role: str, name: str, vat_id: Optional[str]) -> str:
    tax_scheme = (
        f"<cac:PartyTaxScheme><cbc:CompanyID>{vat_id}</cbc:CompanyID></cac:PartyTaxScheme>"
        if vat_id else ""
    )
    return (
        f"<cac:{role}><cac:Party>"
        f"<cac:PartyName><cbc:Name>{name}</cbc:Name></cac:PartyName>"
        f"{tax_scheme}"
        f"</cac:Party></cac:{role}>"
    )


def _subtotal(percent: str, taxable: str, amount: str, reason_code: Optional[str], reason: Optional[str]) -> str:
    code_xml = f"<cbc:TaxExemptionReasonCode>{reason_code}</cbc:TaxExemptionReasonCode>" if reason_code else ""
    reason_xml = f"<cbc:TaxExemptionReason>{reason}</cbc:TaxExemptionReason>" if reason else ""
    return (
        "<cac:TaxSubtotal>"
        f'<cbc:TaxableAmount currencyID="EUR">{taxable}</cbc:TaxableAmount>'
        f'<cbc:TaxAmount currencyID="EUR">{amount}</cbc:TaxAmount>'
        f"<cac:TaxCategory><cbc:Percent>{percent}</cbc:Percent>{code_xml}{reason_xml}</cac:TaxCategory>"
        "</cac:TaxSubtotal>"
    )


def build_invoice_xml(
    payable: str = "119.00",
    tax_exclusive: str = "100.00",
    tax_amount: str = "19.00",
    lines: Sequence[str] = ("100.00",),
    subtotals: Sequence[tuple] = (),
    notes: Sequence[str] = (),
    reporting_ref: Optional[str] = None,
    seller_vat: Optional[str] = None,
    buyer_vat: Optional[str] = None,
    customization_id: str = "urn:cen.eu:en16931:2017",
    profile_id: str = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0",
) -> str:
    """
    Minimal invoice: INV-1 issued 2026-01-01, type 380, EUR.

    ``subtotals`` holds (percent, taxable, amount, reason_code, reason) tuples.
    """
    notes_xml = "".join(f"<cbc:Note>{note}</cbc:Note>" for note in notes)
    reporting_xml = f"<cbc:ReportingRef>{reporting_ref}</cbc:ReportingRef>" if reporting_ref else ""
    subtotals_xml = "".join(_subtotal(*subtotal) for subtotal in subtotals)
    lines_xml = "".join(
        "<cac:InvoiceLine>"
        f"<cbc:ID>{index}</cbc:ID>"
        '<cbc:InvoicedQuantity unitCode="C62">1</cbc:InvoicedQuantity>'
        f'<cbc:LineExtensionAmount currencyID="EUR">{amount}</cbc:LineExtensionAmount>'
        f"<cac:Item><cbc:Name>Item {index}</cbc:Name></cac:Item>"
        f'<cac:Price><cbc:PriceAmount currencyID="EUR">{amount}</cbc:PriceAmount></cac:Price>'
        "</cac:InvoiceLine>"
        for index, amount in enumerate(lines, start=1)
    )

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Invoice {NAMESPACES}>"
        f"<cbc:CustomizationID>{customization_id}</cbc:CustomizationID>"
        f"<cbc:ProfileID>{profile_id}</cbc:ProfileID>"
        "<cbc:ID>INV-1</cbc:ID>"
        "<cbc:IssueDate>2026-01-01</cbc:IssueDate>"
        "<cbc:InvoiceTypeCode>380</cbc:InvoiceTypeCode>"
        f"{notes_xml}"
        "<cbc:DocumentCurrencyCode>EUR</cbc:DocumentCurrencyCode>"
        f"{reporting_xml}"
        f"{_party('AccountingSupplierParty', 'Seller GmbH', seller_vat)}"
        f"{_party('AccountingCustomerParty', 'Buyer AG', buyer_vat)}"
        "<cac:TaxTotal>"
        f'<cbc:TaxAmount currencyID="EUR">{tax_amount}</cbc:TaxAmount>'
        f"{subtotals_xml}"
        "</cac:TaxTotal>"
        "<cac:LegalMonetaryTotal>"
        f'<cbc:LineExtensionAmount currencyID="EUR">{tax_exclusive}</cbc:LineExtensionAmount>'
        f'<cbc:TaxExclusiveAmount currencyID="EUR">{tax_exclusive}</cbc:TaxExclusiveAmount>'
        f'<cbc:PayableAmount currencyID="EUR">{payable}</cbc:PayableAmount>'
        "</cac:LegalMonetaryTotal>"
        f"{lines_xml}"
        "</Invoice>"
    )


@pytest.fixture
def clean_invoice() -> str:
    """Well-formed Peppol invoice that passes every ERROR and WARN rule."""
    return (FIXTURES_DIR / "ubl-clean.xml").read_text(encoding="utf-8")


@pytest.fixture
def dirty_invoice() -> str:
    """Invoice with missing fields, an unexplained 0% rate and a bad VAT id."""
    return (FIXTURES_DIR / "ubl-dirty.xml").read_text(encoding="utf-8")


@pytest.fixture
def make_invoice_xml() -> Callable[..., str]:
    """Factory for minimal invoices with overridable totals and parts."""
    return build_invoice_xml


@pytest.fixture
def minimal_xml() -> str:
    return build_invoice_xml()
