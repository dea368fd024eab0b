"""
UBL XML parsing module for converting invoice documents to canonical form.

This module provides functionality to:
- Clean raw XML text (byte-order mark, missing XML declaration)
- Parse it with lxml, with entity resolution and network access disabled
- Locate the Invoice root, tolerating namespace prefixes
- Build the canonical InvoiceDocument, coercing every repeated element
  into a list so downstream code never deals with singletons

Elements are matched by local name, so ``cbc:ID``, ``ubl:Invoice`` and
unprefixed variants are all read the same way. No field content is
validated here; that is the rule engine's job.
"""

import codecs
from typing import Iterator, Optional, Union

from lxml import etree

from .config import XML_DECLARATION, logger
from .errors import ParseError
from .schemas import (
    AllowanceCharge,
    InvoiceDocument,
    InvoiceLine,
    MonetaryTotal,
    Party,
    TaxSubtotal,
    TaxTotal,
)

ROOT_ELEMENT = "Invoice"

# Text input is re-encoded as UTF-8, whatever its declaration says
_XML_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_blank_text=True,
    encoding="utf-8",
)

# Raw bytes are decoded by lxml according to their XML declaration
_BYTES_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_blank_text=True,
)


# ============================================================================
# Element Helpers
# ============================================================================

def _local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def _children(element: Optional[etree._Element], name: str) -> list[etree._Element]:
    """All direct children with the given local name, in document order."""
    if element is None:
        return []
    return [
        child for child in element
        if isinstance(child.tag, str) and _local_name(child) == name
    ]


def _child(element: Optional[etree._Element], *path: str) -> Optional[etree._Element]:
    """Follow a path of local names, taking the first match at each step."""
    current = element
    for name in path:
        matches = _children(current, name)
        if not matches:
            return None
        current = matches[0]
    return current


def _text(element: Optional[etree._Element], *path: str) -> Optional[str]:
    """Trimmed text of the element at ``path``; None when absent or empty."""
    target = _child(element, *path)
    if target is None or target.text is None:
        return None
    value = target.text.strip()
    return value or None


def _attr(element: Optional[etree._Element], path: tuple[str, ...], name: str) -> Optional[str]:
    target = _child(element, *path)
    if target is None:
        return None
    return target.get(name)


def _bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value.strip().lower() == "true"


# ============================================================================
# Cleaning and Root Lookup
# ============================================================================

def clean_xml(xml: str) -> str:
    """Remove a leading BOM and make sure an XML declaration is present."""
    cleaned = xml.removeprefix("\ufeff").lstrip()
    if not cleaned.startswith("<?xml"):
        cleaned = XML_DECLARATION + cleaned
    return cleaned


def _find_invoice_root(root: etree._Element) -> Optional[etree._Element]:
    """
    Return the Invoice element.

    The root must either have the local name ``Invoice`` or, failing that,
    a (possibly prefixed) tag containing ``Invoice``.
    """
    if _local_name(root) == ROOT_ELEMENT:
        return root

    prefixed = f"{root.prefix}:{_local_name(root)}" if root.prefix else _local_name(root)
    if ROOT_ELEMENT in prefixed:
        return root

    return None


def _parse_tree(xml: Union[str, bytes]) -> etree._Element:
    if isinstance(xml, bytes):
        source = xml.removeprefix(codecs.BOM_UTF8).lstrip()
        parser = _BYTES_PARSER
    else:
        source = clean_xml(xml).encode("utf-8")
        parser = _XML_PARSER

    try:
        return etree.fromstring(source, parser=parser)
    except etree.XMLSyntaxError as e:
        raise ParseError(f"XML parsing failed: {e}", "/") from e


# ============================================================================
# Section Builders
# ============================================================================

def _build_party(element: Optional[etree._Element]) -> Optional[Party]:
    if element is None:
        return None

    party = _child(element, "Party")
    address = _child(party, "PostalAddress")
    return Party(
        name=_text(party, "PartyName", "Name") or _text(party, "PartyLegalEntity", "RegistrationName"),
        vat_id=_text(party, "PartyTaxScheme", "CompanyID"),
        street=_text(address, "StreetName"),
        city=_text(address, "CityName"),
        zip=_text(address, "PostalZone"),
        country=_text(address, "Country", "IdentificationCode"),
    )


def _build_tax_subtotal(element: etree._Element) -> TaxSubtotal:
    category = _child(element, "TaxCategory")
    return TaxSubtotal(
        taxable_amount=_text(element, "TaxableAmount"),
        tax_amount=_text(element, "TaxAmount"),
        percent=_text(category, "Percent"),
        category_id=_text(category, "ID"),
        exemption_reason_code=_text(category, "TaxExemptionReasonCode"),
        exemption_reason=_text(category, "TaxExemptionReason"),
    )


def _build_tax_total(invoice: etree._Element) -> Optional[TaxTotal]:
    # Documents in a foreign tax currency may repeat TaxTotal; the first one
    # carries the breakdown in the document currency.
    element = _child(invoice, "TaxTotal")
    if element is None:
        return None

    return TaxTotal(
        tax_amount=_text(element, "TaxAmount"),
        currency_id=_attr(element, ("TaxAmount",), "currencyID"),
        subtotals=[_build_tax_subtotal(sub) for sub in _children(element, "TaxSubtotal")],
    )


def _build_monetary_total(invoice: etree._Element) -> Optional[MonetaryTotal]:
    element = _child(invoice, "LegalMonetaryTotal")
    if element is None:
        return None

    return MonetaryTotal(
        line_extension_amount=_text(element, "LineExtensionAmount"),
        tax_exclusive_amount=_text(element, "TaxExclusiveAmount"),
        tax_inclusive_amount=_text(element, "TaxInclusiveAmount"),
        allowance_total_amount=_text(element, "AllowanceTotalAmount"),
        charge_total_amount=_text(element, "ChargeTotalAmount"),
        prepaid_amount=_text(element, "PrepaidAmount"),
        payable_amount=_text(element, "PayableAmount"),
    )


def _build_allowance_charge(element: etree._Element) -> AllowanceCharge:
    return AllowanceCharge(
        charge_indicator=_bool(_text(element, "ChargeIndicator")),
        amount=_text(element, "Amount"),
        base_amount=_text(element, "BaseAmount"),
        reason=_text(element, "AllowanceChargeReason"),
    )


def _build_line(element: etree._Element) -> InvoiceLine:
    # Line tax comes either from a line TaxTotal or from the item's
    # ClassifiedTaxCategory (the usual UBL 2.1 / Peppol shape).
    line_subtotal = _child(element, "TaxTotal", "TaxSubtotal")
    classified = _child(element, "Item", "ClassifiedTaxCategory")

    return InvoiceLine(
        id=_text(element, "ID"),
        quantity=_text(element, "InvoicedQuantity"),
        unit_code=_attr(element, ("InvoicedQuantity",), "unitCode"),
        line_extension_amount=_text(element, "LineExtensionAmount"),
        price_amount=_text(element, "Price", "PriceAmount"),
        base_quantity=_text(element, "Price", "BaseQuantity"),
        tax_percent=_text(line_subtotal, "TaxCategory", "Percent") or _text(classified, "Percent"),
        tax_category=_text(line_subtotal, "TaxCategory", "ID") or _text(classified, "ID"),
        tax_amount=_text(line_subtotal, "TaxAmount"),
        item_name=_text(element, "Item", "Name"),
        item_sku=_text(element, "Item", "SellersItemIdentification", "ID"),
        accounting_cost=_text(element, "AccountingCost"),
        po_line_ref=_text(element, "OrderLineReference", "LineID"),
        project_ref=_text(element, "DocumentReference", "ID"),
        allowance_charges=[
            _build_allowance_charge(ac) for ac in _children(element, "AllowanceCharge")
        ],
    )


def _iter_notes(invoice: etree._Element) -> Iterator[str]:
    # cbc:Note is the UBL element; InvoiceNote is accepted for older producers
    for name in ("Note", "InvoiceNote"):
        for note in _children(invoice, name):
            text = "".join(note.itertext()).strip()
            if text:
                yield text


def build_document(invoice: etree._Element) -> InvoiceDocument:
    """Build the canonical document from a located Invoice element."""
    return InvoiceDocument(
        customization_id=_text(invoice, "CustomizationID"),
        profile_id=_text(invoice, "ProfileID"),
        id=_text(invoice, "ID"),
        issue_date=_text(invoice, "IssueDate"),
        due_date=_text(invoice, "DueDate"),
        type_code=_text(invoice, "InvoiceTypeCode"),
        type_name=_attr(invoice, ("InvoiceTypeCode",), "name"),
        currency=_text(invoice, "DocumentCurrencyCode"),
        reporting_ref=_text(invoice, "ReportingRef"),
        order_ref=_text(invoice, "OrderReference", "ID"),
        contract_ref=_text(invoice, "ContractDocumentReference", "ID"),
        project_ref=_text(invoice, "ProjectReference", "ID"),
        additional_document_refs=[
            _text(ref, "ID") or "" for ref in _children(invoice, "AdditionalDocumentReference")
        ],
        seller=_build_party(_child(invoice, "AccountingSupplierParty")),
        buyer=_build_party(_child(invoice, "AccountingCustomerParty")),
        tax_total=_build_tax_total(invoice),
        monetary_total=_build_monetary_total(invoice),
        lines=[_build_line(line) for line in _children(invoice, "InvoiceLine")],
        allowance_charges=[
            _build_allowance_charge(ac) for ac in _children(invoice, "AllowanceCharge")
        ],
        notes=list(_iter_notes(invoice)),
    )


# ============================================================================
# Public API
# ============================================================================

def parse_invoice_xml(xml: Union[str, bytes]) -> InvoiceDocument:
    """
    Parse raw UBL XML into the canonical InvoiceDocument.

    Args:
        xml: Invoice XML as text or UTF-8 bytes

    Returns:
        InvoiceDocument with every repeated element normalized to a list

    Raises:
        ParseError: If the XML is malformed or has no Invoice root
    """
    root = _parse_tree(xml)

    invoice = _find_invoice_root(root)
    if invoice is None:
        logger.error(f"Rejected document with root element <{_local_name(root)}>")
        raise ParseError("Not a valid UBL Invoice document", "/")

    document = build_document(invoice)
    logger.debug(f"Parsed invoice {document.id!r} with {len(document.lines)} line(s)")
    return document


def document_summary(document: InvoiceDocument) -> dict[str, Optional[str]]:
    """A handful of header fields identifying the invoice."""
    return {
        "invoice_id": document.id,
        "issue_date": document.issue_date,
        "currency": document.currency,
        "total_amount": document.monetary_total.payable_amount if document.monetary_total else None,
        "seller": document.seller.name if document.seller else None,
        "buyer": document.buyer.name if document.buyer else None,
        "profile": document.profile_id,
    }


def extract_basic_info(xml: Union[str, bytes]) -> dict[str, Optional[str]]:
    """
    Extract a few header fields for quick inspection.

    Returns an empty dict when the document cannot be parsed.
    """
    try:
        document = parse_invoice_xml(xml)
    except ParseError:
        return {}

    return document_summary(document)
