"""
Flattening engine: turns a canonical invoice into CSV rows or header/lines JSON.

Flattening is lenient where validation is strict: missing totals become
"0", a missing currency becomes EUR, and nothing here checks arithmetic.
"""

import csv
import io
from typing import Any, Optional, Sequence, Union

from .config import (
    DEFAULT_CURRENCY,
    DEFAULT_TYPE_CODE,
    DEFAULT_UNIT_CODE,
    OutputFormat,
    logger,
)
from .errors import FlattenError
from .parser import parse_invoice_xml
from .schemas import (
    AllowanceCharge,
    FlattenedJson,
    FlattenMeta,
    FlattenOptions,
    FlattenResult,
    HeaderRefs,
    HeaderTotals,
    InvoiceDocument,
    InvoiceLine,
    Party,
    PartyInfo,
    TaxEntry,
    UblHeader,
    UblLine,
)
from .utils import format_decimal, round_rate, sum_decimals
from .validator import detect_profile

FlatRow = dict[str, Any]


# ============================================================================
# Extraction
# ============================================================================

def _party_info(party: Optional[Party]) -> PartyInfo:
    if party is None:
        return PartyInfo()
    return PartyInfo(
        name=party.name or "",
        vat_id=party.vat_id,
        street=party.street,
        city=party.city,
        zip=party.zip,
        country=party.country,
    )


def _rate(percent: Optional[str]) -> float:
    """A missing or unparsable percent flattens as a 0 rate."""
    try:
        return float(percent or "0")
    except ValueError:
        return 0.0


def extract_header(document: InvoiceDocument) -> UblHeader:
    """Pull the invoice-level record, defaulting missing amounts to "0"."""
    totals = document.monetary_total
    tax_total = document.tax_total

    taxes = [
        TaxEntry(
            rate=_rate(subtotal.percent),
            taxable=subtotal.taxable_amount or "0",
            amount=subtotal.tax_amount or "0",
            exemption_code=subtotal.exemption_reason_code,
            exemption_reason=subtotal.exemption_reason,
            category=subtotal.category_id,
        )
        for subtotal in document.tax_subtotals
    ]

    return UblHeader(
        invoice_id=document.id or "",
        issue_date=document.issue_date or "",
        due_date=document.due_date,
        currency=document.currency or DEFAULT_CURRENCY,
        profile=detect_profile(document),
        customization_id=document.customization_id,
        profile_id=document.profile_id,
        type_code=document.type_code or DEFAULT_TYPE_CODE,
        seller=_party_info(document.seller),
        buyer=_party_info(document.buyer),
        totals=HeaderTotals(
            taxable=(totals.tax_exclusive_amount if totals else None) or "0",
            tax=(tax_total.tax_amount if tax_total else None) or "0",
            grand=(totals.tax_inclusive_amount if totals else None) or "0",
            payable=(totals.payable_amount if totals else None) or "0",
        ),
        taxes=taxes,
        refs=HeaderRefs(
            order_ref=document.order_ref,
            contract_ref=document.contract_ref,
            project_ref=document.project_ref,
            reporting_ref=document.reporting_ref,
        ),
    )


def _line_adjustments(adjustments: Sequence[AllowanceCharge], charge: bool) -> str:
    total = sum_decimals(
        ac.amount or "0" for ac in adjustments if bool(ac.charge_indicator) is charge
    )
    return str(total)


def extract_line(line: InvoiceLine) -> UblLine:
    """Map one canonical line to its export record."""
    return UblLine(
        line_no=line.id or "",
        item_name=line.item_name,
        item_sku=line.item_sku,
        qty=float(line.quantity or "1"),
        unit=line.unit_code or DEFAULT_UNIT_CODE,
        unit_price=line.price_amount or "0",
        price_base_qty=line.base_quantity or "1",
        line_net=line.line_extension_amount or "0",
        vat_rate=_rate(line.tax_percent),
        vat_category=line.tax_category,
        vat_amount=line.tax_amount or "0",
        line_allowance=_line_adjustments(line.allowance_charges, charge=False),
        line_charge=_line_adjustments(line.allowance_charges, charge=True),
        po_line_ref=line.po_line_ref,
        cost_center=line.accounting_cost,
        project_code=line.project_ref,
    )


def extract_lines(document: InvoiceDocument) -> list[UblLine]:
    return [extract_line(line) for line in document.lines]


# ============================================================================
# Row Building
# ============================================================================

def line_to_row(line: UblLine) -> FlatRow:
    return {
        "line_no": line.line_no,
        "item_name": line.item_name,
        "item_sku": line.item_sku,
        "quantity": line.qty,
        "unit": line.unit,
        "unit_price": format_decimal(line.unit_price),
        "line_net": format_decimal(line.line_net),
        "vat_rate": line.vat_rate,
        "vat_category": line.vat_category,
        "vat_amount": format_decimal(line.vat_amount),
        "po_line_ref": line.po_line_ref,
        "cost_center": line.cost_center,
        "project_code": line.project_code,
    }


def header_to_row(header: UblHeader) -> FlatRow:
    """Header fields repeated on every row in denormalized mode."""
    row: FlatRow = {
        "invoice_id": header.invoice_id,
        "issue_date": header.issue_date,
        "due_date": header.due_date,
        "currency": header.currency,
        "profile": header.profile.value,
        "type_code": header.type_code,
    }
    for role, party in (("seller", header.seller), ("buyer", header.buyer)):
        row[f"{role}_name"] = party.name
        row[f"{role}_vat_id"] = party.vat_id
        row[f"{role}_street"] = party.street
        row[f"{role}_city"] = party.city
        row[f"{role}_zip"] = party.zip
        row[f"{role}_country"] = party.country

    row.update({
        "total_taxable": format_decimal(header.totals.taxable),
        "total_tax": format_decimal(header.totals.tax),
        "total_grand": format_decimal(header.totals.grand),
        "total_payable": format_decimal(header.totals.payable),
    })
    return row


def tax_columns(taxes: Sequence[TaxEntry]) -> FlatRow:
    """
    Pivot tax entries into vat_<rate>_base / vat_<rate>_amount columns.

    The rate is rounded to an integer for the column name, so two entries
    that round to the same rate collide and the later one wins.
    """
    columns: FlatRow = {}
    for tax in taxes:
        rate = round_rate(tax.rate)
        columns[f"vat_{rate}_base"] = format_decimal(tax.taxable)
        columns[f"vat_{rate}_amount"] = format_decimal(tax.amount)
    return columns


def build_rows(header: UblHeader, lines: Sequence[UblLine], options: FlattenOptions) -> list[FlatRow]:
    """One flat row per invoice line, shaped by the options."""
    pivot = tax_columns(header.taxes) if options.tax_columns else {}
    header_row = header_to_row(header) if options.denormalized else {}

    return [
        {**header_row, **line_to_row(line), **pivot}
        for line in lines
    ]


# ============================================================================
# Serialization
# ============================================================================

def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def generate_csv(rows: Sequence[FlatRow]) -> str:
    """
    Serialize rows to CSV.

    Columns are the union of all row keys in first-seen order; missing
    values are empty. Cells with commas, quotes or line breaks are quoted
    with inner quotes doubled. Rows are joined with ``\\n``.
    """
    if not rows:
        return ""

    columns: dict[str, None] = {}
    for row in rows:
        columns.update(dict.fromkeys(row))

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(columns)
    for row in rows:
        writer.writerow(_cell(row.get(column)) for column in columns)

    return buffer.getvalue().removesuffix("\n")


# ============================================================================
# Public API
# ============================================================================

def flatten_document(
    document: InvoiceDocument,
    options: Optional[FlattenOptions] = None,
) -> FlattenResult:
    """
    Flatten a canonical document.

    Args:
        document: Parsed InvoiceDocument
        options: Shape and format options (defaults: denormalized CSV)

    Returns:
        FlattenResult with either ``csv`` or ``json`` set

    Raises:
        FlattenError: If extraction or serialization fails
    """
    if options is None:
        options = FlattenOptions()

    try:
        header = extract_header(document)
        lines = extract_lines(document)
        meta = FlattenMeta(line_count=len(lines), currency=header.currency)

        if options.format == OutputFormat.JSON:
            return FlattenResult(json=FlattenedJson(header=header, lines=lines), meta=meta)

        rows = build_rows(header, lines, options)
        return FlattenResult(csv=generate_csv(rows), meta=meta)
    except Exception as e:
        logger.error(f"Flattening invoice {document.id} failed: {e}")
        raise FlattenError(f"Flattening failed: {e}") from e


def flatten_ubl(xml: Union[str, bytes], options: Optional[FlattenOptions] = None) -> FlattenResult:
    """
    Parse and flatten a UBL invoice.

    Raises:
        FlattenError: Wrapping the ParseError or extraction failure
    """
    try:
        document = parse_invoice_xml(xml)
    except Exception as e:
        raise FlattenError(f"Flattening failed: {e}") from e

    result = flatten_document(document, options)
    logger.info(f"Flattened invoice {document.id}: {result.meta.line_count} line(s)")
    return result
