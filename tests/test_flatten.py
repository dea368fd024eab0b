"""
Tests for the flattening engine.

These tests verify CSV shape and escaping, the tax-rate pivot, JSON
output and the lenient defaults applied to incomplete documents.
"""

import pytest

from ubl_compliance.config import OutputFormat, Profile
from ubl_compliance.errors import FlattenError
from ubl_compliance.flatten import (
    build_rows,
    extract_header,
    extract_line,
    flatten_document,
    flatten_ubl,
    generate_csv,
    tax_columns,
)
from ubl_compliance.parser import parse_invoice_xml
from ubl_compliance.schemas import (
    AllowanceCharge,
    FlattenOptions,
    FlattenResult,
    InvoiceDocument,
    InvoiceLine,
    TaxEntry,
    TaxSubtotal,
    TaxTotal,
)


CLEAN_HEADER_COLUMNS = [
    "invoice_id", "issue_date", "due_date", "currency", "profile", "type_code",
    "seller_name", "seller_vat_id", "seller_street", "seller_city", "seller_zip", "seller_country",
    "buyer_name", "buyer_vat_id", "buyer_street", "buyer_city", "buyer_zip", "buyer_country",
    "total_taxable", "total_tax", "total_grand", "total_payable",
]

LINE_COLUMNS = [
    "line_no", "item_name", "item_sku", "quantity", "unit", "unit_price", "line_net",
    "vat_rate", "vat_category", "vat_amount", "po_line_ref", "cost_center", "project_code",
]


# ============================================================================
# CSV Output
# ============================================================================

class TestCsvOutput:
    """Tests for CSV flattening of the sample invoices."""

    def test_denormalized(self, clean_invoice):
        result = flatten_ubl(clean_invoice, FlattenOptions(denormalized=True))
        header, row = result.csv.split("\n")

        assert header.split(",") == CLEAN_HEADER_COLUMNS + LINE_COLUMNS
        assert row == (
            "INV-2025-001,2025-10-01,2025-10-31,EUR,PEPPOL,380,"
            "Softwarehaus Nord GmbH,DE123456789,Hafenstrasse 12,Hamburg,20457,DE,"
            "Kunde AG,DE987654321,Marktplatz 1,Berlin,10117,DE,"
            "1000.00,190.00,1190.00,1190.00,"
            "1,Software License Premium,SW-PREM-01,10,C62,100.00,1000.00,19,S,0.00,10,CC-100,"
        )
        assert result.json_data is None

    def test_line_fields_only(self, clean_invoice):
        result = flatten_ubl(clean_invoice, FlattenOptions(denormalized=False))
        header, row = result.csv.split("\n")
        assert header.split(",") == LINE_COLUMNS
        assert row.startswith("1,Software License Premium,SW-PREM-01,10,C62,")

    def test_tax_columns(self, clean_invoice):
        result = flatten_ubl(clean_invoice, FlattenOptions(denormalized=False, tax_columns=True))
        header, row = result.csv.split("\n")
        assert header.endswith(",project_code,vat_19_base,vat_19_amount")
        assert row.endswith(",1000.00,190.00")

    def test_meta(self, clean_invoice):
        result = flatten_ubl(clean_invoice)
        assert result.meta.line_count == 1
        assert result.meta.currency == "EUR"

    def test_one_row_per_line(self, make_invoice_xml):
        result = flatten_ubl(make_invoice_xml(lines=("10.00", "20.00", "70.00")))
        rows = result.csv.split("\n")
        assert len(rows) == 4
        assert result.meta.line_count == 3

    def test_quoting(self, dirty_invoice):
        result = flatten_ubl(dirty_invoice, FlattenOptions(denormalized=False))
        row = result.csv.split("\n")[1]
        assert row.startswith('1,"Consulting, on-site ""express""",,5,H87,')

    def test_no_lines_yields_empty_csv(self, make_invoice_xml):
        result = flatten_ubl(make_invoice_xml(lines=()))
        assert result.csv == ""
        assert result.meta.line_count == 0

    def test_no_trailing_newline(self, clean_invoice):
        assert not flatten_ubl(clean_invoice).csv.endswith("\n")


class TestGenerateCsv:
    """Tests for the CSV writer."""

    def test_union_of_columns(self):
        csv_text = generate_csv([{"a": "1"}, {"b": "2"}])
        assert csv_text == "a,b\n1,\n,2"

    def test_insertion_order(self):
        csv_text = generate_csv([{"z": 1, "a": 2}])
        assert csv_text.split("\n")[0] == "z,a"

    def test_none_is_empty(self):
        assert generate_csv([{"a": None, "b": "x"}]) == "a,b\n,x"

    def test_integral_floats(self):
        assert generate_csv([{"qty": 3.0, "rate": 7.5}]) == "qty,rate\n3,7.5"

    def test_embedded_newline_quoted(self):
        assert generate_csv([{"note": "line one\nline two"}]) == 'note\n"line one\nline two"'

    def test_empty(self):
        assert generate_csv([]) == ""


# ============================================================================
# Tax Pivot
# ============================================================================

class TestTaxColumns:
    """Tests for the vat_<rate> column pivot."""

    def test_multiple_rates(self):
        columns = tax_columns([
            TaxEntry(rate=19.0, taxable="100", amount="19"),
            TaxEntry(rate=7.0, taxable="50", amount="3.5"),
        ])
        assert columns == {
            "vat_19_base": "100.00",
            "vat_19_amount": "19.00",
            "vat_7_base": "50.00",
            "vat_7_amount": "3.50",
        }

    def test_rate_rounded_half_up(self):
        columns = tax_columns([TaxEntry(rate=5.5, taxable="10", amount="0.55")])
        assert list(columns) == ["vat_6_base", "vat_6_amount"]

    def test_colliding_rates_last_wins(self):
        columns = tax_columns([
            TaxEntry(rate=6.5, taxable="10.00", amount="0.65"),
            TaxEntry(rate=7.0, taxable="20.00", amount="1.40"),
        ])
        assert columns == {"vat_7_base": "20.00", "vat_7_amount": "1.40"}

    def test_pivot_repeated_on_every_row(self):
        document = InvoiceDocument(
            id="INV-1",
            tax_total=TaxTotal(subtotals=[TaxSubtotal(percent="19", taxable_amount="30", tax_amount="5.70")]),
            lines=[InvoiceLine(id="1"), InvoiceLine(id="2")],
        )
        header = extract_header(document)
        lines = [extract_line(line) for line in document.lines]
        rows = build_rows(header, lines, FlattenOptions(denormalized=False, tax_columns=True))
        assert [row["vat_19_base"] for row in rows] == ["30.00", "30.00"]


# ============================================================================
# JSON Output
# ============================================================================

class TestJsonOutput:
    """Tests for header/lines JSON output."""

    def test_structure(self, clean_invoice):
        result = flatten_ubl(clean_invoice, FlattenOptions(format=OutputFormat.JSON))
        assert result.csv is None

        header = result.json_data.header
        assert header.invoice_id == "INV-2025-001"
        assert header.profile == Profile.PEPPOL
        assert header.seller.name == "Softwarehaus Nord GmbH"
        assert header.totals.payable == "1190.00"
        assert header.taxes[0].rate == 19.0
        assert header.refs.order_ref == "PO-4711"
        assert header.refs.reporting_ref == "DRR-DE-2025-000123"

        line = result.json_data.lines[0]
        assert line.qty == 10.0
        assert line.line_net == "1000.00"
        assert line.cost_center == "CC-100"

    def test_camel_case_payload(self, clean_invoice):
        result = flatten_ubl(clean_invoice, FlattenOptions(format=OutputFormat.JSON))
        payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
        assert "csv" not in payload
        assert payload["meta"] == {"lineCount": 1, "currency": "EUR"}
        assert payload["json"]["header"]["invoiceId"] == "INV-2025-001"
        assert payload["json"]["lines"][0]["lineNet"] == "1000.00"

    def test_payload_reloads(self, clean_invoice):
        result = flatten_ubl(clean_invoice, FlattenOptions(format=OutputFormat.JSON))
        payload = result.model_dump(mode="json", by_alias=True)
        assert FlattenResult.model_validate(payload) == result


# ============================================================================
# Lenient Extraction
# ============================================================================

class TestLenientDefaults:
    """Flattening never fails on missing fields."""

    def test_empty_document_header(self):
        header = extract_header(InvoiceDocument())
        assert header.invoice_id == ""
        assert header.currency == "EUR"
        assert header.type_code == "380"
        assert header.totals.taxable == "0"
        assert header.totals.payable == "0"
        assert header.seller.name == ""
        assert header.profile == Profile.UNKNOWN

    def test_empty_line(self):
        line = extract_line(InvoiceLine())
        assert line.qty == 1.0
        assert line.unit == "C62"
        assert line.unit_price == "0"
        assert line.vat_rate == 0.0
        assert line.line_allowance == "0"

    def test_empty_line_csv(self):
        result = flatten_document(InvoiceDocument(lines=[InvoiceLine()]))
        row = dict(zip(*(r.split(",") for r in result.csv.split("\n"))))
        assert row["currency"] == "EUR"
        assert row["total_payable"] == "0.00"
        assert row["quantity"] == "1"
        assert row["unit_price"] == "0.00"

    def test_line_allowances_and_charges(self):
        line = extract_line(InvoiceLine(allowance_charges=[
            AllowanceCharge(charge_indicator=False, amount="2.50"),
            AllowanceCharge(charge_indicator=True, amount="1.00"),
            AllowanceCharge(charge_indicator=False, amount="0.50"),
        ]))
        assert line.line_allowance == "3.00"
        assert line.line_charge == "1.00"

    def test_unparsable_rate_defaults_to_zero(self):
        document = InvoiceDocument(
            id="RATE-1",
            tax_total=TaxTotal(subtotals=[TaxSubtotal(percent="abc", taxable_amount="100.00")]),
            lines=[InvoiceLine(id="1", tax_percent="abc")],
        )
        result = flatten_document(document, FlattenOptions(format=OutputFormat.JSON))
        assert result.json_data.header.taxes[0].rate == 0.0
        assert result.json_data.lines[0].vat_rate == 0.0

    def test_arithmetic_not_checked(self, make_invoice_xml):
        result = flatten_ubl(make_invoice_xml(payable="1.00"))
        assert result.meta.line_count == 1

    def test_default_options(self, clean_invoice):
        document = parse_invoice_xml(clean_invoice)
        result = flatten_document(document)
        assert result.csv.startswith("invoice_id,")


class TestFlattenErrors:
    """Failures surface as FlattenError."""

    def test_unparsable_quantity(self):
        document = InvoiceDocument(id="BAD-1", lines=[InvoiceLine(id="1", quantity="abc")])
        with pytest.raises(FlattenError) as exc_info:
            flatten_document(document)
        assert str(exc_info.value).startswith("Flattening failed:")

    def test_not_an_invoice(self):
        with pytest.raises(FlattenError) as exc_info:
            flatten_ubl("<invalid>not a UBL document</invalid>")
        assert "Not a valid UBL Invoice document" in str(exc_info.value)

    def test_malformed_xml(self):
        with pytest.raises(FlattenError):
            flatten_ubl("<Invoice><unclosed>")
