"""
Validation rules for UBL / EN 16931 invoices.

This module defines the 25 "lite" rules, organized by category:
- Presence rules (BR-01..BR-10): mandatory header elements
- Arithmetic rules (BR-11, BR-12): exact decimal cross-checks of totals
- VAT rules (BR-13..BR-15): exemptions, reverse charge, VAT id format
- Line and document rules (BR-16..BR-20)
- ViDA / EN v2 extensions (V2-*) and Peppol BIS 4.0 previews (BIS4-*)

Each rule is a pure predicate over the canonical InvoiceDocument that
returns True when the document passes. Rules are evaluated in declaration
order by the validator; that order is part of the output contract.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from .config import (
    REVERSE_CHARGE_CODE,
    SELF_BILLING_MARKERS,
    Severity,
)
from .schemas import InvoiceDocument, TaxSubtotal
from .utils import is_valid_vat_id, parse_decimal, sum_decimals


# Type alias for rule check functions
RuleCheckFn = Callable[[InvoiceDocument], bool]


@dataclass(frozen=True)
class Rule:
    """
    Represents a single validation rule.

    Attributes:
        id: Stable rule identifier (e.g., "BR-12")
        severity: ERROR findings make the document invalid; WARN and INFO do not
        check: Predicate returning True when the document passes
        path: XPath-like pointer to the field the rule inspects
        message: Human-readable description of the failure
        hint: Remediation hint
    """
    id: str
    severity: Severity
    check: RuleCheckFn
    path: str
    message: str
    hint: str


# ============================================================================
# Helpers
# ============================================================================

def _amount(value: Optional[str]) -> Decimal:
    """Missing amounts count as zero."""
    return parse_decimal(value or "0")


def _is_zero_rate(subtotal: TaxSubtotal) -> bool:
    """An unparsable percent is not a zero rate."""
    try:
        return _amount(subtotal.percent) == 0
    except ValueError:
        return False


def _vat_ids(doc: InvoiceDocument) -> tuple[Optional[str], Optional[str]]:
    seller_vat = doc.seller.vat_id if doc.seller else None
    buyer_vat = doc.buyer.vat_id if doc.buyer else None
    return seller_vat, buyer_vat


# ============================================================================
# Arithmetic Rules
# ============================================================================

def check_lines_sum(doc: InvoiceDocument) -> bool:
    """
    Sum of line net amounts must equal the tax exclusive amount exactly.

    Documents without lines are skipped; their totals cannot be cross-checked.
    Unparsable amounts fail the rule.
    """
    if not doc.lines:
        return True

    try:
        lines_net = sum_decimals(line.line_extension_amount or "0" for line in doc.lines)
        totals = doc.monetary_total
        tax_exclusive = _amount(totals.tax_exclusive_amount if totals else None)
    except ValueError:
        return False

    return lines_net == tax_exclusive


def check_payable_amount(doc: InvoiceDocument) -> bool:
    """Tax exclusive amount plus tax amount must equal the payable amount exactly."""
    totals = doc.monetary_total
    try:
        tax_exclusive = _amount(totals.tax_exclusive_amount if totals else None)
        tax_amount = _amount(doc.tax_total.tax_amount if doc.tax_total else None)
        payable = _amount(totals.payable_amount if totals else None)
    except ValueError:
        return False

    return tax_exclusive + tax_amount == payable


# ============================================================================
# VAT Rules
# ============================================================================

def check_zero_rate_exemption(doc: InvoiceDocument) -> bool:
    """Every 0% subtotal must carry an exemption reason code or text."""
    return all(
        subtotal.exemption_reason or subtotal.exemption_reason_code
        for subtotal in doc.tax_subtotals
        if _is_zero_rate(subtotal)
    )


def check_reverse_charge(doc: InvoiceDocument) -> bool:
    """
    Cross-border B2B (different VAT country prefixes) should use 0% VAT.

    Passes when either VAT id is missing, since the scenario can't be determined.
    """
    seller_vat, buyer_vat = _vat_ids(doc)
    if not seller_vat or not buyer_vat:
        return True

    if seller_vat[:2] == buyer_vat[:2]:
        return True

    return any(_is_zero_rate(subtotal) for subtotal in doc.tax_subtotals)


def check_vat_id_format(doc: InvoiceDocument) -> bool:
    """VAT ids are optional, but present ones must be well-formed."""
    seller_vat, buyer_vat = _vat_ids(doc)
    return (
        (not seller_vat or is_valid_vat_id(seller_vat))
        and (not buyer_vat or is_valid_vat_id(buyer_vat))
    )


# ============================================================================
# Line and Document Rules
# ============================================================================

def check_line_ids(doc: InvoiceDocument) -> bool:
    return all(line.id for line in doc.lines)


def _is_positive(value: Optional[str]) -> bool:
    try:
        return _amount(value) > 0
    except ValueError:
        return False


def check_line_quantities(doc: InvoiceDocument) -> bool:
    return all(_is_positive(line.quantity) for line in doc.lines)


def check_allowance_charge_amounts(doc: InvoiceDocument) -> bool:
    return all(_amount(ac.amount) >= 0 for ac in doc.allowance_charges)


def check_currency_advisory(doc: InvoiceDocument) -> bool:
    # Exchange-rate information is not inspected yet; advisory only
    return True


# ============================================================================
# ViDA / BIS 4.0 Rules
# ============================================================================

def check_reverse_charge_category(doc: InvoiceDocument) -> bool:
    subtotals = doc.tax_subtotals
    if not subtotals:
        return True
    return any(
        REVERSE_CHARGE_CODE in (subtotal.exemption_reason_code, subtotal.category_id)
        for subtotal in subtotals
    )


def check_digital_signature(doc: InvoiceDocument) -> bool:
    # Signature verification is out of scope; placeholder for the checklist
    return True


def check_self_billing_flag(doc: InvoiceDocument) -> bool:
    """Passes when there are no notes, or one of them marks self-billing."""
    if not doc.notes:
        return True
    return any(
        marker in note.lower()
        for note in doc.notes
        for marker in SELF_BILLING_MARKERS
    )


# ============================================================================
# Rule Registry
# ============================================================================

# All validation rules in execution order
LITE_RULES: tuple[Rule, ...] = (
    # Core EN 16931 presence rules
    Rule(
        id="BR-01",
        severity=Severity.ERROR,
        check=lambda doc: bool(doc.customization_id),
        path="/Invoice/cbc:CustomizationID",
        message="Missing Specification identifier",
        hint="Add UBL profile ID (e.g., urn:cen.eu:en16931:2017#compliant#urn:xoev-de:kosit:standard:xrechnung_1.0:2022-01-01)",
    ),
    Rule(
        id="BR-02",
        severity=Severity.ERROR,
        check=lambda doc: bool(doc.profile_id),
        path="/Invoice/cbc:ProfileID",
        message="Missing Profile ID",
        hint="Use EN 16931 profile (e.g., urn:fdc:peppol.eu:2017:poacc:billing:3.0)",
    ),
    Rule(
        id="BR-03",
        severity=Severity.ERROR,
        check=lambda doc: bool(doc.id),
        path="/Invoice/cbc:ID",
        message="Missing Invoice number",
        hint="BT-1 Invoice identifier is required",
    ),
    Rule(
        id="BR-04",
        severity=Severity.ERROR,
        check=lambda doc: bool(doc.issue_date),
        path="/Invoice/cbc:IssueDate",
        message="Missing Issue date",
        hint="BT-2 Issue date in ISO format (YYYY-MM-DD) is required",
    ),
    Rule(
        id="BR-05",
        severity=Severity.ERROR,
        check=lambda doc: bool(doc.type_code),
        path="/Invoice/cbc:InvoiceTypeCode",
        message="Missing Invoice type code",
        hint="Use 380 for invoice or 381 for credit note",
    ),
    Rule(
        id="BR-06",
        severity=Severity.ERROR,
        check=lambda doc: bool(doc.currency),
        path="/Invoice/cbc:DocumentCurrencyCode",
        message="Missing Document currency code",
        hint="BT-5 Currency code (e.g., EUR) is required",
    ),
    Rule(
        id="BR-07",
        severity=Severity.ERROR,
        check=lambda doc: doc.seller is not None,
        path="/Invoice/cac:AccountingSupplierParty",
        message="Missing Seller information",
        hint="BT-27+ Seller party information is required",
    ),
    Rule(
        id="BR-08",
        severity=Severity.ERROR,
        check=lambda doc: doc.buyer is not None,
        path="/Invoice/cac:AccountingCustomerParty",
        message="Missing Buyer information",
        hint="BT-44+ Buyer party information is required",
    ),
    Rule(
        id="BR-09",
        severity=Severity.ERROR,
        check=lambda doc: doc.tax_total is not None,
        path="/Invoice/cac:TaxTotal",
        message="Missing Tax total",
        hint="BT-110 Tax total amount is required",
    ),
    Rule(
        id="BR-10",
        severity=Severity.ERROR,
        check=lambda doc: doc.monetary_total is not None,
        path="/Invoice/cac:LegalMonetaryTotal",
        message="Missing Legal monetary total",
        hint="BT-112 Grand total amount is required",
    ),

    # Arithmetic rules
    Rule(
        id="BR-11",
        severity=Severity.ERROR,
        check=check_lines_sum,
        path="/Invoice/cac:LegalMonetaryTotal",
        message="Sum of line net amounts does not equal tax exclusive amount",
        hint="Recalculate sum(lineExtensionAmount) = taxExclusiveAmount",
    ),
    Rule(
        id="BR-12",
        severity=Severity.ERROR,
        check=check_payable_amount,
        path="/Invoice/cac:LegalMonetaryTotal",
        message="Payable amount calculation error",
        hint="Ensure taxExclusiveAmount + taxAmount = payableAmount",
    ),

    # VAT rules
    Rule(
        id="BR-13",
        severity=Severity.ERROR,
        check=check_zero_rate_exemption,
        path="/Invoice/cac:TaxTotal/cac:TaxSubtotal",
        message="0% VAT rate missing exemption reason",
        hint="BT-121 Tax exemption reason is required for 0% VAT",
    ),
    Rule(
        id="BR-14",
        severity=Severity.WARN,
        check=check_reverse_charge,
        path="/Invoice/cac:TaxTotal",
        message="Potential reverse charge scenario not properly handled",
        hint="Cross-border B2B transactions typically require 0% VAT with exemption reason",
    ),
    Rule(
        id="BR-15",
        severity=Severity.ERROR,
        check=check_vat_id_format,
        path="/Invoice/cac:Party/cac:PartyTaxScheme",
        message="Invalid VAT identification number format",
        hint="VAT ID format should be: Country code (2 chars) + VAT number (e.g., DE123456789)",
    ),

    # Line and document rules
    Rule(
        id="BR-16",
        severity=Severity.WARN,
        check=check_line_ids,
        path="/Invoice/cac:InvoiceLine",
        message="Invoice line missing identifier",
        hint="BT-126 Invoice line identifier is recommended",
    ),
    Rule(
        id="BR-17",
        severity=Severity.INFO,
        check=lambda doc: bool(doc.due_date),
        path="/Invoice/cbc:DueDate",
        message="Due date not specified",
        hint="BT-9 Payment due date is recommended for payment processing",
    ),
    Rule(
        id="BR-18",
        severity=Severity.WARN,
        check=check_line_quantities,
        path="/Invoice/cac:InvoiceLine/cbc:InvoicedQuantity",
        message="Invalid line quantity",
        hint="BT-129 Invoiced quantity must be positive",
    ),
    Rule(
        id="BR-19",
        severity=Severity.ERROR,
        check=check_allowance_charge_amounts,
        path="/Invoice/cac:AllowanceCharge",
        message="Allowance/Charge amount cannot be negative",
        hint="Use ChargeIndicator to specify allowance (false) or charge (true)",
    ),
    Rule(
        id="BR-20",
        severity=Severity.WARN,
        check=check_currency_advisory,
        path="/Invoice/cbc:DocumentCurrencyCode",
        message="Non-EUR currency detected",
        hint="Consider providing exchange rate information for non-EUR transactions",
    ),

    # ViDA / EN v2 extensions
    Rule(
        id="V2-DRR-01",
        severity=Severity.WARN,
        check=lambda doc: bool(doc.reporting_ref),
        path="/Invoice/cbc:ReportingRef",
        message="Missing ViDA digital reporting reference",
        hint="BT-DRR-01: Add reporting reference for ViDA compliance (EU Directive 2025)",
    ),
    Rule(
        id="V2-RC-01",
        severity=Severity.INFO,
        check=check_reverse_charge_category,
        path="/Invoice/cac:TaxTotal/cac:TaxSubtotal",
        message="Enhanced reverse charge validation",
        hint="v2: Ensure proper tax category codes for cross-border transactions",
    ),
    Rule(
        id="V2-SEC-01",
        severity=Severity.INFO,
        check=check_digital_signature,
        path="/Invoice",
        message="Digital signature not detected",
        hint="ViDA recommends XAdES digital signatures for enhanced security",
    ),

    # Peppol BIS 4.0 preview rules
    Rule(
        id="BIS4-SB-01",
        severity=Severity.WARN,
        check=check_self_billing_flag,
        path="/Invoice/cac:InvoiceNote",
        message="Self-billing flag missing",
        hint="BIS 4.0: Self-billing transactions require explicit indication (mandatory from March 2025)",
    ),
    Rule(
        id="BIS4-PINT-01",
        severity=Severity.INFO,
        check=lambda doc: bool(doc.additional_document_refs),
        path="/Invoice/cac:AdditionalDocumentReference",
        message="Additional document references not provided",
        hint="BIS 4.0 preview: Enhanced document linking capabilities available",
    ),
)


def get_rule(rule_id: str) -> Optional[Rule]:
    """Look up a rule by its identifier."""
    for rule in LITE_RULES:
        if rule.id == rule_id:
            return rule
    return None


def get_rules_by_severity(severity: Severity) -> list[Rule]:
    """Get all rules declared with a specific severity."""
    return [rule for rule in LITE_RULES if rule.severity == severity]
