"""
Pydantic models for UBL invoice data, validation results and flattened output.

This module defines the core data structures used throughout the service:
- InvoiceDocument and its parts: the canonical tree produced by the parser
- Finding, ChecklistItem and ValidationResult: output of the rule engine
- FlattenOptions, UblHeader, UblLine and FlattenResult: flattening engine I/O

Result models serialize with camelCase aliases (``vidaCompliant``,
``lineCount``, ...) so ``model_dump(by_alias=True, exclude_none=True)``
yields the public wire format.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import (
    DEFAULT_CURRENCY,
    DEFAULT_TYPE_CODE,
    DEFAULT_UNIT_CODE,
    ChecklistStatus,
    OutputFormat,
    Profile,
    Severity,
)


# ============================================================================
# Canonical Document
# ============================================================================

class Party(BaseModel):
    """Seller or buyer party (BG-4 / BG-7)."""
    name: Optional[str] = Field(None, description="Party name (BT-27 / BT-44)")
    vat_id: Optional[str] = Field(None, description="VAT identifier (BT-31 / BT-48)")
    street: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = Field(None, description="ISO 3166-1 alpha-2 country code")


class TaxSubtotal(BaseModel):
    """One VAT breakdown entry (BG-23)."""
    taxable_amount: Optional[str] = Field(None, description="BT-116 VAT category taxable amount")
    tax_amount: Optional[str] = Field(None, description="BT-117 VAT category tax amount")
    percent: Optional[str] = Field(None, description="BT-119 VAT category rate")
    category_id: Optional[str] = Field(None, description="BT-118 VAT category code")
    exemption_reason_code: Optional[str] = Field(None, description="BT-121")
    exemption_reason: Optional[str] = Field(None, description="BT-120")


class TaxTotal(BaseModel):
    """Document level tax total with its ordered breakdown."""
    tax_amount: Optional[str] = Field(None, description="BT-110 Invoice total VAT amount")
    currency_id: Optional[str] = None
    subtotals: list[TaxSubtotal] = Field(default_factory=list)


class MonetaryTotal(BaseModel):
    """Document totals (BG-22)."""
    line_extension_amount: Optional[str] = Field(None, description="BT-106")
    tax_exclusive_amount: Optional[str] = Field(None, description="BT-109")
    tax_inclusive_amount: Optional[str] = Field(None, description="BT-112")
    allowance_total_amount: Optional[str] = Field(None, description="BT-107")
    charge_total_amount: Optional[str] = Field(None, description="BT-108")
    prepaid_amount: Optional[str] = Field(None, description="BT-113")
    payable_amount: Optional[str] = Field(None, description="BT-115")


class AllowanceCharge(BaseModel):
    """Document or line level allowance (indicator false) or charge (true)."""
    charge_indicator: Optional[bool] = None
    amount: Optional[str] = None
    base_amount: Optional[str] = None
    reason: Optional[str] = None


class InvoiceLine(BaseModel):
    """A single invoice line (BG-25)."""
    id: Optional[str] = Field(None, description="BT-126 Invoice line identifier")
    quantity: Optional[str] = Field(None, description="BT-129 Invoiced quantity")
    unit_code: Optional[str] = Field(None, description="BT-130 Unit of measure code")
    line_extension_amount: Optional[str] = Field(None, description="BT-131 Line net amount")
    price_amount: Optional[str] = Field(None, description="BT-146 Item net price")
    base_quantity: Optional[str] = Field(None, description="BT-149 Item price base quantity")
    tax_percent: Optional[str] = Field(None, description="BT-152 Line VAT rate")
    tax_category: Optional[str] = Field(None, description="BT-151 Line VAT category code")
    tax_amount: Optional[str] = None
    item_name: Optional[str] = Field(None, description="BT-153 Item name")
    item_sku: Optional[str] = Field(None, description="BT-155 Seller's item identifier")
    accounting_cost: Optional[str] = Field(None, description="BT-133 Buyer accounting reference")
    po_line_ref: Optional[str] = Field(None, description="BT-132 Purchase order line reference")
    project_ref: Optional[str] = None
    allowance_charges: list[AllowanceCharge] = Field(default_factory=list)


class InvoiceDocument(BaseModel):
    """
    Canonical, normalized representation of one UBL invoice.

    Repeated elements are always lists, even with a single occurrence.
    Optional sub-records are None when the element is absent from the XML.
    """

    # ========================================================================
    # Header
    # ========================================================================
    customization_id: Optional[str] = Field(None, description="BT-24 Specification identifier")
    profile_id: Optional[str] = Field(None, description="BT-23 Business process type")
    id: Optional[str] = Field(None, description="BT-1 Invoice number")
    issue_date: Optional[str] = Field(None, description="BT-2 Issue date")
    due_date: Optional[str] = Field(None, description="BT-9 Payment due date")
    type_code: Optional[str] = Field(None, description="BT-3 Invoice type code")
    type_name: Optional[str] = None
    currency: Optional[str] = Field(None, description="BT-5 Document currency code")
    reporting_ref: Optional[str] = Field(None, description="ViDA digital reporting reference")

    # ========================================================================
    # References
    # ========================================================================
    order_ref: Optional[str] = Field(None, description="BT-13 Purchase order reference")
    contract_ref: Optional[str] = Field(None, description="BT-12 Contract reference")
    project_ref: Optional[str] = Field(None, description="BT-11 Project reference")
    additional_document_refs: list[str] = Field(default_factory=list)

    # ========================================================================
    # Parties and Totals
    # ========================================================================
    seller: Optional[Party] = None
    buyer: Optional[Party] = None
    tax_total: Optional[TaxTotal] = None
    monetary_total: Optional[MonetaryTotal] = None

    # ========================================================================
    # Repeated Elements
    # ========================================================================
    lines: list[InvoiceLine] = Field(default_factory=list)
    allowance_charges: list[AllowanceCharge] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @property
    def tax_subtotals(self) -> list[TaxSubtotal]:
        """Tax breakdown, empty when there is no tax total."""
        return self.tax_total.subtotals if self.tax_total else []


# ============================================================================
# Validation Results
# ============================================================================

class WireModel(BaseModel):
    """Immutable model serialized with camelCase field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Finding(WireModel):
    """A rule that did not pass, copied from the rule descriptor."""
    id: str = Field(..., description="Rule identifier (e.g. 'BR-12')")
    severity: Severity
    path: str = Field(..., description="XPath-like pointer to the offending field")
    message: str
    hint: str


class ChecklistItem(WireModel):
    """Named pass/fail summary derived from the findings."""
    id: str
    status: ChecklistStatus
    hint: str
    severity: Severity


class ValidationMeta(WireModel):
    """Profile always; score, checklist and vidaCompliant only in scoring mode."""
    profile: Profile
    score: Optional[int] = Field(None, ge=0, le=100)
    checklist: Optional[list[ChecklistItem]] = None
    vida_compliant: Optional[bool] = None


class ValidationResult(WireModel):
    """
    Validation outcome for one invoice document.

    ``valid`` is true exactly when ``errors`` is empty; warnings and infos
    never affect it.
    """
    valid: bool
    errors: list[Finding] = Field(default_factory=list)
    warnings: list[Finding] = Field(default_factory=list)
    infos: list[Finding] = Field(default_factory=list)
    meta: ValidationMeta

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "valid": False,
                    "errors": [
                        {
                            "id": "BR-12",
                            "severity": "ERROR",
                            "path": "/Invoice/cac:LegalMonetaryTotal",
                            "message": "Payable amount calculation error",
                            "hint": "Ensure taxExclusiveAmount + taxAmount = payableAmount",
                        }
                    ],
                    "warnings": [],
                    "infos": [],
                    "meta": {"profile": "PEPPOL", "score": 90, "vidaCompliant": True},
                }
            ]
        }
    }


# ============================================================================
# Flattening
# ============================================================================

class FlattenOptions(WireModel):
    """Options controlling the shape and format of flattened output."""
    denormalized: bool = Field(True, description="Repeat header fields on every line row")
    tax_columns: bool = Field(False, description="Pivot tax rates into vat_<rate>_base/amount columns")
    format: OutputFormat = OutputFormat.CSV


class PartyInfo(WireModel):
    name: str = ""
    vat_id: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


class HeaderTotals(WireModel):
    taxable: str = "0"
    tax: str = "0"
    grand: str = "0"
    payable: str = "0"


class TaxEntry(WireModel):
    rate: float = 0.0
    taxable: str = "0"
    amount: str = "0"
    exemption_code: Optional[str] = None
    exemption_reason: Optional[str] = None
    category: Optional[str] = None


class HeaderRefs(WireModel):
    order_ref: Optional[str] = None
    contract_ref: Optional[str] = None
    project_ref: Optional[str] = None
    reporting_ref: Optional[str] = None


class UblHeader(WireModel):
    """Invoice-level record extracted for export."""
    invoice_id: str = ""
    issue_date: str = ""
    due_date: Optional[str] = None
    currency: str = DEFAULT_CURRENCY
    profile: Profile = Profile.UNKNOWN
    customization_id: Optional[str] = None
    profile_id: Optional[str] = None
    type_code: str = DEFAULT_TYPE_CODE
    seller: PartyInfo = Field(default_factory=PartyInfo)
    buyer: PartyInfo = Field(default_factory=PartyInfo)
    totals: HeaderTotals = Field(default_factory=HeaderTotals)
    taxes: list[TaxEntry] = Field(default_factory=list)
    refs: HeaderRefs = Field(default_factory=HeaderRefs)


class UblLine(WireModel):
    """Line-level record extracted for export."""
    line_no: str = ""
    item_name: Optional[str] = None
    item_sku: Optional[str] = None
    qty: float = 1.0
    unit: str = DEFAULT_UNIT_CODE
    unit_price: str = "0"
    price_base_qty: str = "1"
    line_net: str = "0"
    vat_rate: float = 0.0
    vat_category: Optional[str] = None
    vat_amount: str = "0"
    line_allowance: str = "0"
    line_charge: str = "0"
    po_line_ref: Optional[str] = None
    cost_center: Optional[str] = None
    project_code: Optional[str] = None


class FlattenedJson(WireModel):
    header: UblHeader
    lines: list[UblLine] = Field(default_factory=list)


class FlattenMeta(WireModel):
    line_count: int = Field(..., ge=0)
    currency: str


class FlattenResult(WireModel):
    """Serialized flattening output: ``csv`` or ``json`` is set, never both."""
    csv: Optional[str] = None
    json_data: Optional[FlattenedJson] = Field(None, alias="json")
    meta: FlattenMeta
