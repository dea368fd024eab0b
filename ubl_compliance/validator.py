"""
Validation engine for UBL invoice compliance.

This module runs the declarative rule list against a canonical document
and produces a ValidationResult: findings split by severity, the detected
profile and, in compliance-scoring (ViDA) mode, a score and checklist.
"""

from typing import Optional, Sequence, Union

from .config import (
    COMPLIANCE_THRESHOLD,
    EN16931_MARKER,
    ERROR_PENALTY,
    MAX_SCORE,
    PEPPOL_MARKER,
    WARNING_PENALTY,
    XRECHNUNG_MARKER,
    ChecklistStatus,
    Profile,
    Severity,
    logger,
)
from .parser import parse_invoice_xml
from .rules import LITE_RULES, Rule
from .schemas import (
    ChecklistItem,
    Finding,
    InvoiceDocument,
    ValidationMeta,
    ValidationResult,
)


def detect_profile(document: InvoiceDocument) -> Profile:
    """
    Detect the invoice profile from its identifiers.

    A national CIUS (XRechnung) in the customization id wins over the
    network marker in the profile id, which wins over the generic EN
    marker. Anything else is UNKNOWN.
    """
    customization_id = document.customization_id or ""
    profile_id = document.profile_id or ""

    if XRECHNUNG_MARKER in customization_id:
        return Profile.XRECHNUNG
    if PEPPOL_MARKER in profile_id:
        return Profile.PEPPOL
    if EN16931_MARKER in customization_id:
        return Profile.EN
    return Profile.UNKNOWN


def calculate_score(error_count: int, warning_count: int) -> int:
    """Linear penalty score: 10 per error, 2 per warning, floored at 0."""
    return max(0, MAX_SCORE - (error_count * ERROR_PENALTY + warning_count * WARNING_PENALTY))


def build_checklist(
    document: InvoiceDocument,
    errors: Sequence[Finding],
    warnings: Sequence[Finding],
) -> list[ChecklistItem]:
    """
    Derive the ViDA checklist from findings that were already computed.

    No rule is re-evaluated here.
    """
    error_ids = {finding.id for finding in errors}
    warning_ids = {finding.id for finding in warnings}

    def status(passed: bool) -> ChecklistStatus:
        return ChecklistStatus.OK if passed else ChecklistStatus.FAIL

    return [
        ChecklistItem(
            id="DRR-01",
            status=status(bool(document.reporting_ref)),
            hint="Digital Reporting Reference for ViDA compliance",
            severity=Severity.WARN,
        ),
        ChecklistItem(
            id="VAT-EXEMPTION",
            status=status("BR-13" not in error_ids),
            hint="0% VAT rates have proper exemption reasons",
            severity=Severity.ERROR,
        ),
        ChecklistItem(
            id="ARITHMETIC",
            status=status(not error_ids & {"BR-11", "BR-12"}),
            hint="All monetary calculations are correct",
            severity=Severity.ERROR,
        ),
        ChecklistItem(
            id="REVERSE-CHARGE",
            status=status("BR-14" not in warning_ids),
            hint="Cross-border reverse charge handling",
            severity=Severity.WARN,
        ),
        ChecklistItem(
            id="SELF-BILLING",
            status=status("BIS4-SB-01" not in warning_ids),
            hint="Self-billing scenarios properly flagged",
            severity=Severity.WARN,
        ),
    ]


def _finding(rule: Rule) -> Finding:
    return Finding(
        id=rule.id,
        severity=rule.severity,
        path=rule.path,
        message=rule.message,
        hint=rule.hint,
    )


def evaluate(
    document: InvoiceDocument,
    scoring: bool = False,
    rules: Optional[Sequence[Rule]] = None,
) -> ValidationResult:
    """
    Evaluate every rule against a canonical document.

    Args:
        document: Parsed InvoiceDocument
        scoring: Also compute score, checklist and the ViDA compliance flag
        rules: Optional rule list to apply (defaults to LITE_RULES)

    Returns:
        ValidationResult with findings in rule declaration order
    """
    if rules is None:
        rules = LITE_RULES

    errors: list[Finding] = []
    warnings: list[Finding] = []
    infos: list[Finding] = []
    by_severity = {
        Severity.ERROR: errors,
        Severity.WARN: warnings,
        Severity.INFO: infos,
    }

    for rule in rules:
        try:
            passed = rule.check(document)
        except Exception as e:
            logger.error(f"Error running rule {rule.id} on invoice {document.id}: {e}")
            errors.append(Finding(
                id=rule.id,
                severity=Severity.ERROR,
                path=rule.path,
                message=f"Rule execution failed: {rule.message}",
                hint=rule.hint,
            ))
            continue

        if not passed:
            by_severity[rule.severity].append(_finding(rule))

    meta = ValidationMeta(profile=detect_profile(document))

    if scoring:
        score = calculate_score(len(errors), len(warnings))
        meta = ValidationMeta(
            profile=meta.profile,
            score=score,
            checklist=build_checklist(document, errors, warnings),
            vida_compliant=score >= COMPLIANCE_THRESHOLD,
        )

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        infos=infos,
        meta=meta,
    )


def validate_ubl(xml: Union[str, bytes], vida: bool = False) -> ValidationResult:
    """
    Parse and validate a UBL invoice.

    Args:
        xml: Raw invoice XML
        vida: Enable compliance scoring and checklist

    Returns:
        ValidationResult for the document

    Raises:
        ParseError: If the XML is malformed or not a UBL Invoice
    """
    document = parse_invoice_xml(xml)
    result = evaluate(document, scoring=vida)

    logger.info(
        f"Validated invoice {document.id}: {len(result.errors)} error(s), "
        f"{len(result.warnings)} warning(s), profile {result.meta.profile.value}"
    )
    return result


def format_result_text(result: ValidationResult) -> str:
    """
    Format a ValidationResult as human-readable text for CLI output.

    Args:
        result: ValidationResult to format

    Returns:
        Formatted string for display
    """
    lines = [
        "=" * 50,
        "VALIDATION RESULT",
        "=" * 50,
        f"Valid:    {'yes' if result.valid else 'no'}",
        f"Profile:  {result.meta.profile.value}",
        f"Errors:   {len(result.errors)}",
        f"Warnings: {len(result.warnings)}",
        f"Infos:    {len(result.infos)}",
        "",
    ]

    if result.meta.score is not None:
        compliant = "yes" if result.meta.vida_compliant else "no"
        lines.append(f"Score:    {result.meta.score}/100 (ViDA compliant: {compliant})")
        lines.append("")

    for title, findings in (("Errors", result.errors), ("Warnings", result.warnings), ("Infos", result.infos)):
        if not findings:
            continue
        lines.append(f"{title}:")
        lines.append("-" * 40)
        for finding in findings:
            lines.append(f"  [{finding.id}] {finding.message}")
            lines.append(f"      {finding.path} - {finding.hint}")
        lines.append("")

    if result.meta.checklist:
        lines.append("Checklist:")
        lines.append("-" * 40)
        for item in result.meta.checklist:
            lines.append(f"  {item.status.value}  {item.id}: {item.hint}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
