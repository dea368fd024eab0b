"""
Command-line interface for the UBL Compliance Service.

Provides the main commands:
- validate: Run the compliance rules against a UBL invoice
- flatten: Export a UBL invoice to CSV or header/lines JSON
- info: Show a few header fields for quick inspection
- rules: List the rule catalogue
"""

import json
from pathlib import Path
from typing import Optional

import typer

from .config import OutputFormat, Severity, logger
from .errors import FlattenError, ParseError
from .flatten import flatten_ubl
from .parser import extract_basic_info
from .rules import get_rules_by_severity
from .schemas import FlattenOptions
from .validator import format_result_text, validate_ubl


# Create Typer app
app = typer.Typer(
    name="ubl-compliance",
    help="UBL / EN 16931 invoice validation and flattening CLI",
    add_completion=False,
)


def _read_xml(path: Path) -> str:
    return path.read_text(encoding="utf-8-sig")


@app.command()
def validate(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="UBL invoice XML file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    vida: bool = typer.Option(
        False,
        "--vida",
        help="Enable ViDA compliance scoring and checklist",
    ),
    report: Optional[Path] = typer.Option(
        None,
        "--report",
        "-r",
        help="Also write the validation result as JSON to this file",
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if the invoice has errors",
    ),
) -> None:
    """
    Validate a UBL invoice.

    Runs every rule in declaration order and prints errors, warnings and
    infos. With --vida the compliance score and checklist are added.
    """
    typer.echo(f"Validating invoice: {input_file}")

    try:
        result = validate_ubl(_read_xml(input_file), vida=vida)
    except ParseError as e:
        typer.echo(f"Error: {e.message} (at {e.path})", err=True)
        raise typer.Exit(code=1)

    typer.echo("\n" + format_result_text(result))

    if report:
        with open(report, "w", encoding="utf-8") as f:
            json.dump(result.model_dump(mode="json", by_alias=True, exclude_none=True), f, indent=2)
        typer.echo(f"\n[OK] Validation result saved to: {report}")

    if fail_on_invalid and not result.valid:
        raise typer.Exit(code=1)


@app.command()
def flatten(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="UBL invoice XML file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.CSV,
        "--format",
        "-f",
        help="Output format",
        case_sensitive=False,
    ),
    denormalized: bool = typer.Option(
        True,
        "--denormalized/--no-denormalized",
        help="Repeat invoice header fields on every line row",
    ),
    tax_columns: bool = typer.Option(
        False,
        "--tax-columns",
        help="Add vat_<rate>_base / vat_<rate>_amount columns",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path (prints to stdout when omitted)",
    ),
) -> None:
    """
    Flatten a UBL invoice to CSV or JSON.

    CSV output has one row per invoice line; JSON output keeps the
    header/lines structure.
    """
    options = FlattenOptions(
        denormalized=denormalized,
        tax_columns=tax_columns,
        format=output_format,
    )

    try:
        result = flatten_ubl(_read_xml(input_file), options)
    except FlattenError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if output_format == OutputFormat.JSON:
        content = json.dumps(
            result.model_dump(mode="json", by_alias=True, exclude_none=True),
            indent=2,
            ensure_ascii=False,
        )
    else:
        content = result.csv or ""

    if output:
        output.write_text(content, encoding="utf-8")
        typer.echo(
            f"[OK] Flattened {result.meta.line_count} line(s) "
            f"({result.meta.currency}) to: {output}"
        )
    else:
        typer.echo(content)


@app.command()
def info(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="UBL invoice XML file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Show basic header information of a UBL invoice."""
    details = extract_basic_info(_read_xml(input_file))

    if not details:
        typer.echo("Could not read invoice header.", err=True)
        logger.warning(f"No header information extracted from {input_file}")
        raise typer.Exit(code=1)

    for key, value in details.items():
        typer.echo(f"{key:<14} {value if value is not None else '-'}")


@app.command("rules")
def list_rules() -> None:
    """List all validation rules grouped by severity."""
    for severity in Severity:
        typer.echo(f"\n{severity.value}:")
        for rule in get_rules_by_severity(severity):
            typer.echo(f"  {rule.id:<13} {rule.message}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"UBL Compliance Service v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
