"""
Command-line interface for the KSeF invoice validator.

Provides the following commands:
- validate: Validate invoice JSON against business rules (and optionally the XSD)
- validate-xml: Validate an FA(2)/FA(3) XML document against the bundled schemas
- check-nip: Check a Polish tax identification number
- check-account: Check an IBAN or domestic NRB bank account number
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .bank_account import validate_bank_account
from .config import logger
from .results import ValidationResult
from .schemas import Invoice
from .tax_id import validate_tax_id
from .validator import create_validation_report, format_issues_text, format_summary_text
from .xsd import SchemaLoadError, SchemaVersion, XsdValidator


# Create Typer app
app = typer.Typer(
    name="ksef-validator",
    help="KSeF structured invoice validation CLI",
    add_completion=False,
)


def _echo_result(result: ValidationResult) -> None:
    if result.errors or result.warnings:
        typer.echo(format_issues_text(result))
    status = "VALID" if result.is_valid else "INVALID"
    typer.echo(f"{status} ({len(result.errors)} error(s), {len(result.warnings)} warning(s))")


@app.command()
def validate(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Input JSON file containing one invoice or a list of invoices",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    report: Path = typer.Option(
        "validation_report.json",
        "--report",
        "-r",
        help="Output validation report JSON file path",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Also validate each invoice against the bundled XSD schema",
    ),
    today: Optional[datetime] = typer.Option(
        None,
        "--today",
        help="Reference date for date checks (defaults to the current date)",
        formats=["%Y-%m-%d"],
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if any invoices are invalid",
    ),
) -> None:
    """
    Validate invoices from a JSON file.

    Runs the business rules on every invoice, prints a summary and writes
    a detailed report with per-invoice issues.
    """
    typer.echo(f"Validating invoices from: {input_file}")

    try:
        with open(input_file, 'r', encoding='utf-8') as f:
            invoice_data = json.load(f)

        if not isinstance(invoice_data, list):
            invoice_data = [invoice_data]

        invoices = [Invoice.model_validate(inv) for inv in invoice_data]

        if not invoices:
            typer.echo("No invoices found in input file.", err=True)
            raise typer.Exit(code=1)

        schema_validator = XsdValidator() if schema else None
        validation_report = create_validation_report(
            invoices,
            today=today.date() if today else None,
            schema_validator=schema_validator,
        )

        with open(report, 'w', encoding='utf-8') as f:
            json.dump(validation_report.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

        summary = validation_report.summary
        typer.echo("\n" + format_summary_text(summary))
        typer.echo(f"\n[OK] Validation report saved to: {report}")

        # Show invalid invoice details
        invalid_results = [r for r in validation_report.per_invoice_results if not r.is_valid]
        if invalid_results:
            typer.echo("\nInvalid Invoices:")
            for r in invalid_results[:5]:  # Show first 5
                typer.echo(f"  {r.invoice_id}:")
                for issue in r.result.errors:
                    typer.echo(f"    - {issue.code}: {issue.message}")
            if len(invalid_results) > 5:
                typer.echo(f"  ... and {len(invalid_results) - 5} more invalid invoices")

    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)
    except SchemaLoadError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        typer.echo(f"Error: Input does not describe valid invoices: {e}", err=True)
        raise typer.Exit(code=1)

    if fail_on_invalid and summary.invalid_invoices > 0:
        raise typer.Exit(code=1)


@app.command("validate-xml")
def validate_xml(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Invoice XML file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    schema_version: SchemaVersion = typer.Option(
        SchemaVersion.AUTO,
        "--schema-version",
        "-s",
        help="Schema to validate against; auto detects it from the root namespace",
        case_sensitive=False,
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if the document is invalid",
    ),
) -> None:
    """Validate an invoice XML document against the bundled XSD schemas."""
    typer.echo(f"Validating XML from: {input_file}")

    try:
        with open(input_file, 'rb') as f:
            result = XsdValidator().validate_stream(f, schema_version)
    except SchemaLoadError as e:
        typer.echo(f"Error: {e}", err=True)
        logger.exception("Schema loading failed")
        raise typer.Exit(code=1)

    _echo_result(result)

    if fail_on_invalid and not result.is_valid:
        raise typer.Exit(code=1)


@app.command("check-nip")
def check_nip(
    value: str = typer.Argument(..., help="Tax identification number (NIP), e.g. 526-104-08-28"),
) -> None:
    """Check a Polish tax identification number (NIP)."""
    result = validate_tax_id(value)
    _echo_result(result)
    if not result.is_valid:
        raise typer.Exit(code=1)


@app.command("check-account")
def check_account(
    value: str = typer.Argument(..., help="IBAN or domestic NRB account number"),
) -> None:
    """Check a bank account number (IBAN or NRB)."""
    result = validate_bank_account(value)
    _echo_result(result)
    if not result.is_valid:
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"KSeF Validator v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
