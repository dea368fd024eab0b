"""
FastAPI application for the UBL Compliance Service.

Provides REST API endpoints for:
- Health check
- UBL invoice validation (with optional ViDA scoring)
- UBL invoice flattening to CSV or JSON
- Combined validation and header summary
- Rule catalogue
"""

import time
from typing import Optional, Union

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .config import logger, API_HOST, API_PORT, API_VERSION, MAX_UPLOAD_SIZE_MB, OutputFormat, Severity
from .errors import FlattenError, ParseError
from .flatten import flatten_ubl
from .parser import document_summary, parse_invoice_xml
from .rules import LITE_RULES, get_rule, get_rules_by_severity
from .schemas import FlattenOptions, FlattenResult, ValidationResult
from .validator import evaluate, validate_ubl


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="UBL Compliance Service API",
    description="""
    UBL / EN 16931 invoice compliance API.

    This API validates UBL invoices against a set of EN 16931 business
    rules (plus ViDA and Peppol BIS 4.0 preview rules) and flattens them
    into spreadsheet-friendly CSV or structured JSON.

    ## Features

    - **Validate**: Upload a UBL invoice and get errors, warnings and infos
    - **ViDA mode**: Add a compliance score and checklist
    - **Flatten**: Export invoice lines as CSV rows or header/lines JSON

    XML Schema validation and signature verification are not performed.
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)


# ============================================================================
# Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ProcessResponse(BaseModel):
    """Validation result together with the invoice header summary."""
    validation: ValidationResult
    summary: dict[str, Optional[str]]


# ============================================================================
# Helpers
# ============================================================================

async def _read_upload(file: UploadFile) -> bytes:
    """Read an uploaded invoice, enforcing the size limit."""
    content = await file.read()

    if not content:
        raise HTTPException(status_code=400, detail="No file provided")

    max_size = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {max_size} bytes",
        )
    return content


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/", tags=["System"])
async def root():
    """Describe the service and its endpoints."""
    return {
        "name": "UBL Compliance Service API",
        "version": API_VERSION,
        "endpoints": {
            "health": "GET /health",
            "validate": "POST /api/validate",
            "flatten": "POST /api/flatten",
            "process": "POST /api/process",
            "rules": "GET /rules",
        },
    }


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status and version information.
    """
    return HealthResponse(status="healthy", version=API_VERSION)


@app.post(
    "/api/validate",
    response_model=ValidationResult,
    response_model_exclude_none=True,
    tags=["Validation"],
    summary="Validate a UBL invoice",
)
async def validate(
    file: UploadFile = File(..., description="UBL invoice XML file"),
    vida: bool = Form(False, description="Enable ViDA scoring and checklist"),
) -> ValidationResult:
    """
    Validate an uploaded UBL invoice.

    Rules are applied in a fixed order. The document is valid when no
    ERROR-severity rule fails; warnings and infos are advisory.

    **ViDA mode** adds `score` (100 - 10 per error - 2 per warning),
    `checklist` and `vidaCompliant` (score >= 80) to `meta`.
    """
    content = await _read_upload(file)
    started = time.perf_counter()

    try:
        result = validate_ubl(content, vida=vida)
    except ParseError as e:
        logger.error(f"Rejected {file.filename}: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)

    logger.info(f"Validated {file.filename} in {(time.perf_counter() - started) * 1000:.1f} ms")
    return result


@app.post(
    "/api/flatten",
    response_model=FlattenResult,
    response_model_exclude_none=True,
    tags=["Flattening"],
    summary="Flatten a UBL invoice to CSV or JSON",
)
async def flatten(
    file: UploadFile = File(..., description="UBL invoice XML file"),
    denormalized: bool = Form(False, description="Repeat header fields on every row"),
    tax_columns: bool = Form(False, alias="taxColumns", description="Pivot tax rates into columns"),
    output_format: OutputFormat = Form(OutputFormat.CSV, alias="format"),
    as_json: bool = Query(False, alias="json", description="Return the result envelope as JSON"),
) -> Union[FlattenResult, Response]:
    """
    Flatten an uploaded UBL invoice.

    CSV output is returned as a file download unless `?json=true` is
    given, in which case the structured header/lines JSON is returned.
    """
    content = await _read_upload(file)

    options = FlattenOptions(
        denormalized=denormalized,
        tax_columns=tax_columns,
        format=OutputFormat.JSON if as_json else output_format,
    )

    try:
        result = flatten_ubl(content, options)
    except FlattenError as e:
        logger.error(f"Flattening {file.filename} failed: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if options.format == OutputFormat.JSON:
        return result

    filename = f"invoice_{int(time.time() * 1000)}.csv"
    return Response(
        content=result.csv or "",
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post(
    "/api/process",
    response_model=ProcessResponse,
    response_model_exclude_none=True,
    tags=["Validation"],
    summary="Validate a UBL invoice and summarize its header",
)
async def process(
    file: UploadFile = File(..., description="UBL invoice XML file"),
    vida: bool = Form(False, description="Enable ViDA scoring and checklist"),
) -> ProcessResponse:
    """
    Validate an uploaded UBL invoice in one call and return a short header
    summary (id, dates, parties, payable amount) alongside the result.
    """
    content = await _read_upload(file)

    try:
        document = parse_invoice_xml(content)
    except ParseError as e:
        logger.error(f"Rejected {file.filename}: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)

    result = evaluate(document, scoring=vida)
    logger.info(f"Processed {file.filename}: valid={result.valid}")
    return ProcessResponse(validation=result, summary=document_summary(document))


@app.get("/rules", tags=["System"])
async def list_rules():
    """
    List all validation rules applied by the service.

    Returns the rule catalogue grouped by severity, in evaluation order.
    """
    rules_by_severity = {}
    for severity in Severity:
        severity_rules = get_rules_by_severity(severity)
        if severity_rules:
            rules_by_severity[severity.value] = [
                {"id": rule.id, "path": rule.path, "message": rule.message, "hint": rule.hint}
                for rule in severity_rules
            ]

    return {
        "total_rules": len(LITE_RULES),
        "rules_by_severity": rules_by_severity,
    }


@app.get("/rules/{rule_id}", tags=["System"])
async def get_rule_detail(rule_id: str):
    """Describe a single rule."""
    rule = get_rule(rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Unknown rule: {rule_id}")

    return {
        "id": rule.id,
        "severity": rule.severity.value,
        "path": rule.path,
        "message": rule.message,
        "hint": rule.hint,
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"UBL Compliance Service API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("UBL Compliance Service API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
