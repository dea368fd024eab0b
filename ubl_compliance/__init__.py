"""
UBL Compliance Service

A Python service that validates UBL (EN 16931) electronic invoices against
declarative business rules and flattens them into CSV or JSON records.
"""

__version__ = "0.1.0"
__author__ = "UBL Compliance Team"

from .errors import ComplianceError, FlattenError, ParseError
from .schemas import FlattenOptions, FlattenResult, InvoiceDocument, ValidationResult
from .parser import parse_invoice_xml
from .validator import evaluate, validate_ubl
from .flatten import flatten_document, flatten_ubl

__all__ = [
    "ComplianceError",
    "FlattenError",
    "ParseError",
    "FlattenOptions",
    "FlattenResult",
    "InvoiceDocument",
    "ValidationResult",
    "parse_invoice_xml",
    "evaluate",
    "validate_ubl",
    "flatten_document",
    "flatten_ubl",
]
