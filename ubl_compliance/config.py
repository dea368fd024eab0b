"""
Configuration constants and enums for the UBL Compliance Service.
"""

import logging
import os
from enum import Enum
from typing import Final

# ============================================================================
# Enums
# ============================================================================

class Severity(str, Enum):
    """Severity attached to every validation rule and finding."""
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"


class Profile(str, Enum):
    """Invoice profile detected from the customization and profile identifiers."""
    XRECHNUNG = "XRECHNUNG"
    PEPPOL = "PEPPOL"
    EN = "EN"
    UNKNOWN = "UNKNOWN"


class ChecklistStatus(str, Enum):
    """Status shown for a checklist item in compliance-scoring mode."""
    OK = "✓ OK"
    FAIL = "✗ Fail"


class OutputFormat(str, Enum):
    """Serialization formats supported by the flattener."""
    CSV = "csv"
    JSON = "json"


# ============================================================================
# Profile Detection Markers
# ============================================================================

# Checked in this order; the first match wins
XRECHNUNG_MARKER: Final[str] = "xrechnung"   # in CustomizationID
PEPPOL_MARKER: Final[str] = "peppol"         # in ProfileID
EN16931_MARKER: Final[str] = "en16931"       # in CustomizationID

# ============================================================================
# Compliance Scoring
# ============================================================================

# These are part of the output contract and must not be tuned per deployment
ERROR_PENALTY: Final[int] = 10
WARNING_PENALTY: Final[int] = 2
MAX_SCORE: Final[int] = 100
COMPLIANCE_THRESHOLD: Final[int] = 80

# ============================================================================
# Document Defaults
# ============================================================================

DEFAULT_CURRENCY: Final[str] = "EUR"
DEFAULT_TYPE_CODE: Final[str] = "380"   # 380 = commercial invoice
DEFAULT_UNIT_CODE: Final[str] = "C62"   # UN/ECE "one"
MONEY_PLACES: Final[int] = 2

REVERSE_CHARGE_CODE: Final[str] = "AE"

# Lower-cased substrings that mark a note as a self-billing indication
SELF_BILLING_MARKERS: Final[tuple[str, ...]] = (
    "self-billing",
    "self-invoice",
)

XML_DECLARATION: Final[str] = '<?xml version="1.0" encoding="UTF-8"?>\n'

# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
API_VERSION: Final[str] = os.getenv("API_VERSION", "2025-10-06")
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "5"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("ubl_compliance")


logger = setup_logging()
