"""Errors raised by the parsing and flattening engines."""


class ComplianceError(Exception):
    """Base error for this package."""


class ParseError(ComplianceError):
    """Raised when a document is not well-formed XML or has no Invoice root.

    ``path`` points at the part of the document that could not be read;
    structural failures always report the document root.
    """

    def __init__(self, message: str, path: str = "/"):
        super().__init__(message)
        self.message = message
        self.path = path


class FlattenError(ComplianceError):
    """Raised when a document cannot be flattened. The cause is chained."""
