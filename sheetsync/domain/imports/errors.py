"""
Exceptions raised by the import pipeline before a batch exists.

Remote call failures are not exceptions: the ERPNext client and the auto-fix
middleware report them in-band so a failing row never aborts its batch.
"""
from typing import Any, Dict, List, Optional


class ParseError(ValueError):
    """Raised when uploaded bytes are not a readable spreadsheet."""


class UnsupportedEntityTypeError(ValueError):
    """Raised when an entity type name is not one of the supported types."""

    def __init__(self, entity_type: Any):
        self.entity_type = entity_type
        super().__init__(f"Unsupported entity type: {entity_type}")


class ImportValidationError(Exception):
    """Raised when staged rows fail schema validation. Carries every error found."""

    def __init__(
        self,
        errors: List[Dict[str, Any]],
        warnings: Optional[List[Dict[str, Any]]] = None,
        message: str = "Validation failed",
    ):
        self.errors = errors
        self.warnings = warnings or []
        super().__init__(f"{message}: {len(errors)} error(s)")
