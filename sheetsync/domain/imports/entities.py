"""
Entity types accepted by the import pipeline and the row value space they share.
"""
from enum import Enum
from typing import Dict, Optional, Union

# Closed value space for row-maps: parsed cells are text, mapped values may
# be coerced to numbers or flags.
CellValue = Union[str, int, float, bool, None]
RowMap = Dict[str, CellValue]


class EntityType(str, Enum):
    ITEM = "Item"
    CUSTOMER = "Customer"
    SALES_ORDER = "Sales Order"
    SALES_INVOICE = "Sales Invoice"
    PAYMENT_ENTRY = "Payment Entry"


ENTITY_TYPES = tuple(entity.value for entity in EntityType)


def resolve_entity_type(value: Optional[str]) -> Optional[EntityType]:
    """Return the matching EntityType, or None for unknown names."""
    if value is None:
        return None
    try:
        return EntityType(value.strip() if isinstance(value, str) else value)
    except ValueError:
        return None


def resource_endpoint(entity_type: str) -> str:
    """ERPNext REST path that creates a document of this type."""
    return f"/api/resource/{entity_type}"
