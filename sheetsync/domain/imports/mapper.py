"""
Header-to-field mapping for spreadsheet rows.

Operators upload sheets exported from ERPNext ("Item Code", "Quantity (Items)")
as often as hand-made ones ("item_code", "Qty"). Each entity type declares,
per canonical field, the header spellings it accepts in priority order.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sheetsync.utils.date import normalize_date

from .entities import CellValue, EntityType, RowMap

logger = logging.getLogger(__name__)

Transform = Callable[[Any], CellValue]

_NON_NUMERIC = re.compile(r"[^\d.\-]")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def to_float(value: Any) -> Optional[float]:
    """Parse a number, ignoring currency symbols, thousands separators and units."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            try:
                number = float(_NON_NUMERIC.sub("", text))
            except ValueError:
                return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_int(value: Any) -> Optional[int]:
    number = to_float(value)
    if number is None:
        return None
    return int(number)


def to_flag(value: Any) -> int:
    """Yes/true/1 style values become 1, everything else 0."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return 1 if value else 0
    if isinstance(value, str):
        return 1 if value.strip().lower() in ("yes", "1", "true", "y") else 0
    return 1


def to_date(value: Any) -> Optional[str]:
    return normalize_date(value, log_context="field_mapper")


@dataclass(frozen=True)
class FieldMapping:
    headers: Tuple[str, ...]
    field: str
    transform: Optional[Transform] = None


def _m(headers: Sequence[str], field: str, transform: Optional[Transform] = None) -> FieldMapping:
    return FieldMapping(headers=tuple(headers), field=field, transform=transform)


DEFAULT_FIELD_MAPPINGS: Dict[str, List[FieldMapping]] = {
    EntityType.ITEM.value: [
        _m(["Item Code", "item_code"], "item_code"),
        _m(["Item Name", "item_name"], "item_name"),
        _m(["Item Group", "item_group"], "item_group"),
        _m(["Default Unit of Measure", "stock_uom", "Stock UOM"], "stock_uom"),
        _m(["Description", "description"], "description"),
        _m(["Standard Rate", "standard_rate", "Rate"], "standard_rate", to_float),
        _m(["Opening Stock", "opening_stock"], "opening_stock", to_int),
        _m(["Valuation Rate", "valuation_rate"], "valuation_rate", to_float),
        _m(["Maintain Stock", "maintain_stock", "is_stock_item"], "is_stock_item", to_flag),
        _m(["Default Warehouse (Item Defaults)", "default_warehouse"], "default_warehouse"),
        _m(["Default Income Account (Item Defaults)", "income_account"], "income_account"),
    ],
    EntityType.CUSTOMER.value: [
        _m(["Customer Name", "customer_name"], "customer_name"),
        _m(["Customer Type", "customer_type"], "customer_type"),
        _m(["Customer Group", "customer_group"], "customer_group"),
        _m(["Territory", "territory"], "territory"),
        _m(["Mobile No", "mobile_no", "Mobile"], "mobile_no"),
        _m(["Email Id", "email_id", "Email"], "email_id"),
    ],
    EntityType.SALES_ORDER.value: [
        _m(["Customer", "customer"], "customer"),
        _m(["Date", "transaction_date", "Transaction Date"], "transaction_date", to_date),
        _m(["Delivery Date", "delivery_date"], "delivery_date", to_date),
        _m(["Item Code", "item_code", "Item Code (Items)"], "item_code"),
        _m(["Qty", "qty", "Quantity", "Quantity (Items)"], "qty", to_float),
        _m(["Rate", "rate", "Rate (Items)"], "rate", to_float),
    ],
    EntityType.SALES_INVOICE.value: [
        _m(["Customer", "customer"], "customer"),
        _m(["Customer Name", "customer_name"], "customer_name"),
        _m(["ID", "id"], "id"),
        _m(["Company", "company"], "company"),
        _m(["Date", "posting_date", "Posting Date"], "posting_date", to_date),
        _m(["Payment Due Date", "due_date", "Due Date"], "due_date", to_date),
        _m(["Currency", "currency"], "currency"),
        _m(["Exchange Rate", "exchange_rate"], "exchange_rate", to_float),
        _m(["Cost Center (Items)", "cost_center"], "cost_center"),
        _m(["Item Name (Items)", "Item Code", "item_code"], "item_code"),
        _m(["Quantity (Items)", "Qty", "qty", "Quantity"], "qty", to_float),
        _m(["Rate (Items)", "Rate", "rate"], "rate", to_float),
        _m(["Income Account (Items)", "income_account"], "income_account"),
        _m(["Update Stock", "update_stock"], "update_stock", to_flag),
    ],
    EntityType.PAYMENT_ENTRY.value: [
        _m(["Payment Type", "payment_type"], "payment_type"),
        _m(["Party Type", "party_type"], "party_type"),
        _m(["Party", "party"], "party"),
        _m(["Posting Date", "posting_date", "Date"], "posting_date", to_date),
        _m(["Mode of Payment", "mode_of_payment"], "mode_of_payment"),
        _m(["Account Paid From", "paid_from"], "paid_from"),
        _m(["Account Paid To", "paid_to"], "paid_to"),
        _m(["Paid Amount", "paid_amount"], "paid_amount", to_float),
        _m(["Received Amount", "received_amount"], "received_amount", to_float),
        _m(["Name (Payment References)", "reference_name"], "reference_name"),
        _m(["Type (Payment References)", "reference_type"], "reference_type"),
        _m(["Allocated (Payment References)", "allocated_amount"], "allocated_amount", to_float),
    ],
}


class FieldMapper:
    """Translate raw spreadsheet headers into canonical ERPNext field names."""

    def __init__(self, mappings: Optional[Dict[str, List[FieldMapping]]] = None):
        self._mappings = mappings if mappings is not None else DEFAULT_FIELD_MAPPINGS

    def supports(self, entity_type: str) -> bool:
        return entity_type in self._mappings

    def get_mappings(self, entity_type: str) -> Optional[List[FieldMapping]]:
        return self._mappings.get(entity_type)

    def map_row(self, entity_type: str, raw_row: RowMap) -> RowMap:
        """
        Map one row. For each canonical field the first listed header with a
        non-empty value wins; fields with no usable value are left out.
        """
        mappings = self._mappings.get(entity_type)
        if mappings is None:
            return dict(raw_row)

        mapped: RowMap = {}
        for mapping in mappings:
            value: Any = None
            found = False
            for header in mapping.headers:
                candidate = raw_row.get(header)
                if not _is_empty(candidate):
                    value = candidate
                    found = True
                    break
            if not found:
                continue

            if mapping.transform is not None:
                try:
                    value = mapping.transform(value)
                except Exception as exc:
                    logger.warning("Transform failed for %s.%s: %s", entity_type, mapping.field, exc)
                    value = None
                if value is None:
                    continue

            mapped[mapping.field] = value
        return mapped

    def map_rows(self, entity_type: str, rows: Iterable[RowMap]) -> List[RowMap]:
        if entity_type not in self._mappings:
            logger.warning("No field mappings defined for entity type: %s", entity_type)
        return [self.map_row(entity_type, row) for row in rows]

    def find_mapping(self, entity_type: str, column_name: str) -> Optional[FieldMapping]:
        """Return the mapping that accepts ``column_name`` (case-insensitive)."""
        mappings = self._mappings.get(entity_type)
        if not mappings:
            return None
        wanted = column_name.strip().lower()
        for mapping in mappings:
            if any(header.lower() == wanted for header in mapping.headers):
                return mapping
        return None

    def unmapped_columns(self, entity_type: str, columns: Iterable[str]) -> List[str]:
        """Columns the mapper will drop for this entity type (header match is exact)."""
        mappings = self._mappings.get(entity_type)
        if not mappings:
            return []
        accepted = {header for mapping in mappings for header in mapping.headers}
        return [column for column in columns if column not in accepted]
