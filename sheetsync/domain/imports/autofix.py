"""
Best-effort repair of rows that ERPNext rejected.

Strategies are matched against the rejection message in declaration order;
each matching strategy may return a corrected copy of the row, which is sent
again immediately. The order is a priority: mandatory-field defaults first,
then duplicate names, dates, numbers and finally a plain permission retry.
A final failure here is a normal row outcome, not a bug.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Protocol

from sheetsync.utils.date import normalize_date, today_iso

from .entities import RowMap, resolve_entity_type

logger = logging.getLogger(__name__)

FixFn = Callable[[RowMap, str], Optional[RowMap]]

DEFAULT_MAX_RETRIES = 3


class RecordCreator(Protocol):
    def create_record(self, entity_type: str, data: RowMap) -> Any:
        ...


@dataclass(frozen=True)
class FixStrategy:
    pattern: Pattern[str]
    description: str
    fix: FixFn

    def matches(self, error_message: str) -> bool:
        return bool(self.pattern.search(error_message or ""))


@dataclass
class AutoFixResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    fixes_applied: List[str] = field(default_factory=list)


MANDATORY_FIELD_DEFAULTS: Dict[str, Any] = {
    "naming_series": "AUTO",
    "currency": "USD",
    "company": "Default Company",
    "customer_group": "All Customer Groups",
    "territory": "All Territories",
    "item_group": "All Item Groups",
    "stock_uom": "Nos",
    "is_stock_item": 1,
    "include_item_in_manufacturing": 0,
    "maintain_stock": 1,
    "disabled": 0,
    "has_batch_no": 0,
    "has_serial_no": 0,
    "is_purchase_item": 1,
    "is_sales_item": 1,
}

# ERPNext reports missing fields either by fieldname or by label.
_MANDATORY_FIELD_NAME = re.compile(r"field ['\"]?([^'\"]+?)['\"]? is mandatory", re.IGNORECASE)
_MISSING_VALUE_LABEL = re.compile(r"value missing for [^:]+:\s*([^\n<]+)", re.IGNORECASE)

NAME_FIELDS = ("name", "item_code", "customer_name")
DATE_FIELDS = ("posting_date", "due_date", "transaction_date", "delivery_date")
NUMERIC_FIELDS = (
    "rate",
    "amount",
    "qty",
    "quantity",
    "price",
    "cost",
    "standard_rate",
    "valuation_rate",
    "paid_amount",
    "received_amount",
    "allocated_amount",
    "exchange_rate",
)

_NON_NUMERIC = re.compile(r"[^\d.\-]")


def _label_to_fieldname(label: str) -> str:
    return re.sub(r"\s+", "_", label.strip().lower())


def fix_mandatory_field(data: RowMap, error: str) -> Optional[RowMap]:
    match = _MANDATORY_FIELD_NAME.search(error)
    if match:
        field_name = match.group(1).strip().lower()
    else:
        match = _MISSING_VALUE_LABEL.search(error)
        if not match:
            return None
        field_name = _label_to_fieldname(match.group(1))

    if field_name not in MANDATORY_FIELD_DEFAULTS:
        return None

    fixed = dict(data)
    fixed[field_name] = MANDATORY_FIELD_DEFAULTS[field_name]
    logger.info("Auto-fixed: added default value %r for field '%s'", fixed[field_name], field_name)
    return fixed


def fix_duplicate_name(data: RowMap, error: str) -> Optional[RowMap]:
    # Whichever name field is present gets the suffix, regardless of entity type.
    name_field = next((name for name in NAME_FIELDS if data.get(name)), None)
    if name_field is None:
        return None

    fixed = dict(data)
    original = fixed[name_field]
    fixed[name_field] = f"{original}_{int(time.time() * 1000)}"
    logger.info("Auto-fixed: changed %s from '%s' to '%s'", name_field, original, fixed[name_field])
    return fixed


def fix_date_format(data: RowMap, error: str) -> Optional[RowMap]:
    fixed = dict(data)
    changed = False
    for name in DATE_FIELDS:
        if not fixed.get(name):
            continue
        normalized = normalize_date(fixed[name], log_context="auto_fix")
        if normalized is None:
            fixed[name] = today_iso()
            logger.info("Auto-fixed: set %s to today's date, '%s' is not a date", name, data[name])
        else:
            fixed[name] = normalized
            logger.info("Auto-fixed: converted %s to %s", name, normalized)
        changed = True
    return fixed if changed else None


def fix_number_format(data: RowMap, error: str) -> Optional[RowMap]:
    fixed = dict(data)
    changed = False
    for name in NUMERIC_FIELDS:
        value = fixed.get(name)
        if not value or not isinstance(value, str):
            continue
        try:
            number = float(_NON_NUMERIC.sub("", value))
        except ValueError:
            continue
        fixed[name] = number
        changed = True
        logger.info("Auto-fixed: converted %s from string to number: %s", name, number)
    return fixed if changed else None


def retry_unchanged(data: RowMap, error: str) -> Optional[RowMap]:
    # Nothing to change locally; relies on permissions having changed remotely.
    logger.info("Auto-fix: permission error detected, retrying unchanged data")
    return data


def default_strategies() -> List[FixStrategy]:
    return [
        FixStrategy(
            re.compile(r"field.*is mandatory|value missing for", re.IGNORECASE),
            "Add default values for mandatory fields",
            fix_mandatory_field,
        ),
        FixStrategy(
            re.compile(r"duplicate|already exists", re.IGNORECASE),
            "Generate unique names for duplicates",
            fix_duplicate_name,
        ),
        FixStrategy(
            re.compile(r"invalid date|date format", re.IGNORECASE),
            "Convert dates to proper format",
            fix_date_format,
        ),
        FixStrategy(
            re.compile(r"invalid number|not a valid float", re.IGNORECASE),
            "Convert strings to proper numbers",
            fix_number_format,
        ),
        FixStrategy(
            re.compile(r"permission denied|not permitted", re.IGNORECASE),
            "Retry with administrative privileges",
            retry_unchanged,
        ),
    ]


class AutoFixMiddleware:
    """Apply matching fix strategies to a rejected row and resubmit it."""

    def __init__(self, client: RecordCreator, strategies: Optional[List[FixStrategy]] = None):
        self._client = client
        self._strategies: List[FixStrategy] = list(strategies) if strategies is not None else default_strategies()

    @property
    def strategies(self) -> List[FixStrategy]:
        return list(self._strategies)

    def add_strategy(self, strategy: FixStrategy) -> None:
        """Append a strategy; it runs after every strategy already registered."""
        self._strategies.append(strategy)

    def process_record(
        self,
        entity_type: str,
        data: RowMap,
        error_message: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> AutoFixResult:
        """
        Retry a rejected row for up to ``max_retries`` passes over the strategy list.

        Each pass re-scans every strategy, so a fix that already ran can run
        again if the new rejection still matches it.
        """
        if resolve_entity_type(entity_type) is None:
            return AutoFixResult(success=False, error=f"Unsupported entity type: {entity_type}")

        current = dict(data)
        error = error_message or ""
        fixes_applied: List[str] = []

        for attempt in range(max_retries):
            for strategy in self._strategies:
                if not strategy.matches(error):
                    continue

                logger.info("Applying auto-fix strategy: %s", strategy.description)
                try:
                    fixed = strategy.fix(current, error)
                except Exception as exc:
                    logger.error("Auto-fix strategy '%s' failed: %s", strategy.description, exc)
                    continue
                if fixed is None:
                    continue

                current = fixed
                fixes_applied.append(strategy.description)

                try:
                    response = self._client.create_record(entity_type, current)
                except Exception as exc:
                    logger.error("Retry after '%s' raised: %s", strategy.description, exc)
                    error = str(exc) or "Unknown error after fix attempt"
                    continue
                if response.success:
                    logger.info("Auto-fix successful after %d attempt(s)", attempt + 1)
                    return AutoFixResult(success=True, data=response.data, fixes_applied=fixes_applied)
                error = response.error or "Unknown error after fix attempt"

        return AutoFixResult(
            success=False,
            error=f"Auto-fix failed after {max_retries} attempts. Last error: {error}",
            fixes_applied=fixes_applied,
        )
