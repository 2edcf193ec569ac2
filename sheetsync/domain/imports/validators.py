"""
Per-entity schema validation for staged spreadsheet rows.

Validation is exhaustive: every row and every rule is checked so an operator
sees all problems in one upload attempt. Row numbers follow the spreadsheet
(the header is row 1, the first data row is row 2).
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence

from sheetsync.utils.date import is_date_like

from .entities import EntityType, RowMap

logger = logging.getLogger(__name__)

HEADER_ROW_OFFSET = 2

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class FieldRule:
    field: str
    required: bool = False
    type: str = "string"  # string, number, date, email
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[Pattern[str]] = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)


def _r(field_name: str, type_: str = "string", *, required: bool = False, **constraints: Any) -> FieldRule:
    return FieldRule(field=field_name, required=required, type=type_, **constraints)


ENTITY_SCHEMAS: Dict[str, List[FieldRule]] = {
    EntityType.ITEM.value: [
        _r("item_code", required=True, min_length=1, max_length=140),
        _r("item_name", required=True, min_length=1, max_length=140),
        _r("item_group", required=True),
        _r("stock_uom", required=True),
        _r("description"),
        _r("standard_rate", "number"),
        _r("opening_stock", "number"),
        _r("valuation_rate", "number"),
        _r("is_stock_item", "number"),
        _r("default_warehouse"),
        _r("income_account"),
    ],
    EntityType.CUSTOMER.value: [
        _r("customer_name", required=True, min_length=1, max_length=140),
        _r("customer_type", required=True),
        _r("customer_group", required=True),
        _r("territory", required=True),
        _r("email_id", "email"),
        _r("mobile_no"),
    ],
    EntityType.SALES_ORDER.value: [
        _r("customer", required=True),
        _r("transaction_date", "date"),
        _r("delivery_date", "date", required=True),
        _r("item_code", required=True),
        _r("qty", "number", required=True),
        _r("rate", "number", required=True),
    ],
    EntityType.SALES_INVOICE.value: [
        _r("customer", required=True),
        _r("customer_name"),
        _r("id"),
        _r("company"),
        _r("posting_date", "date"),
        _r("due_date", "date"),
        _r("currency", pattern=re.compile(r"^[A-Z]{3}$")),
        _r("exchange_rate", "number"),
        _r("cost_center"),
        _r("item_code", required=True),
        _r("qty", "number", required=True),
        _r("rate", "number", required=True),
        _r("income_account"),
        _r("update_stock", "number"),
    ],
    EntityType.PAYMENT_ENTRY.value: [
        _r("payment_type", required=True),
        _r("party_type", required=True),
        _r("party", required=True),
        _r("posting_date", "date"),
        _r("mode_of_payment"),
        _r("paid_from"),
        _r("paid_to"),
        _r("paid_amount", "number", required=True),
        _r("received_amount", "number", required=True),
        _r("reference_name"),
        _r("reference_type"),
        _r("allocated_amount", "number"),
    ],
}


def _is_string(value: Any) -> bool:
    return isinstance(value, str)


def _is_number(value: Any) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number)


def _is_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_PATTERN.match(value))


TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "string": _is_string,
    "number": _is_number,
    "date": is_date_like,
    "email": _is_email,
}

TYPE_DESCRIPTIONS = {
    "string": "text",
    "number": "a finite number",
    "date": "a date (e.g. YYYY-MM-DD)",
    "email": "an email address like name@example.com",
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def _build_error(
    *,
    field_name: str,
    message: str,
    row: Optional[int] = None,
    value: Any = None,
    expected_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a structured, JSON-ready error payload."""
    payload: Dict[str, Any] = {"field": field_name, "message": message}
    if row is not None:
        payload["row"] = row
    if value is not None:
        payload["value"] = value if isinstance(value, (int, float, str, bool)) else str(value)
    if expected_type is not None:
        payload["expected_type"] = expected_type
    return payload


def _describe_mismatch(value: Any, expected_type: str) -> str:
    actual = type(value).__name__
    return (
        f"expected {TYPE_DESCRIPTIONS.get(expected_type, expected_type)}, "
        f"got {actual} value {value!r}"
    )


class SchemaValidator:
    """Check row-maps against the field rules of their entity type."""

    def __init__(self, schemas: Optional[Dict[str, List[FieldRule]]] = None):
        self._schemas = schemas if schemas is not None else ENTITY_SCHEMAS

    def get_schema(self, entity_type: str) -> Optional[List[FieldRule]]:
        return self._schemas.get(entity_type)

    def validate(self, entity_type: str, rows: Sequence[RowMap]) -> ValidationResult:
        rules = self._schemas.get(entity_type)
        if rules is None:
            return ValidationResult(
                is_valid=False,
                errors=[_build_error(field_name="entity_type", message=f"Unsupported entity type: {entity_type}")],
            )

        if not rows:
            return ValidationResult(
                is_valid=False,
                errors=[_build_error(field_name="data", message="No data rows found in the uploaded file")],
            )

        errors: List[Dict[str, Any]] = []
        warnings: List[Dict[str, Any]] = []

        present_columns: List[str] = []
        for row in rows:
            for column in row.keys():
                if column not in present_columns:
                    present_columns.append(column)

        missing_required = [rule.field for rule in rules if rule.required and rule.field not in present_columns]
        if missing_required:
            errors.append(
                _build_error(
                    field_name=", ".join(missing_required),
                    message=f"Missing required column(s) for {entity_type}: {', '.join(missing_required)}",
                )
            )

        known_fields = {rule.field for rule in rules}
        for column in present_columns:
            if column not in known_fields:
                warnings.append(
                    _build_error(
                        field_name=column,
                        message=f"Column '{column}' is not part of the {entity_type} schema",
                    )
                )

        for index, row in enumerate(rows):
            row_number = index + HEADER_ROW_OFFSET
            for rule in rules:
                errors.extend(self._check_rule(rule, row.get(rule.field), row_number))

        if errors:
            logger.info(
                "Validation of %d %s rows found %d error(s) and %d warning(s)",
                len(rows),
                entity_type,
                len(errors),
                len(warnings),
            )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def _check_rule(self, rule: FieldRule, value: Any, row_number: int) -> List[Dict[str, Any]]:
        if _is_empty(value):
            if rule.required:
                return [
                    _build_error(
                        field_name=rule.field,
                        message=f"{rule.field} is required",
                        row=row_number,
                        value=value,
                        expected_type=rule.type,
                    )
                ]
            return []

        check = TYPE_CHECKS.get(rule.type)
        if check is not None and not check(value):
            return [
                _build_error(
                    field_name=rule.field,
                    message=f"{rule.field} must be of type {rule.type}: {_describe_mismatch(value, rule.type)}",
                    row=row_number,
                    value=value,
                    expected_type=rule.type,
                )
            ]

        problems: List[Dict[str, Any]] = []
        if isinstance(value, str):
            if rule.min_length is not None and len(value) < rule.min_length:
                problems.append(
                    _build_error(
                        field_name=rule.field,
                        message=f"{rule.field} must be at least {rule.min_length} characters",
                        row=row_number,
                        value=value,
                        expected_type=rule.type,
                    )
                )
            if rule.max_length is not None and len(value) > rule.max_length:
                problems.append(
                    _build_error(
                        field_name=rule.field,
                        message=f"{rule.field} must not exceed {rule.max_length} characters",
                        row=row_number,
                        value=value,
                        expected_type=rule.type,
                    )
                )
            if rule.pattern is not None and not rule.pattern.match(value):
                problems.append(
                    _build_error(
                        field_name=rule.field,
                        message=f"{rule.field} format is invalid",
                        row=row_number,
                        value=value,
                        expected_type=rule.type,
                    )
                )
        return problems
