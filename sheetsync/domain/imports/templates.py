"""
Downloadable blank workbooks, one per entity type.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .entities import EntityType
from .errors import UnsupportedEntityTypeError
from .processors.excel_processor import generate_template


@dataclass(frozen=True)
class ExcelTemplate:
    entity_type: str
    template_name: str
    columns: Tuple[str, ...]
    sample_rows: Tuple[Dict[str, Any], ...] = ()


EXCEL_TEMPLATES: Dict[str, ExcelTemplate] = {
    EntityType.ITEM.value: ExcelTemplate(
        entity_type=EntityType.ITEM.value,
        template_name="Item_Template.xlsx",
        columns=(
            "item_code",
            "item_name",
            "item_group",
            "stock_uom",
            "description",
            "standard_rate",
            "opening_stock",
            "valuation_rate",
        ),
        sample_rows=(
            {
                "item_code": "ITEM-001",
                "item_name": "Sample Product",
                "item_group": "Products",
                "stock_uom": "Nos",
                "description": "Sample product description",
                "standard_rate": "1000",
                "opening_stock": "10",
                "valuation_rate": "800",
            },
        ),
    ),
    EntityType.CUSTOMER.value: ExcelTemplate(
        entity_type=EntityType.CUSTOMER.value,
        template_name="Customer_Template.xlsx",
        columns=("customer_name", "customer_type", "customer_group", "territory", "mobile_no", "email_id"),
        sample_rows=(
            {
                "customer_name": "Sample Customer",
                "customer_type": "Company",
                "customer_group": "Commercial",
                "territory": "All Territories",
                "mobile_no": "+95912345678",
                "email_id": "customer@example.com",
            },
        ),
    ),
    EntityType.SALES_ORDER.value: ExcelTemplate(
        entity_type=EntityType.SALES_ORDER.value,
        template_name="SalesOrder_Template.xlsx",
        columns=("customer", "delivery_date", "item_code", "qty", "rate"),
        sample_rows=(
            {
                "customer": "CUST-001",
                "delivery_date": "2025-10-31",
                "item_code": "ITEM-001",
                "qty": "5",
                "rate": "1000",
            },
        ),
    ),
    EntityType.SALES_INVOICE.value: ExcelTemplate(
        entity_type=EntityType.SALES_INVOICE.value,
        template_name="SalesInvoice_Template.xlsx",
        columns=("customer", "posting_date", "item_code", "qty", "rate", "update_stock"),
        sample_rows=(
            {
                "customer": "CUST-001",
                "posting_date": "2025-09-30",
                "item_code": "ITEM-001",
                "qty": "3",
                "rate": "1000",
                "update_stock": "1",
            },
        ),
    ),
    EntityType.PAYMENT_ENTRY.value: ExcelTemplate(
        entity_type=EntityType.PAYMENT_ENTRY.value,
        template_name="PaymentEntry_Template.xlsx",
        columns=(
            "payment_type",
            "party_type",
            "party",
            "paid_amount",
            "received_amount",
            "posting_date",
            "mode_of_payment",
        ),
        sample_rows=(
            {
                "payment_type": "Receive",
                "party_type": "Customer",
                "party": "CUST-001",
                "paid_amount": "5000",
                "received_amount": "5000",
                "posting_date": "2025-09-30",
                "mode_of_payment": "Cash",
            },
        ),
    ),
}


def get_template(entity_type: str) -> Optional[ExcelTemplate]:
    return EXCEL_TEMPLATES.get(entity_type)


def list_templates() -> List[ExcelTemplate]:
    return list(EXCEL_TEMPLATES.values())


def build_template_file(entity_type: str, *, include_sample: bool = True) -> Tuple[str, bytes]:
    """
    Return ``(file_name, xlsx_bytes)`` for an entity type's template.

    Raises:
        UnsupportedEntityTypeError: no template exists for ``entity_type``.
    """
    template = get_template(entity_type)
    if template is None:
        raise UnsupportedEntityTypeError(entity_type)
    sample_rows = list(template.sample_rows) if include_sample else None
    return template.template_name, generate_template(template.entity_type, template.columns, sample_rows)
