import re
from datetime import date

import pytest

from sheetsync.domain.imports.autofix import (
    AutoFixMiddleware,
    FixStrategy,
    fix_date_format,
    fix_duplicate_name,
    fix_mandatory_field,
    fix_number_format,
)
from sheetsync.integrations.erpnext import RemoteResult


def _failed(message):
    return RemoteResult(success=False, error=message, status_code=417)


def test_strategy_order_is_the_priority_order(make_client):
    descriptions = [strategy.description for strategy in AutoFixMiddleware(make_client()).strategies]

    assert descriptions == [
        "Add default values for mandatory fields",
        "Generate unique names for duplicates",
        "Convert dates to proper format",
        "Convert strings to proper numbers",
        "Retry with administrative privileges",
    ]


def test_missing_territory_is_filled_and_retried(make_client):
    client = make_client()
    middleware = AutoFixMiddleware(client)
    row = {"customer_name": "ACME", "customer_type": "Company"}

    result = middleware.process_record("Customer", row, "Field 'territory' is mandatory")

    assert result.success
    assert result.fixes_applied == ["Add default values for mandatory fields"]
    assert client.calls == [("Customer", dict(row, territory="All Territories"))]
    assert "territory" not in row


def test_mandatory_field_reported_by_label():
    fixed = fix_mandatory_field({"item_code": "A"}, "Value missing for Item: Stock UOM")

    assert fixed == {"item_code": "A", "stock_uom": "Nos"}


def test_mandatory_field_without_known_default_is_not_fixed():
    assert fix_mandatory_field({"item_code": "A"}, "Field 'barcode' is mandatory") is None


def test_duplicate_name_gets_a_suffix():
    fixed = fix_duplicate_name({"item_code": "ITEM-001", "item_name": "Widget"}, "Duplicate entry")

    assert re.fullmatch(r"ITEM-001_\d+", fixed["item_code"])
    assert fixed["item_name"] == "Widget"


def test_date_fix_normalizes_or_falls_back_to_today():
    fixed = fix_date_format(
        {"posting_date": "31/10/2025", "delivery_date": "soon", "customer": "C"},
        "Invalid date format",
    )

    assert fixed["posting_date"] == "2025-10-31"
    assert fixed["delivery_date"] == date.today().isoformat()
    assert fix_date_format({"customer": "C"}, "Invalid date format") is None


def test_number_fix_only_touches_strings():
    fixed = fix_number_format({"qty": "1,200", "rate": 5.0, "item_code": "A"}, "Invalid number")

    assert fixed == {"qty": 1200.0, "rate": 5.0, "item_code": "A"}
    assert fix_number_format({"qty": 3.0}, "Invalid number") is None


def test_gives_up_after_max_retries(make_client):
    client = make_client([_failed("Invalid date format")] * 10)
    middleware = AutoFixMiddleware(client)

    result = middleware.process_record(
        "Sales Order",
        {"customer": "C", "delivery_date": "2025-13-45"},
        "Invalid date format",
        max_retries=3,
    )

    assert not result.success
    assert result.error == "Auto-fix failed after 3 attempts. Last error: Invalid date format"
    assert len(client.calls) == 3
    assert result.fixes_applied == ["Convert dates to proper format"] * 3


def test_unmatched_error_is_not_retried(make_client):
    client = make_client()

    result = AutoFixMiddleware(client).process_record("Item", {"item_code": "A"}, "Something odd happened", 2)

    assert not result.success
    assert client.calls == []
    assert result.fixes_applied == []
    assert result.error == "Auto-fix failed after 2 attempts. Last error: Something odd happened"


def test_error_from_retry_drives_next_strategy(make_client):
    client = make_client([_failed("Duplicate entry ITEM-001")])
    middleware = AutoFixMiddleware(client)

    result = middleware.process_record(
        "Item",
        {"item_code": "ITEM-001", "item_name": "Widget", "item_group": "Products"},
        "Value missing for Item: Default Unit of Measure ... field stock_uom is mandatory",
    )

    assert result.success
    assert result.fixes_applied == [
        "Add default values for mandatory fields",
        "Generate unique names for duplicates",
    ]
    final_row = client.calls[-1][1]
    assert final_row["stock_uom"] == "Nos"
    assert final_row["item_code"].startswith("ITEM-001_")


def test_matching_strategies_all_run_within_one_pass(make_client):
    # "is mandatory" and "not permitted" both match; each fix is sent on its own.
    client = make_client([_failed("Field 'territory' is mandatory; not permitted")] * 2)

    result = AutoFixMiddleware(client).process_record(
        "Customer",
        {"customer_name": "ACME"},
        "Field 'territory' is mandatory; not permitted",
        max_retries=1,
    )

    assert not result.success
    assert result.fixes_applied == [
        "Add default values for mandatory fields",
        "Retry with administrative privileges",
    ]
    assert len(client.calls) == 2


def test_failing_strategy_is_skipped(make_client):
    def explode(data, error):
        raise RuntimeError("bad strategy")

    client = make_client()
    middleware = AutoFixMiddleware(client, strategies=[])
    middleware.add_strategy(FixStrategy(re.compile("boom"), "Explodes", explode))
    middleware.add_strategy(FixStrategy(re.compile("boom"), "Works", lambda data, error: dict(data, fixed=True)))

    result = middleware.process_record("Item", {"item_code": "A"}, "boom")

    assert result.success
    assert result.fixes_applied == ["Works"]
    assert [s.description for s in middleware.strategies] == ["Explodes", "Works"]


def test_exception_during_retry_keeps_scanning(make_client):
    def drop_connection(entity_type, data):
        raise ConnectionError("boom: connection reset")

    client = make_client([drop_connection])
    middleware = AutoFixMiddleware(client, strategies=[])
    middleware.add_strategy(FixStrategy(re.compile("boom"), "First", lambda data, error: dict(data, first=True)))
    middleware.add_strategy(FixStrategy(re.compile("reset"), "Second", lambda data, error: dict(data, second=True)))

    result = middleware.process_record("Item", {"item_code": "A"}, "boom")

    assert result.success
    assert result.fixes_applied == ["First", "Second"]
    assert len(client.calls) == 2


def test_exceptions_on_every_retry_still_report_fixes(make_client):
    def drop_connection(entity_type, data):
        raise ConnectionError("connection reset")

    client = make_client([drop_connection] * 3)

    result = AutoFixMiddleware(client).process_record(
        "Customer", {"customer_name": "ACME"}, "Field 'territory' is mandatory"
    )

    assert not result.success
    assert result.fixes_applied == ["Add default values for mandatory fields"]
    assert result.error == "Auto-fix failed after 3 attempts. Last error: connection reset"


def test_unsupported_entity_type(make_client):
    client = make_client()

    result = AutoFixMiddleware(client).process_record("Journal Entry", {}, "Field 'company' is mandatory")

    assert not result.success
    assert client.calls == []


@pytest.mark.parametrize(
    "message,description",
    [
        ("Field 'currency' is mandatory", "Add default values for mandatory fields"),
        ("Item ITEM-001 already exists", "Generate unique names for duplicates"),
        ("Invalid Date: 31-31-2025", "Convert dates to proper format"),
        ("qty is not a valid float", "Convert strings to proper numbers"),
        ("Permission denied for Sales Invoice", "Retry with administrative privileges"),
    ],
)
def test_strategy_patterns(make_client, message, description):
    matching = [s.description for s in AutoFixMiddleware(make_client()).strategies if s.matches(message)]

    assert matching == [description]
