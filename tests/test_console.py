from rich.console import Console

from sheetsync.console import ImportConsole, build_parser, main
from sheetsync.domain.imports.processors.excel_processor import parse_spreadsheet


def test_parser_import_options():
    args = build_parser().parse_args(["import", "orders.xlsx", "--module", "Sales Order", "--no-mapping"])

    assert args.command == "import"
    assert args.module == "Sales Order"
    assert args.no_mapping is True


def test_template_command_writes_workbook(tmp_path):
    target = tmp_path / "items.xlsx"

    assert main(["template", "Item", "-o", str(target)]) == 0
    assert parse_spreadsheet(target.read_bytes()).columns[0] == "item_code"


def test_template_command_unknown_module(tmp_path):
    assert main(["template", "Journal Entry", "-o", str(tmp_path / "x.xlsx")]) == 2


def test_import_file_runs_batch_in_foreground(tmp_path, make_orchestrator, make_workbook):
    orchestrator, client = make_orchestrator()
    path = tmp_path / "customers.xlsx"
    path.write_bytes(
        make_workbook(
            ["Customer Name", "Customer Type", "Customer Group", "Territory"],
            [["ACME", "Company", "Commercial", "All Territories"]],
        )
    )
    console = Console(record=True, width=200)

    exit_code = ImportConsole(console=console, orchestrator=orchestrator).import_file(path, "Customer")

    assert exit_code == 0
    assert client.calls[0] == (
        "Customer",
        {"customer_name": "ACME", "customer_type": "Company", "customer_group": "Commercial", "territory": "All Territories"},
    )
    assert "completed" in console.export_text()


def test_import_file_reports_validation_errors(tmp_path, make_orchestrator, make_workbook):
    orchestrator, client = make_orchestrator()
    path = tmp_path / "customers.xlsx"
    path.write_bytes(make_workbook(["Customer Name"], [["ACME"]]))
    console = Console(record=True, width=200)

    exit_code = ImportConsole(console=console, orchestrator=orchestrator).import_file(path, "Customer")

    assert exit_code == 1
    assert client.calls == []
    assert "Missing required column" in console.export_text()
