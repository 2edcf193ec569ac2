#!/usr/bin/env python3
"""
Command line interface for staging spreadsheets and inspecting imports.

Uses the same stores and ERPNext client as the API, but runs batches in the
foreground and prints the outcome as rich tables.
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .api.dependencies import get_batch_store, get_client, get_log_store, get_orchestrator
from .core.config import settings
from .core.logging_config import configure_logging
from .db.session import init_db
from .domain.imports.entities import ENTITY_TYPES, resolve_entity_type
from .domain.imports.errors import ImportValidationError, ParseError, UnsupportedEntityTypeError
from .domain.imports.orchestrator import BatchSummary, ImportOrchestrator
from .domain.imports.templates import build_template_file

STATUS_STYLES = {
    "success": "green",
    "completed": "green",
    "failed": "red",
    "processing": "yellow",
    "pending": "cyan",
}


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


class ImportConsole:
    """Foreground front end over the import pipeline."""

    def __init__(self, console: Optional[Console] = None, orchestrator: Optional[ImportOrchestrator] = None):
        self.console = console or Console()
        self._orchestrator = orchestrator

    @property
    def orchestrator(self) -> ImportOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = get_orchestrator()
        return self._orchestrator

    def import_file(self, path: Path, module: str, use_field_mapping: bool = True) -> int:
        entity = resolve_entity_type(module)
        if entity is None:
            self.console.print(f"[red]Unsupported module '{module}'.[/red] Choose one of: {', '.join(ENTITY_TYPES)}")
            return 2

        try:
            content = path.read_bytes()
        except OSError as e:
            self.console.print(f"[red]Cannot read {path}: {e}[/red]")
            return 2

        try:
            staged = self.orchestrator.stage_upload(
                filename=path.name,
                file_content=content,
                entity_type=entity.value,
                use_field_mapping=use_field_mapping,
            )
        except ParseError as e:
            self.console.print(Panel(f"[red]{e}[/red]", title="Unreadable file", border_style="red"))
            return 1
        except ImportValidationError as e:
            self.print_issues("Validation errors", e.errors, "red")
            self.print_issues("Warnings", e.warnings, "yellow")
            return 1

        self.print_issues("Warnings", staged.warnings, "yellow")
        self.console.print(f"Staged batch [bold]{staged.batch_id}[/bold] with {staged.record_count} record(s)")

        with self.console.status(f"Sending {staged.record_count} {entity.value} record(s) to ERPNext..."):
            summary = self.orchestrator.run_batch(staged.batch_id)

        if summary is None:
            self.console.print("[red]Batch was picked up by another worker or no longer exists[/red]")
            return 1
        self.print_summary(summary)
        return 0 if summary.status == "completed" else 1

    def print_issues(self, title: str, issues: Sequence[Dict[str, Any]], style: str) -> None:
        if not issues:
            return
        table = Table(title=title, title_style=style)
        table.add_column("Row", justify="right", style="dim")
        table.add_column("Field", style="cyan")
        table.add_column("Message", style="white")
        for issue in issues:
            row = issue.get("row")
            table.add_row("" if row is None else str(row), str(issue.get("field", "")), str(issue.get("message", "")))
        self.console.print(table)

    def print_summary(self, summary: BatchSummary) -> None:
        self.console.print(
            Panel(
                f"Status: {_styled_status(summary.status)}\n"
                f"Records: {summary.record_count}\n"
                f"[green]Succeeded: {summary.success_count}[/green]\n"
                f"[red]Failed: {summary.failure_count}[/red]",
                title=f"Batch {summary.batch_id}",
                border_style=STATUS_STYLES.get(summary.status, "white"),
            )
        )
        if not summary.errors:
            return
        table = Table(title="Failed rows", title_style="red")
        table.add_column("Row", justify="right", style="dim")
        table.add_column("Error", style="white")
        table.add_column("Fixes tried", style="yellow")
        for error in summary.errors:
            row = error.get("row")
            table.add_row(
                "" if row is None else str(row),
                str(error.get("error") or error.get("message") or ""),
                ", ".join(error.get("fixes_applied") or []),
            )
        self.console.print(table)

    def show_status(self, batch_id: str) -> int:
        batch = get_batch_store().get_batch(batch_id, include_rows=False)
        if batch is None:
            self.console.print(f"[red]Batch {batch_id} not found[/red]")
            return 1

        self.console.print(
            Panel(
                f"File: {batch['filename']}\n"
                f"Entity type: {batch['entity_type']}\n"
                f"Records: {batch['record_count']}\n"
                f"Status: {_styled_status(batch['status'])}\n"
                f"Created: {batch['created_at']}\n"
                f"Completed: {batch['completed_at'] or '-'}",
                title=f"Batch {batch_id}",
            )
        )
        self.print_logs(get_log_store().list_logs_for_batch(batch_id), title="Batch log")
        return 0

    def print_logs(self, entries: List[Dict[str, Any]], title: str = "API logs") -> None:
        table = Table(title=title)
        table.add_column("#", style="dim", justify="right")
        table.add_column("File", style="white")
        table.add_column("Entity", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("OK", justify="right", style="green")
        table.add_column("Failed", justify="right", style="red")
        table.add_column("Status")
        table.add_column("ms", justify="right", style="dim")
        for entry in entries:
            table.add_row(
                str(entry["id"]),
                entry["filename"],
                entry["entity_type"],
                str(entry["record_count"]),
                str(entry["success_count"]),
                str(entry["failure_count"]),
                _styled_status(entry["status"]),
                str(entry["response_time_ms"]),
            )
        self.console.print(table)

    def show_stats(self) -> int:
        stats = get_log_store().compute_stats()
        table = Table(title="Import statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Total", str(stats["total_imports"]))
        table.add_row("Successful", f"[green]{stats['successful_imports']}[/green]")
        table.add_row("Failed", f"[red]{stats['failed_imports']}[/red]")
        table.add_row("Processing", f"[yellow]{stats['processing_imports']}[/yellow]")
        table.add_row("Success rate", f"{stats['success_rate']}%")
        self.console.print(table)
        return 0

    def write_template(self, module: str, output: Optional[Path]) -> int:
        try:
            file_name, content = build_template_file(module)
        except UnsupportedEntityTypeError as e:
            self.console.print(f"[red]{e}[/red]")
            return 2
        target = output or Path(file_name)
        target.write_bytes(content)
        self.console.print(f"[green]Template written to {target}[/green]")
        return 0

    def check_health(self) -> int:
        result = get_client().check_health()
        if result.success:
            data = result.data or {}
            version = f" (version {data['version']})" if data.get("version") else ""
            self.console.print(f"[green]ERPNext reachable{version} in {result.response_time_ms}ms[/green]")
            return 0
        self.console.print(f"[red]ERPNext unreachable: {result.error}[/red]")
        return 1

    def resume(self) -> int:
        stalled = self.orchestrator.fail_stalled_batches()
        for summary in stalled:
            self.console.print(f"[yellow]Batch {summary.batch_id} was left processing and is now failed[/yellow]")
        summaries = self.orchestrator.resume_pending()
        if not summaries:
            self.console.print("[dim]No pending batches[/dim]")
            return 0
        for summary in summaries:
            self.print_summary(summary)
        return 0 if all(summary.status == "completed" for summary in summaries) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetsync",
        description="Stage Excel spreadsheets and import them into ERPNext",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import items.xlsx --module Item
  %(prog)s import orders.xlsx --module "Sales Order" --no-mapping
  %(prog)s logs --status failed --limit 20
  %(prog)s template Customer -o customers.xlsx
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Validate a spreadsheet and send its rows to ERPNext")
    import_parser.add_argument("file", type=Path)
    import_parser.add_argument("--module", required=True, help=f"One of: {', '.join(ENTITY_TYPES)}")
    import_parser.add_argument(
        "--no-mapping",
        action="store_true",
        help="Use column headers as ERPNext field names as-is",
    )

    status_parser = subparsers.add_parser("status", help="Show a batch and its log entries")
    status_parser.add_argument("batch_id")

    logs_parser = subparsers.add_parser("logs", help="List the latest API log entries")
    logs_parser.add_argument("--status", choices=["success", "failed", "processing"])
    logs_parser.add_argument("--limit", type=int, default=50)

    subparsers.add_parser("stats", help="Show import statistics")

    template_parser = subparsers.add_parser("template", help="Write the Excel template of a module")
    template_parser.add_argument("module")
    template_parser.add_argument("-o", "--output", type=Path)

    subparsers.add_parser("health", help="Ping the configured ERPNext server")
    subparsers.add_parser("resume", help="Fail stalled batches, then process every batch still pending")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, rich_output=True)

    cli = ImportConsole()
    if args.command == "template":
        return cli.write_template(args.module, args.output)

    init_db()

    if args.command == "import":
        return cli.import_file(args.file, args.module, use_field_mapping=not args.no_mapping)
    if args.command == "status":
        return cli.show_status(args.batch_id)
    if args.command == "logs":
        cli.print_logs(get_log_store().list_logs(status=args.status, limit=args.limit))
        return 0
    if args.command == "stats":
        return cli.show_stats()
    if args.command == "health":
        return cli.check_health()
    if args.command == "resume":
        return cli.resume()
    return 2


if __name__ == "__main__":
    sys.exit(main())
