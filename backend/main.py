"""
Courier billing ledger - operator command line.

Runs the scheduled jobs (subscription billing cycle) and the read-only
reports operators use between them, with rich table output.

Usage:
    python main.py billing-cycle [--as-of 2024-06-01]
    python main.py overdue [--as-of 2024-06-01]
    python main.py disputes-due [--as-of 2024-06-01]
    python main.py audit INV-2024-0601-3F9A1C [--limit 50]
"""

import argparse
import asyncio
import sys
from datetime import datetime
from typing import Optional

from dateutil import parser as date_parser
from rich.console import Console
from rich.table import Table

from container import ServiceContainer
from shared.clock import ensure_utc
from shared.exceptions import LedgerError
from shared.logging_config import configure_logging

console = Console()


def parse_as_of(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_utc(date_parser.isoparse(value))


async def run_billing_cycle(container: ServiceContainer, as_of: Optional[datetime]) -> int:
    result = await container.subscriptions.run_billing_cycle(as_of)

    console.print(f"[bold]Billing cycle[/bold] as of {result.as_of.isoformat()}")
    console.print(
        f"[dim]Due: {result.due}  Invoiced: {len(result.invoiced)}  "
        f"Expired: {len(result.expired)}  Skipped: {len(result.skipped)}[/dim]"
    )
    for number in result.invoiced:
        console.print(f"[green]✓[/green] {number}")

    if result.failures:
        table = Table(title="Failures")
        table.add_column("Subscription", style="cyan")
        table.add_column("Error", style="red")
        table.add_column("Message")
        table.add_column("Invoice")
        for failure in result.failures:
            table.add_row(
                failure.subscription_id,
                failure.error_code,
                failure.message,
                failure.invoice_number or "",
            )
        console.print(table)
        return 1
    return 0


async def show_overdue(container: ServiceContainer, as_of: Optional[datetime]) -> int:
    invoices = await container.invoices.get_overdue_invoices(as_of)
    if not invoices:
        console.print("[green]No overdue invoices.[/green]")
        return 0

    table = Table(title="Overdue Invoices")
    table.add_column("Invoice", style="cyan")
    table.add_column("Customer")
    table.add_column("Status", style="yellow")
    table.add_column("Due")
    table.add_column("Total", justify="right")
    for invoice in invoices:
        table.add_row(
            invoice.invoice_number,
            invoice.customer_name,
            invoice.status.value,
            invoice.due_date.strftime("%Y-%m-%d"),
            f"{invoice.total_amount} {invoice.currency}",
        )
    console.print(table)
    return 0


async def show_disputes_due(container: ServiceContainer, as_of: Optional[datetime]) -> int:
    disputes = await container.disputes.find_disputes_due_for_review(as_of)
    if not disputes:
        console.print("[green]No disputes due for review.[/green]")
        return 0

    table = Table(title="Disputes Due For Review")
    table.add_column("Dispute", style="cyan")
    table.add_column("Invoice")
    table.add_column("Customer")
    table.add_column("Status", style="yellow")
    table.add_column("Due")
    for dispute in disputes:
        table.add_row(
            dispute.dispute_number,
            dispute.invoice_number,
            dispute.customer_id,
            dispute.status.value,
            dispute.due_date.strftime("%Y-%m-%d"),
        )
    console.print(table)
    return 0


async def show_audit(container: ServiceContainer, entity_id: str, limit: int) -> int:
    entries = await container.audit.get_audit_trail(entity_id, limit=limit)
    if not entries:
        console.print(f"[dim]No audit entries for {entity_id}.[/dim]")
        return 0

    table = Table(title=f"Audit Trail: {entity_id}")
    table.add_column("When")
    table.add_column("Action", style="cyan")
    table.add_column("By")
    table.add_column("Details")
    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.action.value,
            entry.performed_by,
            entry.details,
        )
    console.print(table)
    return 0


async def run(args: argparse.Namespace) -> int:
    container = ServiceContainer()
    try:
        as_of = parse_as_of(getattr(args, "as_of", None))
        if args.command == "billing-cycle":
            return await run_billing_cycle(container, as_of)
        if args.command == "overdue":
            return await show_overdue(container, as_of)
        if args.command == "disputes-due":
            return await show_disputes_due(container, as_of)
        return await show_audit(container, args.entity_id, args.limit)
    finally:
        await container.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Courier billing ledger operator tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py billing-cycle                 Bill all subscriptions due now
  python main.py overdue --as-of 2024-06-01    List invoices overdue on a date
  python main.py disputes-due                  List disputes needing action
  python main.py audit INV-2024-0601-3F9A1C    Show an entity's audit trail
        """,
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL (e.g. DEBUG)")
    subcommands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("billing-cycle", "Invoice subscriptions whose billing date has arrived"),
        ("overdue", "List SENT/PARTIALLY_PAID invoices past their due date"),
        ("disputes-due", "List open disputes past their next-action date"),
    ):
        sub = subcommands.add_parser(name, help=help_text)
        sub.add_argument("--as-of", help="ISO date/time to evaluate at (default: now, UTC)")

    audit = subcommands.add_parser("audit", help="Show the audit trail of an entity")
    audit.add_argument("entity_id", help="Invoice number, payment ID, dispute ID, ...")
    audit.add_argument("--limit", type=int, default=100, help="Maximum entries (default: 100)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(run(args))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 2
    except LedgerError as e:
        console.print(f"[red]Error:[/red] {e.message} ({e.code})")
        return 1


if __name__ == "__main__":
    sys.exit(main())
