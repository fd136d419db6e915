"""Command-line interface for the referral ledger."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from affiliate_ledger.commission.ledger import TransactionLedger
from affiliate_ledger.creators.bulk import AdminBulkOperationCoordinator, BulkAction
from affiliate_ledger.creators.service import CreatorService
from affiliate_ledger.errors import LedgerError
from affiliate_ledger.logging_config import configure_logging, get_logger
from affiliate_ledger.payouts.service import PayoutService
from affiliate_ledger.storage.db import db
from affiliate_ledger.storage.export import export_to_csv
from affiliate_ledger.storage.repo import CreatorRepository

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="affiliate-ledger",
    help="Creator referral attribution and commission ledger",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _parse_ids(raw: str) -> list[int]:
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        console.print(f"[red]Invalid id list: {raw}[/red]")
        raise typer.Exit(1)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("creator-list")
def list_creators(
    status: Annotated[str | None, typer.Option("--status", "-s", help="Filter by status")] = None,
    tier: Annotated[str | None, typer.Option("--tier", "-t", help="Filter by tier")] = None,
    search: Annotated[str | None, typer.Option("--search", "-q", help="Name, email or code")] = None,
    page: Annotated[int, typer.Option("--page", "-p", help="Page number")] = 1,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Page size (max 100)")] = 20,
) -> None:
    """List creators with tier and commission stats."""
    with db.session() as session:
        try:
            listing = CreatorService(session).list_creators(
                status=status, tier=tier, search=search, page=page, limit=limit
            )
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if not listing.creators:
            console.print("[yellow]No creators found[/yellow]")
            return

        table = Table(title=f"Creators (page {listing.page}/{listing.pages}, {listing.total} total)")
        table.add_column("ID", style="cyan")
        table.add_column("Code")
        table.add_column("Name", style="green")
        table.add_column("Status")
        table.add_column("Tier")
        table.add_column("Rate %", justify="right")
        table.add_column("Clicks", justify="right")
        table.add_column("Approved", justify="right")
        table.add_column("Paid", justify="right")

        for row in listing.creators:
            stats = row["stats"]
            table.add_row(
                str(row["id"]),
                row["creator_code"],
                row["display_name"][:40],
                row["status"],
                row["tier"],
                f"{row['commission_rate']:.2f}",
                str(stats["total_clicks"]),
                f"{stats['approved_commissions']:.2f}",
                f"{stats['paid_commissions']:.2f}",
            )

        console.print(table)


@app.command("commission-approve")
def approve_commissions(
    transaction_ids: Annotated[str, typer.Argument(help="Comma-separated transaction IDs")],
) -> None:
    """Approve pending commission transactions."""
    ids = _parse_ids(transaction_ids)
    with db.session() as session:
        approved = TransactionLedger(session).approve(ids)

    console.print(f"[bold green]✓[/bold green] Approved {approved} of {len(ids)} transactions")


@app.command("metrics-reconcile")
def reconcile_metrics(
    creator_id: Annotated[int | None, typer.Argument(help="Creator ID (all creators if omitted)")] = None,
) -> None:
    """Recompute creator metrics and link counters from clicks and transactions."""
    with db.session() as session:
        service = CreatorService(session)
        creator_ids = [creator_id] if creator_id is not None else CreatorRepository(session).ids_matching()
        try:
            for current_id in creator_ids:
                creator = service.refresh_metrics(current_id)
                console.print(
                    f"  {creator.creator_code}: {creator.total_clicks} clicks, "
                    f"{creator.total_sales} sales, {creator.total_commission:.2f} commission"
                )
        except LedgerError as e:
            console.print(f"[bold red]✗[/bold red] {e.message}")
            raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Reconciled {len(creator_ids)} creators")


@app.command("payout-create")
def create_payout(
    creator_id: Annotated[int, typer.Argument(help="Creator ID")],
    disburse: Annotated[bool, typer.Option("--disburse/--no-disburse", help="Send through the gateway")] = True,
) -> None:
    """Create a payout from a creator's approved commissions."""
    with db.session() as session:
        service = PayoutService(session)
        try:
            if disburse:
                payout = service.create_and_disburse(creator_id)
            else:
                payout = service.create_payout(creator_id)
        except LedgerError as e:
            console.print(f"[bold red]✗[/bold red] {e.message}")
            raise typer.Exit(1)

        console.print(f"[bold]Payout ID:[/bold] {payout.id}")
        console.print(f"[bold]Amount:[/bold] {payout.amount:.2f} {payout.currency.upper()}")
        console.print(f"[bold]Transactions:[/bold] {len(payout.transaction_ids)}")
        console.print(f"[bold]Status:[/bold] {payout.status}")
        if payout.requires_reconciliation:
            console.print(f"[bold red]Requires reconciliation:[/bold red] {payout.failure_reason}")
            raise typer.Exit(1)


@app.command("creator-export")
def export_creators(
    creator_ids: Annotated[str, typer.Argument(help="Comma-separated creator IDs")],
    output_path: Annotated[Path, typer.Option("--output", "-o", help="Output file path")] = Path("creators.csv"),
) -> None:
    """Export creators to CSV (payment details excluded)."""
    ids = _parse_ids(creator_ids)
    with db.session() as session:
        try:
            result = AdminBulkOperationCoordinator(session).apply(BulkAction.EXPORT, ids)
        except LedgerError as e:
            console.print(f"[bold red]✗[/bold red] {e.message}")
            raise typer.Exit(1)

    export_to_csv(result.export_rows, output_path)
    console.print(f"[bold green]✓[/bold green] Exported {len(result.export_rows)} creators to {output_path}")


if __name__ == "__main__":
    app()
