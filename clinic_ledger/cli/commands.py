"""CLI commands for the clinic ledger."""

import asyncio
import uuid
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clinic_ledger.billing.errors import LedgerError
from clinic_ledger.config import get_settings
from clinic_ledger.core.models import InvoiceStatus

app = typer.Typer(
    name="clinic-ledger",
    help="Billing codes, invoices and payments for a clinic",
    add_completion=False,
)
console = Console()

STATUS_COLORS = {
    "unpaid": "yellow",
    "partial": "cyan",
    "paid": "green",
    "overdue": "red",
    "cancelled": "dim",
}


def _run(operation):
    """Run ``operation(service)`` against a fresh store and dispose it after."""
    from clinic_ledger.billing.service import BillingService
    from clinic_ledger.core.database import LedgerStore, create_engine_from_settings

    async def runner():
        store = LedgerStore(create_engine_from_settings())
        try:
            await store.create_all()
            return await operation(BillingService.from_settings(store))
        finally:
            await store.dispose()

    try:
        return asyncio.run(runner())
    except LedgerError as e:
        console.print(f"[red]{e.kind}: {e.message}[/red]")
        raise typer.Exit(1)


def _status(status: InvoiceStatus) -> str:
    color = STATUS_COLORS.get(status.value, "white")
    return f"[{color}]{status.value}[/{color}]"


def _parse_id(raw: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        console.print(f"[red]Invalid {what} id: {raw}[/red]")
        raise typer.Exit(1)


@app.command("init-db")
def init_db():
    """Create the ledger tables."""
    async def op(service):
        return None

    _run(op)
    console.print(f"[green]Ledger store ready: {get_settings().database_url}[/green]")


@app.command("seed-codes")
def seed_codes(
    actor: str = typer.Option("cli", "--actor", "-a", help="Actor id recorded in the audit trail"),
):
    """Install the default billing code catalog into an empty registry."""
    async def op(service):
        return await service.registry.seed_defaults(actor_id=actor)

    count = _run(op)
    if count:
        console.print(f"[green]Seeded {count} billing codes.[/green]")
    else:
        console.print("[yellow]Billing codes already present; nothing seeded.[/yellow]")


@app.command()
def codes(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
    active_only: bool = typer.Option(False, "--active", help="Only active codes"),
):
    """List billing codes."""
    async def op(service):
        return await service.registry.list_billing_codes(category=category, active_only=active_only)

    rows = _run(op)
    if not rows:
        console.print("[yellow]No billing codes.[/yellow]")
        return

    table = Table(title=f"Billing Codes ({len(rows)})")
    table.add_column("Code")
    table.add_column("Description")
    table.add_column("Category")
    table.add_column("Price", justify="right")
    table.add_column("Tax", justify="right")
    table.add_column("Active")
    for c in rows:
        table.add_row(
            c.code,
            c.description,
            c.category,
            f"{c.default_price:,.2f}",
            f"{c.tax_rate * 100:.2f}%",
            "[green]Yes[/green]" if c.active else "[red]No[/red]",
        )
    console.print(table)


@app.command()
def invoices(
    status: Optional[InvoiceStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
    patient: Optional[str] = typer.Option(None, "--patient", "-p", help="Filter by patient id"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows"),
):
    """List invoices, newest first."""
    from clinic_ledger.core.schemas import InvoiceFilter

    filters = InvoiceFilter(
        status=status,
        patient_id=_parse_id(patient, "patient") if patient else None,
    )

    async def op(service):
        return await service.ledger.list_invoices(filters, limit=limit)

    rows = _run(op)
    if not rows:
        console.print("[yellow]No invoices.[/yellow]")
        return

    table = Table(title=f"Invoices ({len(rows)})")
    table.add_column("Number")
    table.add_column("Patient")
    table.add_column("Total", justify="right")
    table.add_column("Due")
    table.add_column("Status")
    for inv in rows:
        table.add_row(
            inv.invoice_number,
            inv.patient_name or str(inv.patient_id),
            f"{inv.total_amount:,.2f}",
            f"{inv.due_date:%Y-%m-%d}",
            _status(inv.status),
        )
    console.print(table)


@app.command()
def invoice(invoice_id: str = typer.Argument(..., help="Invoice id")):
    """Show one invoice with its lines and payments."""
    iid = _parse_id(invoice_id, "invoice")

    async def op(service):
        return await service.ledger.get_invoice_with_details(iid)

    details = _run(op)

    console.print(Panel.fit(
        f"[bold]{details.invoice_number}[/bold]  {_status(details.status)}\n"
        f"Patient: {details.patient_name or details.patient_id}\n"
        f"Due: {details.due_date:%Y-%m-%d}"
    ))

    table = Table(title="Line Items")
    table.add_column("Code")
    table.add_column("Description")
    table.add_column("Qty", justify="right")
    table.add_column("Unit", justify="right")
    table.add_column("Amount", justify="right")
    for item in details.items:
        table.add_row(
            item.code or "-",
            item.description,
            str(item.quantity),
            f"{item.unit_price:,.2f}",
            f"{item.total_price:,.2f}",
        )
    console.print(table)

    console.print(f"Subtotal: {details.subtotal:,.2f}")
    console.print(f"Tax:      {details.tax_amount:,.2f}")
    console.print(f"[bold]Total:    {details.total_amount:,.2f}[/bold]")
    console.print(f"Paid:     {details.amount_paid:,.2f}")
    console.print(f"[bold]Balance:  {details.balance_due:,.2f}[/bold]")


@app.command()
def stats():
    """Show revenue, receivables and expenses."""
    async def op(service):
        return await service.reports.get_financial_stats()

    s = _run(op)

    table = Table(title="Financial Summary")
    table.add_column("Metric")
    table.add_column("Amount", justify="right")
    table.add_row("Total revenue", f"{s.total_revenue:,.2f}")
    table.add_row(f"Pending revenue ({s.pending_invoice_count} invoices)", f"{s.pending_revenue:,.2f}")
    table.add_row("Total expenses", f"{s.total_expenses:,.2f}")
    table.add_row("Net profit", f"{s.net_profit:,.2f}")
    table.add_row("Revenue this month", f"{s.monthly_revenue:,.2f}")
    table.add_row("Expenses this month", f"{s.monthly_expenses:,.2f}")
    table.add_row("Net this month", f"{s.monthly_net:,.2f}")
    console.print(table)


@app.command("refresh-overdue")
def refresh_overdue(
    actor: str = typer.Option("cli", "--actor", "-a", help="Actor id recorded in the audit trail"),
):
    """Mark open invoices past their due date as overdue."""
    async def op(service):
        return await service.payments.refresh_overdue_statuses(actor_id=actor)

    changed = _run(op)
    if not changed:
        console.print("[green]No invoices became overdue.[/green]")
        return
    for inv in changed:
        console.print(f"  {inv.invoice_number} -> {_status(inv.status)}")
    console.print(f"[yellow]{len(changed)} invoice(s) marked overdue.[/yellow]")


@app.command("export-pdf")
def export_pdf(
    invoice_id: str = typer.Argument(..., help="Invoice id"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Destination file"),
):
    """Write an invoice PDF to disk."""
    from clinic_ledger.export.pdf_generator import generate_invoice_pdf

    iid = _parse_id(invoice_id, "invoice")

    async def op(service):
        return await service.ledger.get_invoice_with_details(iid)

    details = _run(op)
    target = output or Path(f"{details.invoice_number}.pdf")
    target.write_bytes(generate_invoice_pdf(details, clinic_name=get_settings().clinic_name))
    console.print(f"[green]Wrote {target}[/green]")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting clinic ledger API server on {host}:{port}")
    uvicorn.run(
        "clinic_ledger.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from clinic_ledger import __version__

    console.print(f"clinic-ledger v{__version__}")


if __name__ == "__main__":
    app()
