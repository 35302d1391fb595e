#!/usr/bin/env python3
"""
Tire Goods Receiving — CLI entry point.

Usage examples:
  python main.py check                                   # Verify setup (backend, data files)
  python main.py load-pos                                # Import POs from data/*.csv into the local store
  python main.py show PO-2024-001                        # Remaining quantities per line
  python main.py receive PO-2024-001 --qty 1=4 --generate
  python main.py receive PO-2024-001 --qty 2=2 --serials "2=MIC001,MIC002" --invoice INV-88
  python main.py receive PO-2024-001 --all --generate --dry-run
  python main.py grns --po PO-2024-001                   # List GRNs
  python main.py link-invoice GRN-20240125-0001 --invoice INV-88
"""
import json
import logging
import sys
from datetime import date
from pathlib import Path

import click

from config import Config
from models.receiving import ItemCondition
from receiving.backend import HttpGRNBackend, SqliteGRNBackend
from receiving.database import Database
from receiving.errors import ReceivingError
from receiving.po_loader import load_purchase_orders_csv
from receiving.session import ReceivingSession


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _config(ctx: click.Context) -> Config:
    config = Config()
    if ctx.obj.get("db"):
        config.db_path = Path(ctx.obj["db"])
    if ctx.obj.get("api_url"):
        config.api_base_url = ctx.obj["api_url"]
    return config


def _backend(config: Config):
    if config.api_base_url:
        return HttpGRNBackend(
            config.api_base_url,
            token=config.api_token,
            timeout=config.request_timeout_seconds,
        )
    return SqliteGRNBackend(Database(config.db_path))


def _local_db(config: Config) -> Database:
    if config.api_base_url:
        click.echo("Error: this command works on the local store only (unset RECEIVING_API_URL).", err=True)
        sys.exit(1)
    return Database(config.db_path)


def _resolve_po_id(config: Config, reference: str) -> int:
    if reference.isdigit():
        return int(reference)
    if config.api_base_url:
        click.echo("Error: use the numeric PO id with the REST backend.", err=True)
        sys.exit(1)
    po = Database(config.db_path).get_purchase_order_by_number(reference)
    if po is None:
        click.echo(f"Error: purchase order '{reference}' not found.", err=True)
        sys.exit(1)
    return po.id


def _parse_pairs(values: tuple[str, ...], option: str) -> dict[int, str]:
    pairs: dict[int, str] = {}
    for value in values:
        line_id, sep, rest = value.partition("=")
        if not sep or not line_id.strip().isdigit():
            raise click.BadParameter(f"expected LINE_ID=VALUE, got '{value}'", param_hint=option)
        pairs[int(line_id)] = rest.strip()
    return pairs


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--db", default=None, type=click.Path(), help="Path to the local SQLite store")
@click.option("--api-url", default=None, help="REST backend base URL (overrides RECEIVING_API_URL)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db: str | None, api_url: str | None) -> None:
    """Tire Goods Receiving — turn purchase order deliveries into GRNs."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["db"] = db
    ctx.obj["api_url"] = api_url
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check command
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Show which backend is in use and whether the data files are ready."""
    config = _config(ctx)

    click.echo("\n=== Receiving Setup Check ===\n")
    if config.api_base_url:
        click.echo(f"  Backend:       REST  {config.api_base_url}")
        click.echo(f"  API token:     {'✓ set' if config.api_token else '✗ not set'}")
    else:
        db = Database(config.db_path)
        orders = db.list_purchase_orders()
        click.echo(f"  Backend:       local store  {config.db_path}")
        click.echo(f"  Purchase orders loaded: {len(orders)}")

    click.echo()
    for label, path in [("purchase_orders.csv", config.po_csv), ("purchase_order_lines.csv", config.po_lines_csv)]:
        tick = "✓" if path.exists() else "✗"
        click.echo(f"  {label:<28} {tick}  {path}")
    click.echo()
    click.echo(f"  Default location:  {config.default_location}")
    click.echo(f"  Brand required:    {'yes' if config.require_brand else 'no'}")
    click.echo()


# --------------------------------------------------------------------
# load-pos command
# --------------------------------------------------------------------

@cli.command("load-pos")
@click.option("--po-csv", default=None, type=click.Path(), help="Path to purchase_orders CSV")
@click.option("--po-lines-csv", default=None, type=click.Path(), help="Path to purchase_order_lines CSV")
@click.pass_context
def load_pos(ctx: click.Context, po_csv: str | None, po_lines_csv: str | None) -> None:
    """Import purchase orders from CSV into the local store."""
    config = _config(ctx)
    if po_csv:
        config.po_csv = Path(po_csv)
    if po_lines_csv:
        config.po_lines_csv = Path(po_lines_csv)

    db = _local_db(config)
    orders = load_purchase_orders_csv(config.po_csv, config.po_lines_csv)
    for po in orders:
        db.upsert_purchase_order(po)
    click.echo(f"Loaded {len(orders)} purchase orders into {config.db_path}")


# --------------------------------------------------------------------
# show command
# --------------------------------------------------------------------

@cli.command()
@click.argument("po")
@click.pass_context
def show(ctx: click.Context, po: str) -> None:
    """Show a purchase order's lines and remaining quantities."""
    config = _config(ctx)
    backend = _backend(config)
    try:
        order = backend.get_purchase_order(_resolve_po_id(config, po))
    except ReceivingError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"  PO:        {order.po_number}  (id {order.id})")
    click.echo(f"  Supplier:  {order.supplier_name or '(unknown)'}")
    click.echo(f"  Status:    {order.status.value}")
    click.echo()
    click.echo(f"  {'Line':>6}  {'Size':<16} {'Brand':<12} {'Ordered':>8} {'Received':>9} {'Remaining':>10} {'Unit':>10}")
    for line in order.lines:
        click.echo(
            f"  {line.id:>6}  {line.size:<16} {(line.brand or '-'):<12} "
            f"{line.ordered_quantity:>8} {line.previously_received_quantity:>9} "
            f"{line.remaining_quantity:>10} {line.unit_price:>10.2f}"
        )
    click.echo()
    click.echo(
        f"  Total: {order.total_previously_received}/{order.total_ordered} received, "
        f"{order.total_remaining} remaining"
    )
    click.echo()


# --------------------------------------------------------------------
# receive command
# --------------------------------------------------------------------

@cli.command()
@click.argument("po")
@click.option("--qty", "quantities", multiple=True, help="LINE_ID=QUANTITY (repeatable)")
@click.option("--serials", "serials", multiple=True, help="LINE_ID=S1,S2,... (repeatable)")
@click.option("--condition", "conditions", multiple=True, help="LINE_ID=GOOD|DAMAGED|DEFECTIVE")
@click.option("--brand", "brands", multiple=True, help="LINE_ID=BRAND")
@click.option("--batch", "batches", multiple=True, help="LINE_ID=BATCH_NUMBER")
@click.option("--all", "receive_all", is_flag=True, help="Receive every remaining unit")
@click.option("--generate", is_flag=True, help="Generate serials for lines without any")
@click.option("--date", "receipt_date", default=None, type=click.DateTime(formats=["%Y-%m-%d"]), help="Receipt date (default: today)")
@click.option("--invoice", default=None, help="Supplier invoice number")
@click.option("--delivery-note", default=None, help="Delivery note number")
@click.option("--vehicle", default=None, help="Delivery vehicle registration")
@click.option("--driver", default=None, help="Driver name")
@click.option("--notes", default=None, help="Receiving notes")
@click.option("--inspection-notes", default=None, help="Inspection notes")
@click.option("--dry-run", is_flag=True, help="Validate and print the GRN request without committing")
@click.pass_context
def receive(
    ctx: click.Context,
    po: str,
    quantities: tuple[str, ...],
    serials: tuple[str, ...],
    conditions: tuple[str, ...],
    brands: tuple[str, ...],
    batches: tuple[str, ...],
    receive_all: bool,
    generate: bool,
    receipt_date,
    invoice: str | None,
    delivery_note: str | None,
    vehicle: str | None,
    driver: str | None,
    notes: str | None,
    inspection_notes: str | None,
    dry_run: bool,
) -> None:
    """Receive goods against purchase order PO (number or id) and create a GRN."""
    config = _config(ctx)
    backend = _backend(config)

    try:
        session = ReceivingSession.open(backend, _resolve_po_id(config, po), config=config)

        session.update_header(
            receipt_date=receipt_date.date() if receipt_date else date.today(),
            supplier_invoice_number=invoice,
            delivery_note_number=delivery_note,
            vehicle_number=vehicle,
            driver_name=driver,
            receiving_notes=notes,
            inspection_notes=inspection_notes,
        )

        if receive_all:
            session.receive_all_remaining()
        for line_id, qty in _parse_pairs(quantities, "--qty").items():
            stored = session.set_quantity(line_id, int(qty))
            if stored != int(qty):
                click.echo(f"  Line {line_id}: quantity {qty} clamped to {stored}")
        for line_id, brand in _parse_pairs(brands, "--brand").items():
            session.set_brand(line_id, brand)
        for line_id, batch in _parse_pairs(batches, "--batch").items():
            session.set_batch_number(line_id, batch)
        for line_id, cond in _parse_pairs(conditions, "--condition").items():
            session.set_condition(line_id, ItemCondition(cond.upper()))
        for line_id, raw in _parse_pairs(serials, "--serials").items():
            session.set_serials(line_id, [s for s in raw.split(",")])
        if generate:
            for draft in session.drafts:
                if draft.current_receive_quantity > 0 and not draft.entered_serials:
                    session.generate_serials(draft.po_line_id)
    except (ReceivingError, KeyError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    totals = session.totals()
    click.echo()
    click.echo(f"  PO:           {session.confirmed.po_number}  ({session.confirmed.status.value})")
    click.echo(f"  Receiving:    {totals['currently_receiving']} units  (value {totals['total_value']:.2f})")
    click.echo(f"  Progress:     {totals['progress_percentage']}% after this receipt")
    click.echo()

    result = session.validate()
    if not result.ok:
        click.echo(f"  ✗ [{result.error.kind.value}] {result.error.description}", err=True)
        sys.exit(1)

    try:
        proposal = session.build()
    except (ReceivingError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if dry_run:
        click.echo(json.dumps(proposal.request.to_payload(), indent=2))
        click.echo(f"\n  Proposed status: {proposal.proposed_status.value}  (dry run, nothing committed)")
        return

    try:
        grn = session.submit()
    except ReceivingError as e:
        click.echo(f"  ✗ Failed to receive goods: {e}", err=True)
        sys.exit(1)

    click.echo(f"  ✓ {grn.grn_number} created — {len(grn.tires)} tires added to inventory (IN_STORE)")
    click.echo(f"  PO status now: {session.confirmed.status.value}")
    click.echo()


# --------------------------------------------------------------------
# grns command
# --------------------------------------------------------------------

@cli.command()
@click.option("--po", default=None, help="Only GRNs for this PO (number or id)")
@click.pass_context
def grns(ctx: click.Context, po: str | None) -> None:
    """List goods received notes in the local store."""
    config = _config(ctx)
    db = _local_db(config)
    po_id = _resolve_po_id(config, po) if po else None

    records = db.list_grns(po_id)
    if not records:
        click.echo("No GRNs found.")
        return
    for grn in records:
        invoiced = grn.supplier_invoice_number or ("linked" if grn.accounting_transaction_id else "-")
        click.echo(
            f"  {grn.grn_number:<20} {grn.po_number or grn.po_id!s:<16} {grn.receipt_date}  "
            f"{grn.total_units:>4} units  invoice: {invoiced}"
        )


# --------------------------------------------------------------------
# link-invoice command
# --------------------------------------------------------------------

@cli.command("link-invoice")
@click.argument("grn_number")
@click.option("--invoice", default=None, help="Supplier invoice number")
@click.option("--transaction", default=None, help="Accounting transaction id")
@click.pass_context
def link_invoice(ctx: click.Context, grn_number: str, invoice: str | None, transaction: str | None) -> None:
    """Record the supplier invoice / accounting transaction for a GRN (once only)."""
    config = _config(ctx)
    db = _local_db(config)
    try:
        grn = db.link_accounting(
            grn_number,
            supplier_invoice_number=invoice,
            accounting_transaction_id=transaction,
        )
    except (ReceivingError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(
        f"✓ {grn.grn_number}: invoice {grn.supplier_invoice_number or '-'}, "
        f"transaction {grn.accounting_transaction_id or '-'}"
    )


if __name__ == "__main__":
    cli()
