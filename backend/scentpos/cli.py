# Overview: Flask CLI command groups for bootstrap, stock maintenance, and reports.

# backend/scentpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store-name "Perfume Paradise"] [--tax-rate 0.18]
#   Idempotent bootstrap: creates the default store and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock maintenance:
# - python -m flask inventory reconcile [--store-id 1] [--dry-run]
#   Compare every stock aggregate with SUM(batch remaining) and repair drift.
# - python -m flask inventory low-stock --store-id 1
#   List variants below their minimum stock level.
#
# Reports:
# - python -m flask reports summary [--start 2026-01-01] [--end 2026-01-31] [--store-id 1]
#   Print revenue, COGS, expenses and profit for the window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, User
from .services import inventory_service, reporting_service, stock_service
from .services.store_service import create_store, create_user
from .validation import ValidationError


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store-name', default='Perfume Paradise', help='Default store name')
@click.option('--store-code', default='MAIN', help='Default store code')
@click.option('--tax-rate', default='0.18', help='Tax rate as a fraction, e.g. 0.18')
@with_appcontext
def init_system(store_name, store_code, tax_rate):
    """
    Initialize the shop: default store and an admin user.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing ScentPOS...")
    db.create_all()

    store = db.session.query(Store).filter_by(code=store_code).first()
    if not store:
        try:
            store = create_store(store_name, code=store_code, tax_rate=tax_rate)
        except ValidationError as e:
            raise click.ClickException(str(e))
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id}, tax {store.tax_rate_bps} bps)")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    admin = db.session.query(User).filter_by(email="admin@scentpos.local").first()
    if not admin:
        admin = create_user(name="Admin", email="admin@scentpos.local", store_id=store.id, role="ADMIN")
        click.echo(f"PASS Created user: {admin.email} (ID: {admin.id}) with role '{admin.role}'")
    else:
        click.echo(f"WARN  User '{admin.email}' already exists, skipping...")

    click.echo("DONE ScentPOS initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: Drop all tables and recreate schema."""
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('inventory')
def inventory_group():
    """Stock aggregate inspection and repair."""


@inventory_group.command('reconcile')
@click.option('--store-id', type=int, default=None, help='Limit to one store')
@click.option('--dry-run', is_flag=True, help='Report drift without fixing it')
@with_appcontext
def reconcile(store_id, dry_run):
    drift = stock_service.reconcile_stock(store_id, dry_run=dry_run)
    if not drift:
        click.echo("PASS Stock aggregates match batch totals.")
        return

    verb = "Found" if dry_run else "Fixed"
    for item in drift:
        click.echo(
            f"{'WARN' if dry_run else 'FIX '} store={item.store_id} variant={item.variant_id} "
            f"aggregate={item.aggregate_quantity} batches={item.batch_quantity} delta={item.delta:+d}"
        )
    click.echo(f"{verb} {len(drift)} drifted stock row(s).")


@inventory_group.command('low-stock')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def low_stock(store_id):
    rows = inventory_service.list_low_stock(store_id=store_id)
    if not rows:
        click.echo("PASS No variants below minimum stock.")
        return
    for row in rows:
        sku = row.variant.sku if row.variant else row.variant_id
        click.echo(f"LOW  {sku}: {row.quantity} on hand (min {row.min_stock})")


@click.group('reports')
def reports_group():
    """Financial reports."""


@reports_group.command('summary')
@click.option('--start', default=None, help='Window start (YYYY-MM-DD)')
@click.option('--end', default=None, help='Window end, inclusive (YYYY-MM-DD)')
@click.option('--store-id', type=int, default=None, help='Limit to one store')
@with_appcontext
def summary(start, end, store_id):
    try:
        report = reporting_service.financial_report(start=start, end=end, store_id=store_id)
    except ValidationError as e:
        raise click.ClickException(str(e))

    click.echo(f"Orders:        {report['order_count']}")
    click.echo(f"Revenue:       {_money(report['revenue_cents'])}")
    click.echo(f"COGS:          {_money(report['cogs_cents'])}")
    click.echo(f"Gross profit:  {_money(report['gross_profit_cents'])}")
    click.echo(f"Expenses:      {_money(report['expenses_cents'])}")
    click.echo(f"Net profit:    {_money(report['net_profit_cents'])}")
    click.echo(f"Margin:        {report['profit_margin']:.2f}%")
    if report["top_products"]:
        click.echo("\nTop products:")
        for row in report["top_products"]:
            click.echo(f"  {row['name']}: {row['quantity']} sold, {_money(row['revenue_cents'])}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
