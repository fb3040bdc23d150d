# Overview: Flask CLI command groups for bootstrap and ledger inspection.

# backend/billing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Insert a demo customer, supplier and two products.
#
# Ledger inspection:
# - python -m flask ledger next-number --kind INVOICE --date 2026-01-15
#   Show the number the next document would get (allocates nothing).
# - python -m flask ledger sequences [--date 2026-01-15]
#   List per-day counter rows.
# - python -m flask ledger unpaid --kind PURCHASE
#   List documents with an outstanding balance.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, Product, Supplier
from .services import document_service, sequence_service
from .services.payment_service import summarize_document_payments
from .validation import DOCUMENT_KINDS, LedgerError, coerce_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK Database tables ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    db.session.remove()
    db.engine.dispose()
    click.echo("OK Database reset complete")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo parties and products (skips rows that already exist)."""
    if not db.session.query(Customer).filter_by(name="Walk-in Customer").first():
        db.session.add(Customer(name="Walk-in Customer"))
    if not db.session.query(Supplier).filter_by(name="Default Supplier").first():
        db.session.add(Supplier(name="Default Supplier", payment_terms_days=30))

    for sku, name, cost, price in (
        ("DEMO-001", "Demo Widget", 6000, 10000),
        ("DEMO-002", "Demo Gadget", 3000, 5000),
    ):
        if not db.session.query(Product).filter_by(sku=sku).first():
            db.session.add(Product(
                sku=sku,
                name=name,
                cost_price_cents=cost,
                selling_price_cents=price,
                stock_quantity=10,
            ))

    db.session.commit()
    click.echo("OK Demo data seeded")


@click.group('ledger')
def ledger_group():
    """Document numbering and balance inspection."""


@ledger_group.command('next-number')
@click.option('--kind', type=click.Choice(DOCUMENT_KINDS, case_sensitive=False), default='INVOICE', show_default=True)
@click.option('--date', 'on_date', help='Document date (YYYY-MM-DD, default today)')
@with_appcontext
def next_number(kind, on_date):
    """Show the next document number without allocating it."""
    try:
        click.echo(sequence_service.peek_next_number(kind, coerce_date("date", on_date)))
    except LedgerError as e:
        raise click.ClickException(e.message)


@ledger_group.command('sequences')
@click.option('--date', 'on_date', help='Only this day (YYYY-MM-DD)')
@with_appcontext
def list_sequences(on_date):
    """List per-day document counters."""
    try:
        rows = sequence_service.get_sequences(coerce_date("date", on_date))
    except LedgerError as e:
        raise click.ClickException(e.message)

    if not rows:
        click.echo("No counters found.")
        return

    click.echo("\n" + "="*50)
    click.echo(f"{'Day':<10} {'Kind':<10} {'Last number'}")
    click.echo("="*50)
    for row in rows:
        click.echo(f"{row.date_key:<10} {row.document_kind:<10} {row.last_number}")
    click.echo("="*50 + "\n")


@ledger_group.command('unpaid')
@click.option('--kind', type=click.Choice(DOCUMENT_KINDS, case_sensitive=False), default='INVOICE', show_default=True)
@with_appcontext
def list_unpaid(kind):
    """List documents that still have a balance due."""
    documents = document_service.list_documents(kind, unpaid_only=True)

    if not documents:
        click.echo(f"No unpaid {kind.lower()}s.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Number':<22} {'Date':<12} {'Status':<10} {'Total':>12} {'Paid':>12} {'Balance':>12}")
    click.echo("="*80)
    for document in documents:
        summary = summarize_document_payments(document)
        click.echo(
            f"{document.number:<22} {document.document_date.isoformat():<12} "
            f"{summary['payment_status']:<10} {summary['total_cents']:>12} "
            f"{summary['total_paid_cents']:>12} {summary['remaining_balance_cents']:>12}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
