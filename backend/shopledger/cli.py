# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/shopledger/cli.py
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
#
# Ledger maintenance:
# - python -m flask ledger reconcile-debts [--customers|--suppliers]
#   Rebuild cached debts from orders and settlements (both sides by default).
# - python -m flask ledger verify-stock [--fix]
#   Compare cached stock with the movement history; --fix rebuilds drifting products.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services.debt_service import PARTY_CUSTOMER, PARTY_SUPPLIER
from .services import reconciliation_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database schema is up to date.")


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

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Reconciliation of cached balances against history."""


@ledger_group.command('reconcile-debts')
@click.option('--customers', 'only_customers', is_flag=True, help='Only customers')
@click.option('--suppliers', 'only_suppliers', is_flag=True, help='Only suppliers')
@with_appcontext
def reconcile_debts(only_customers, only_suppliers):
    """Recalculate every counterparty's debt; prints each correction."""
    if only_customers and only_suppliers:
        raise click.UsageError("Use at most one of --customers / --suppliers")

    party_types = [PARTY_CUSTOMER, PARTY_SUPPLIER]
    if only_customers:
        party_types = [PARTY_CUSTOMER]
    elif only_suppliers:
        party_types = [PARTY_SUPPLIER]

    failed = False
    for party_type in party_types:
        result = reconciliation_service.recalculate_all_debts(party_type)
        if not result.success:
            failed = True
            click.echo(f"FAIL {party_type}: {result.error_code} {result.error}", err=True)
            continue

        corrected = result.data["corrected"]
        click.echo(f"PASS {party_type}: checked {result.data['checked']}, corrected {len(corrected)}")
        for row in corrected:
            click.echo(
                f"  - #{row['counterparty_id']}: {row['previous_debt']} -> {row['debt']}"
            )

    if failed:
        raise SystemExit(1)


@ledger_group.command('verify-stock')
@click.option('--fix', is_flag=True, help='Rebuild drifting products from their movements')
@with_appcontext
def verify_stock(fix):
    """Check Product.stock == SUM(StockMovement.quantity) for every product."""
    result = reconciliation_service.verify_stock(fix=fix)
    if not result.success:
        click.echo(f"FAIL {result.error_code} {result.error}", err=True)
        raise SystemExit(1)

    mismatches = result.data["mismatches"]
    if not mismatches:
        click.echo("PASS All product stock matches the movement history.")
        return

    for row in mismatches:
        click.echo(
            f"  - {row['sku']} (#{row['product_id']}): cached {row['cached_stock']}, ledger {row['ledger_stock']}"
        )
    if fix:
        click.echo(f"PASS Repaired {result.data['fixed']} product(s).")
    else:
        click.echo(f"WARN {len(mismatches)} product(s) drifted. Re-run with --fix to repair.")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
