# Overview: Flask CLI command groups for bootstrap, catalog seeding and ledger checks.

# backend/stockpos/cli.py
# Commands Legend (run from the backend directory):
# - python -m flask --app stockpos system init-db
#   Create all tables (idempotent).
# - python -m flask --app stockpos system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask --app stockpos products create --sku ABC-1 --name "Widget" --price-cents 2000 --stock 10
#   Create a product; initial stock is booked as a ledger adjustment.
# - python -m flask --app stockpos ledger reconcile [--product-id 1]
#   Compare every product's stock counter with its movement ledger. Exit code 1 on mismatch.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import DomainError
from .services import products_service, reporting_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('products')
def products_group():
    """Catalog seeding commands."""


@products_group.command('create')
@click.option('--sku', required=True, help='Unique SKU')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Selling price in cents')
@click.option('--cost-cents', type=int, default=0, show_default=True, help='Cost price in cents')
@click.option('--stock', type=int, default=0, show_default=True, help='Initial stock')
@click.option('--min-level', type=int, default=10, show_default=True, help='Minimum stock level')
@with_appcontext
def create_product_cmd(sku, name, price_cents, cost_cents, stock, min_level):
    """Create a product with optional initial stock."""
    try:
        product = products_service.create_product(
            db.session,
            sku=sku,
            name=name,
            selling_price_cents=price_cents,
            cost_price_cents=cost_cents,
            initial_stock=stock,
            min_stock_level=min_level,
            max_stock_level=max(min_level, 100),
        )
    except DomainError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created product {product.sku} (ID: {product.id}, stock: {product.current_stock})")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Limit the check to one product')
@with_appcontext
def reconcile(product_id):
    """Verify current_stock equals the signed sum of stock movements."""
    discrepancies = reporting_service.reconcile_stock(db.session, product_id)
    if not discrepancies:
        click.echo("PASS Stock counters reconcile with the ledger.")
        return

    for row in discrepancies:
        click.echo(
            f"FAIL product {row['product_id']} ({row['sku']}): "
            f"stock={row['current_stock']} ledger={row['ledger_balance']} diff={row['difference']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(ledger_group)
