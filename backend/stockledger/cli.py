# Overview: Flask CLI command group for bootstrap, inspection, and reconciliation.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockledger (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask ledger <command> [options]
#
# Bootstrap:
# - python -m flask ledger init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask ledger init-db --reset --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask ledger seed-demo
#   Create a demo category, two locations, two products and a few purchases/sales.
#
# Inspection:
# - python -m flask ledger stock 1 [--location-id 2] [--as-of 2026-01-31T23:59:59Z]
#   Print ledger-derived stock for a product.
# - python -m flask ledger value --method FIFO [--product-id 1] [--as-of ...] [--category-id 1] [--include-inactive]
#   Print inventory value for one product or the whole catalog.
#
# Counts:
# - python -m flask ledger reconcile 1 --counted 8 [--tolerance 0.05] [--no-adjust]
#   Compare a physical count with the ledger and post the correcting adjustment.

import json
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Category, Location, Product


def _engine():
    return current_app.extensions["inventory_engine"]


@click.group('ledger')
def ledger_group():
    """Inventory ledger commands."""


@ledger_group.command('init-db')
@click.option('--reset', is_flag=True, help='Drop all tables first (deletes all data)')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(reset, yes):
    if reset:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@ledger_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Idempotent demo data.

    Creates (if missing):
    - Category "Demo"
    - Locations MAIN and BACK
    - Products DEMO-001 and DEMO-002
    - Two purchases and one sale for DEMO-001 (only when it has no movements)
    """
    category = db.session.query(Category).filter_by(name="Demo").first()
    if not category:
        category = Category(name="Demo")
        db.session.add(category)

    locations = {}
    for code, name in (("MAIN", "Main Warehouse"), ("BACK", "Back Room")):
        location = db.session.query(Location).filter_by(code=code).first()
        if not location:
            location = Location(code=code, name=name)
            db.session.add(location)
        locations[code] = location

    products = {}
    for sku, name, cost in (("DEMO-001", "Demo Widget", "1.00"), ("DEMO-002", "Demo Gadget", "4.50")):
        product = db.session.query(Product).filter_by(sku=sku).first()
        if not product:
            product = Product(sku=sku, name=name, standard_cost=Decimal(cost), category=category)
            db.session.add(product)
        products[sku] = product

    db.session.commit()
    click.echo(f"PASS Catalog ready (category={category.id}, products={[p.id for p in products.values()]})")

    engine = _engine()
    widget = products["DEMO-001"]
    if engine.movement_history(widget.id, limit=1):
        click.echo("SKIP Demo movements already present")
        return

    main = locations["MAIN"].id
    try:
        engine.create_transaction("purchase", [{"product_id": widget.id, "quantity": 10, "unit_price": "1.00"}],
                                  location_id=main, notes="Demo purchase 1")
        engine.create_transaction("purchase", [{"product_id": widget.id, "quantity": 10, "unit_price": "2.00"}],
                                  location_id=main, notes="Demo purchase 2")
        engine.create_transaction("sale", [{"product_id": widget.id, "quantity": 12, "unit_price": "3.50"}],
                                  location_id=main, status="completed", notes="Demo sale")
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Demo movements recorded; DEMO-001 stock={engine.current_stock(widget.id)}")


@ledger_group.command('stock')
@click.argument('product_id', type=int)
@click.option('--location-id', type=int, default=None, help='Restrict to one location')
@click.option('--as-of', default=None, help='Inclusive ISO-8601 cutoff')
@click.option('--breakdown', is_flag=True, help='Show per-location stock')
@with_appcontext
def stock_cmd(product_id, location_id, as_of, breakdown):
    engine = _engine()
    try:
        quantity = engine.current_stock(product_id, location_id=location_id, as_of=as_of)
        click.echo(f"Product {product_id}: {quantity}")
        if breakdown:
            for loc, qty in engine.stock_by_location(product_id, as_of=as_of).items():
                click.echo(f"  location={loc if loc is not None else '-'}: {qty}")
    except LedgerError as e:
        raise click.ClickException(e.message)


@ledger_group.command('value')
@click.option('--method', default='FIFO', show_default=True, help='FIFO, LIFO or AVERAGE')
@click.option('--product-id', type=int, default=None, help='Value one product only')
@click.option('--category-id', type=int, default=None, help='Restrict the catalog report to one category')
@click.option('--as-of', default=None, help='Inclusive ISO-8601 cutoff (default now)')
@click.option('--include-inactive', is_flag=True, help='Include inactive products in the catalog report')
@click.option('--json', 'as_json', is_flag=True, help='Print the catalog report as JSON')
@with_appcontext
def value_cmd(method, product_id, category_id, as_of, as_json, include_inactive):
    engine = _engine()
    try:
        if product_id is not None:
            value = engine.value_as_of(product_id, method, as_of)
            click.echo(f"Product {product_id} ({method.upper()}): {value}")
            return

        report = engine.value_catalog(method, as_of, category_id, include_inactive=include_inactive)
    except LedgerError as e:
        raise click.ClickException(e.message)

    if as_json:
        click.echo(json.dumps(report, indent=2))
        return

    click.echo(f"Inventory value ({report['method']}) as of {report['as_of']}")
    click.echo("-" * 60)
    for row in report["products"]:
        click.echo(f"{row['product_id']:<6} {row['sku']:<16} qty={row['quantity']:<8} value={row['value']}")
    click.echo("-" * 60)
    for bucket in report["by_category"]:
        name = bucket["category_name"] or "(uncategorized)"
        click.echo(f"{name:<24} qty={bucket['quantity']:<8} value={bucket['value']}")
    click.echo(f"TOTAL {report['total_value']} ({report['total_quantity']} units)")
    metrics = report["metrics"]
    click.echo(
        f"Products {metrics['product_count']} "
        f"(in stock {metrics['in_stock_count']}, out of stock {metrics['out_of_stock_count']}), "
        f"average value {metrics['average_value_per_product']}"
    )


@ledger_group.command('reconcile')
@click.argument('product_id', type=int)
@click.option('--counted', 'counted_quantity', type=int, required=True, help='Physically counted quantity')
@click.option('--location-id', type=int, default=None)
@click.option('--tolerance', default=None, help='Variance fraction flagged for review (default from config)')
@click.option('--no-adjust', is_flag=True, help='Record the count without posting an adjustment')
@click.option('--actor-id', type=int, default=None)
@click.option('--notes', default=None)
@with_appcontext
def reconcile_cmd(product_id, counted_quantity, location_id, tolerance, no_adjust, actor_id, notes):
    try:
        result = _engine().reconcile(
            product_id,
            counted_quantity=counted_quantity,
            location_id=location_id,
            tolerance=tolerance,
            auto_adjust=not no_adjust,
            actor_id=actor_id,
            notes=notes,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)

    status = "PASS" if result.within_tolerance else "WARN"
    click.echo(
        f"{status} system={result.system_stock} counted={result.counted_quantity} "
        f"difference={result.difference} ({result.difference_percentage})"
    )
    if result.auto_adjusted:
        click.echo(f"ADJUST Posted adjustment of {abs(result.difference)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
