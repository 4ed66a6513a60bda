# Overview: Flask CLI command groups for bootstrap, accounts, product seeding and stock inspection.

# backend/vacadmin/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--owner-username owner --owner-password "Password123"]
#   Create all tables; optionally create the first OWNER account.
#
# Accounts:
# - python -m flask users create --username alice --password "Password123" --role STAFF
# - python -m flask users list
#
# Catalog seed (catalog maintenance lives outside this service):
# - python -m flask products add --sku VF-001 --name "HEPA filter" --sell-price-cents 2500 --cost-price-cents 1200 --stock 10
#
# Stock inspection:
# - python -m flask stock show VF-001 [--movements 10]

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import User
from .permissions import Role
from .services.auth_service import create_user
from .services import products_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--owner-username', default=None, help='Create an OWNER account with this username')
@click.option('--owner-password', default=None, help='Password for the OWNER account')
@with_appcontext
def init_system(owner_username, owner_password):
    """
    Create all tables. Safe to re-run.

    With --owner-username/--owner-password, also creates the first OWNER
    so the API can be used right away.
    """
    db.create_all()
    click.echo("PASS Tables created")

    if not owner_username:
        return

    if db.session.query(User).filter_by(username=owner_username).first():
        click.echo(f"WARN  User '{owner_username}' already exists, skipping...")
        return

    try:
        user = create_user(owner_username, owner_password or "", role=Role.OWNER)
        click.echo(f"PASS Created OWNER user: {user.username} (ID: {user.id})")
    except ServiceError as e:
        click.echo(f"FAIL Failed to create owner: {e.message}")


@click.group('users')
def users_group():
    """User account commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(Role.ALL)), default=Role.STAFF, show_default=True, help='Role')
@click.option('--name', default=None, help='Display name')
@click.option('--email', default=None, help='Email address')
@with_appcontext
def create_user_cli(username, password, role, name, email):
    """
    Create a user.

    Password must be 8+ characters with letters and digits.
    """
    try:
        user = create_user(username, password, role=role, name=name, email=email)
        click.echo(f"PASS Created user: {user.username} with role '{user.role}' (ID: {user.id})")
    except ServiceError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found. Run 'python -m flask users create' first.")
        return

    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<6} {status}")


@click.group('products')
def products_group():
    """Product seed commands."""


@products_group.command('add')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--sell-price-cents', type=click.IntRange(min=0), required=True)
@click.option('--cost-price-cents', type=click.IntRange(min=0), required=True)
@click.option('--barcode', default=None)
@click.option('--stock', 'stock_qty', type=click.IntRange(min=0), default=0, show_default=True)
@click.option('--min-stock', type=click.IntRange(min=0), default=0, show_default=True)
@with_appcontext
def add_product(sku, name, sell_price_cents, cost_price_cents, barcode, stock_qty, min_stock):
    """Seed a product with an opening stock quantity."""
    try:
        product = products_service.create_product(
            sku=sku,
            name=name,
            barcode=barcode,
            sell_price_cents=sell_price_cents,
            cost_price_cents=cost_price_cents,
            stock_qty=stock_qty,
            min_stock=min_stock,
        )
        click.echo(f"PASS Created product {product.sku} (ID: {product.id}) with stock {product.stock_qty}")
    except Exception as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create product: {str(e)}")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('show')
@click.argument('code')
@click.option('--movements', 'movement_limit', type=int, default=10, show_default=True)
@with_appcontext
def show_stock(code, movement_limit):
    """Show on-hand quantity and recent movements for an id, SKU or barcode."""
    try:
        product = products_service.find_product(code)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return

    low = " (LOW)" if product.is_low_stock else ""
    click.echo(f"{product.sku}  {product.name}")
    click.echo(f"On hand: {product.stock_qty}{low}  min: {product.min_stock}")

    movements, total = products_service.list_movements(product.id, limit=movement_limit)
    click.echo(f"Movements ({total} total):")
    for m in movements:
        click.echo(
            f"  {m.occurred_at:%Y-%m-%d %H:%M}  {m.movement_type:<17} {m.quantity_delta:+d}"
            f"  -> {m.balance_after}  {m.reference_type}#{m.reference_id}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
