# Overview: Flask CLI command groups for bootstrap and seeding.

# backend/ricemart/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (preferred outside development).
#
# System bootstrap:
# - python -m flask system init
#   Create missing tables and the default company payment accounts (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --email admin@ricemart.local --name "Shop Admin" --password "Password123"
#   Create an admin account (prompts if options are omitted).
# - python -m flask users list
#
# Catalog:
# - python -m flask catalog seed [--stock 100]
#   Insert the sample rice catalog with opening stock (skips SKUs that exist).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CompanyPaymentAccount, Product, User
from .services import catalog_service
from .services.auth_service import create_user
from .validation import ConflictError, ValidationError


DEFAULT_COMPANY_ACCOUNTS = (
    {
        "name": "KBZ Pay (Main)",
        "type": "KBZ_PAY",
        "account_name": "RiceMart Trading",
        "account_number": "09-000000001",
        "details": {"phone": "09-000000001"},
    },
    {
        "name": "AYA Bank (Yangon)",
        "type": "AYA_BANK",
        "account_name": "RiceMart Trading Co., Ltd.",
        "account_number": "0012-3456-7890",
        "details": {"branch": "Yangon Downtown"},
    },
)

SAMPLE_PRODUCTS = (
    {
        "sku": "PAW-SAN-25",
        "name_en": "Paw San Hmwe Rice 25kg",
        "name_my": "ပေါ်ဆန်းမွှေး ၂၅ ကီလို",
        "description_en": "Fragrant premium Paw San from Shwebo.",
        "price": "85000.00",
        "metadata": {"variety": "Paw San", "weight": "25kg", "origin": "Shwebo"},
        "allow_sell_without_stock": False,
    },
    {
        "sku": "PAW-SAN-5",
        "name_en": "Paw San Hmwe Rice 5kg",
        "name_my": "ပေါ်ဆန်းမွှေး ၅ ကီလို",
        "price": "18000.00",
        "metadata": {"variety": "Paw San", "weight": "5kg", "origin": "Shwebo"},
        "allow_sell_without_stock": False,
    },
    {
        "sku": "EMATA-50",
        "name_en": "Emata Rice 50kg",
        "name_my": "ဧည့်မထ ၅၀ ကီလို",
        "price": "95000.00",
        "metadata": {"variety": "Emata", "weight": "50kg"},
    },
    {
        "sku": "SHWE-BO-25",
        "name_en": "Shwe Bo Rice 25kg",
        "price": "62000.00",
        "metadata": {"variety": "Shwe Bo", "weight": "25kg"},
    },
)


@click.group("system")
def system_group():
    """System bootstrap and repair commands."""


@system_group.command("init")
@with_appcontext
def init_system():
    """
    Initialize a fresh RiceMart database.

    Creates:
    - Any missing tables (db.create_all; use `flask db upgrade` in production)
    - Default company payment accounts, when none exist yet

    Admin accounts are created separately with `flask users create-admin`.
    """
    click.echo("START Initializing RiceMart...")
    db.create_all()
    click.echo("PASS Tables ready")

    if db.session.query(CompanyPaymentAccount.id).first():
        click.echo("PASS Company payment accounts already configured")
    else:
        for fields in DEFAULT_COMPANY_ACCOUNTS:
            db.session.add(CompanyPaymentAccount(**fields))
        db.session.commit()
        click.echo(f"PASS Created {len(DEFAULT_COMPANY_ACCOUNTS)} company payment accounts")

    admin_count = db.session.query(User).filter_by(role="admin").count()
    if not admin_count:
        click.echo("WARN  No admin account yet. Run 'python -m flask users create-admin'.")
    click.echo("DONE RiceMart initialized")


@system_group.command("reset-db")
@click.option("--yes", is_flag=True, help="Skip confirmation")
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


@click.group("users")
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command("create-admin")
@click.option("--email", prompt=True, help="Email address")
@click.option("--name", prompt=True, help="Display name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Password")
@with_appcontext
def create_admin_cli(email, name, password):
    """
    Create an admin account.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(email=email, password=password, name=name, role="admin")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create admin: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command("list")
@click.option("--role", type=click.Choice(["customer", "admin"]), help="Filter by role")
@with_appcontext
def list_users(role):
    """List users."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<20} {'Role':<10} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.name[:20]:<20} {user.role:<10} {active_str}")
    click.echo("=" * 80 + "\n")


@click.group("catalog")
def catalog_group():
    """Catalog seeding commands."""


@catalog_group.command("seed")
@click.option("--stock", default=100, show_default=True, type=int, help="Opening stock per product")
@with_appcontext
def seed_catalog(stock):
    """Insert the sample rice catalog and record opening stock."""
    created = 0
    for fields in SAMPLE_PRODUCTS:
        if db.session.query(Product.id).filter_by(sku=fields["sku"]).first():
            click.echo(f"SKIP {fields['sku']} already exists")
            continue
        product = catalog_service.create_product(dict(fields))
        if stock:
            catalog_service.add_stock_entry(product.id, stock, "0", note="Opening stock")
        created += 1
        click.echo(f"PASS {product.sku}: {product.name_en} (ID: {product.id})")

    click.echo(f"DONE {created} products created")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
