# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/invtrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-password "Password123!"] [--with-samples]
#   Idempotent bootstrap: tables, admin user, default categories, Main Storage.
#   --with-samples also adds two wines with opening stock.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with roles and active status.
# - python -m flask users create --username jo --email jo@example.com --password "Password123!" --role staff
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask inventory reconcile
#   Compare cached quantities against the transaction ledger; exits 1 on drift.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import InventoryAppError
from .models import Category, Location, LocationType, Product, User, UserRole
from .services import catalog_service, inventory_service, location_service
from .services.auth_service import create_user, MIN_PASSWORD_LENGTH, PasswordValidationError


DEFAULT_CATEGORIES = [
    # (id, name, parent_id, description)
    ("cat-001", "Wine", None, "All types of wine"),
    ("cat-002", "Liquor", None, "Spirits and hard liquor"),
    ("cat-003", "Beer", None, "Beer and malt beverages"),
    ("cat-004", "Other", None, "Other inventory items"),
    ("cat-101", "Red Wine", "cat-001", "Red wine varieties"),
    ("cat-102", "White Wine", "cat-001", "White wine varieties"),
    ("cat-103", "Rosé", "cat-001", "Rosé wine varieties"),
    ("cat-104", "Sparkling", "cat-001", "Sparkling wine and champagne"),
    ("cat-201", "Whiskey", "cat-002", "Whiskey and bourbon"),
    ("cat-202", "Vodka", "cat-002", "Vodka varieties"),
    ("cat-203", "Rum", "cat-002", "Rum varieties"),
    ("cat-204", "Tequila", "cat-002", "Tequila and mezcal"),
    ("cat-205", "Gin", "cat-002", "Gin varieties"),
]

SAMPLE_PRODUCTS = [
    # (name, barcode, category_id, price_cents, cost_cents, case_size, varietal, opening_qty)
    ("Test Cab", "CAB123456", "cat-101", 4500, 3000, 12, "Cabernet Sauvignon", 12),
    ("Chardonnay", "CHAR123456", "cat-102", 3500, 2200, 12, "Chardonnay", 24),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123!', help='Password for the default admin user')
@click.option('--with-samples', is_flag=True, help='Also create sample products with opening stock')
@with_appcontext
def init_system(admin_password, with_samples):
    """
    Initialize the inventory tracker.

    Creates (skipping anything that already exists):
    - All tables
    - User: admin / admin@example.com with role 'admin'
    - Categories: Wine, Liquor, Beer, Other and their subcategories
    - Location: Main Storage (main_storage)

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing inventory tracker...")

    db.create_all()

    # 1. Admin user
    admin = db.session.query(User).filter_by(username="admin").first()
    if admin:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            admin = create_user(
                username="admin",
                password=admin_password,
                email="admin@example.com",
                full_name="System Administrator",
                role=UserRole.ADMIN.value,
            )
            click.echo("PASS Created user: admin (admin@example.com) with role 'admin'")
        except PasswordValidationError as e:
            db.session.rollback()
            click.echo(f"FAIL Password validation failed for 'admin': {str(e)}")
            raise SystemExit(1)

    # 2. Categories (parents first; list order guarantees it)
    created = 0
    for category_id, name, parent_id, description in DEFAULT_CATEGORIES:
        if db.session.query(Category).filter_by(id=category_id).first():
            continue
        catalog_service.create_category(
            name=name,
            parent_id=parent_id,
            description=description,
            category_id=category_id,
            actor_id=admin.id,
            commit=False,
        )
        created += 1
    db.session.commit()
    click.echo(f"PASS Categories created: {created}")

    # 3. Main storage location
    main = db.session.query(Location).filter_by(type=LocationType.MAIN_STORAGE.value).first()
    if main:
        click.echo(f"PASS Using existing location: {main.name} (ID: {main.id})")
    else:
        main = location_service.create_location(
            patch={
                "name": "Main Storage",
                "type": LocationType.MAIN_STORAGE.value,
                "description": "Primary storage location for inventory",
            },
            actor_id=admin.id,
        )
        click.echo(f"PASS Created location: {main.name} (ID: {main.id})")

    # 4. Optional sample products
    if with_samples:
        for name, barcode, category_id, price, cost, case_size, varietal, qty in SAMPLE_PRODUCTS:
            if db.session.query(Product).filter_by(barcode=barcode).first():
                click.echo(f"WARN  Product '{barcode}' already exists, skipping...")
                continue
            product = catalog_service.create_product(
                patch={
                    "name": name,
                    "barcode": barcode,
                    "category_id": category_id,
                    "unit_price_cents": price,
                    "unit_cost_cents": cost,
                    "case_size": case_size,
                    "varietal": varietal,
                },
                actor_id=admin.id,
            )
            inventory_service.set_quantity(product.id, main.id, qty, actor_id=admin.id)
            click.echo(f"PASS Created product: {name} ({barcode}) with {qty} on hand")

    click.echo("\n" + "="*60)
    click.echo("DONE Inventory tracker initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin -> admin@example.com / {admin_password}")
    click.echo("")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(UserRole.values())), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """Create a user. Options left out are prompted for."""
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            full_name=full_name,
            role=role,
        )
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        click.echo(f"     User ID: {user.id}")
        click.echo(f"     Active: {'Yes' if user.is_active else 'No'}")

    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo(f"Requirements: {MIN_PASSWORD_LENGTH}+ chars with upper, lower, digit and special")
        raise SystemExit(1)
    except InventoryAppError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")
        raise SystemExit(1)


@users_group.command('list')
@click.option('--active-only', is_flag=True, help='Hide deactivated users')
@with_appcontext
def list_users(active_only):
    """List all users with their roles."""
    query = db.session.query(User)
    if active_only:
        query = query.filter(User.is_active.is_(True))
    users = query.order_by(User.username.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Username':<20} {'Email':<30} {'Role':<10} {'Active':<8} {'ID'}")
    click.echo("="*100)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.username:<20} {(user.email or '-'):<30} {user.role:<10} {active_str:<8} {user.id}")

    click.echo("="*100 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory maintenance commands."""


@inventory_group.command('reconcile')
@with_appcontext
def reconcile_cli():
    """
    Check every cached quantity against the signed sum of its ledger rows.

    Read-only. Exits with status 1 when any pair disagrees.
    """
    mismatches = inventory_service.reconcile_ledger()

    if not mismatches:
        click.echo("PASS Inventory matches the transaction ledger")
        return

    click.echo(f"FAIL {len(mismatches)} inventory record(s) disagree with the ledger:")
    for row in mismatches:
        click.echo(
            f"     product={row['product_id']} location={row['location_id']} "
            f"cached={row['cached_quantity']} ledger={row['ledger_quantity']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
