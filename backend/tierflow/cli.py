# Overview: Flask CLI command groups for bootstrap, inspection, and request handling.

# backend/tierflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"]
#   Idempotent bootstrap: creates tables, a manufacturer org, a client org under it,
#   and an admin plus a client user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Retail" --code "ACME" [--parent-id 1]
#
# Users:
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --username admin --email admin@tierflow.local --password "Password123!" --role admin
#
# Catalog:
# - python -m flask catalog add-product --org-id 1 --sku WID-1 --name "Widget" --price 49.99 --stock 100
# - python -m flask catalog list [--org-id 1]
#
# Purchase requests:
# - python -m flask requests list --org-id 1 [--status pending]
# - python -m flask requests approve 12 --actor-id 1
# - python -m flask requests reject 12 --actor-id 1 --reason "Out of season"

import click
from flask.cli import with_appcontext

from .errors import PurchaseRequestError
from .extensions import db
from .models import Organization, User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_CLIENT
from .services import catalog_service, purchase_request_service
from .services.auth_service import create_user, PasswordValidationError
from .validation import money_to_cents


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Manufacturer', help='Manufacturer organization name')
@click.option('--org-code', default='MFR', help='Manufacturer organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the system: schema, a manufacturer org with a client org under it,
    and default users.

    Creates:
    - Manufacturer organization (if none with --org-code exists)
    - Client organization placed under it
    - Users: admin/admin@tierflow.local (admin), client/client@tierflow.local (client)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing system...")
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created manufacturer organization: {org.name} (ID: {org.id})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    client_code = f"{org_code}-CLIENT"
    client_org = db.session.query(Organization).filter_by(code=client_code).first()
    if not client_org:
        client_org = Organization(name=f"{org.name} Client", code=client_code, parent_org_id=org.id, is_active=True)
        db.session.add(client_org)
        db.session.commit()
        click.echo(f"PASS Created client organization: {client_org.name} (ID: {client_org.id})")

    for username, role, target_org in (("admin", ROLE_ADMIN, org), ("client", ROLE_CLIENT, client_org)):
        if db.session.query(User).filter_by(org_id=target_org.id, username=username).first():
            click.echo(f"PASS User already exists: {username}")
            continue
        create_user(
            org_id=target_org.id,
            username=username,
            email=f"{username}@tierflow.local",
            password=DEFAULT_PASSWORD,
            role=role,
        )
        click.echo(f"PASS Created user: {username} ({role})")

    click.echo("DONE System initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Parent':<8} {'Active':<8} {'Users'}")
    click.echo("="*80)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        parent = org.parent_org_id or '-'
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {parent:<8} {active_str:<8} {user_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--parent-id', type=int, default=None, help='Parent organization ID')
@with_appcontext
def create_org_cli(name, code, parent_id):
    """Create a new organization (tenant), optionally under a parent."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    if parent_id is not None and not db.session.query(Organization).filter_by(id=parent_id).first():
        click.echo(f"FAIL Parent organization ID {parent_id} not found")
        return

    org = Organization(name=name, code=code, parent_org_id=parent_id, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--display-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(org_id, username, email, password, role, display_name):
    """
    Create a new user in an organization.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    try:
        user = create_user(
            org_id=org_id,
            username=username,
            email=email,
            password=password,
            role=role,
            display_name=display_name,
        )
    except (ValueError, PasswordValidationError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role}, org: {user.org_id})")


@users_group.command('list')
@click.option('--org-id', type=int, default=None, help='Filter by organization')
@with_appcontext
def list_users(org_id):
    """List users with role and active status."""
    query = db.session.query(User)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    users = query.order_by(User.org_id, User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Org':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Active'}")
    for user in users:
        click.echo(
            f"{user.id:<5} {user.org_id:<5} {user.username:<20} {user.email:<30} "
            f"{user.role:<12} {'Yes' if user.is_active else 'No'}"
        )


@click.group('catalog')
def catalog_group():
    """Manufacturer catalog commands."""


@catalog_group.command('add-product')
@click.option('--org-id', type=int, required=True, help='Owning organization ID')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price', required=True, help='Unit price, e.g. 49.99')
@click.option('--stock', type=int, default=0, show_default=True)
@click.option('--category', default=None)
@click.option('--min-qty', type=int, default=1, show_default=True, help='Minimum order quantity')
@click.option('--max-qty', type=int, default=None, help='Maximum order quantity')
@with_appcontext
def add_product(org_id, sku, name, price, stock, category, min_qty, max_qty):
    """Add a manufacturer product with its initial stock."""
    try:
        product = catalog_service.create_manufacturer_product(
            org_id=org_id,
            sku=sku,
            name=name,
            price_cents=money_to_cents(price),
            stock=stock,
            category=category,
            min_order_quantity=min_qty,
            max_order_quantity=max_qty,
        )
    except PurchaseRequestError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created product: {product.sku} (ID: {product.id}, stock: {product.stock})")


@catalog_group.command('list')
@click.option('--org-id', type=int, default=None, help='Filter by organization')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive products')
@with_appcontext
def list_catalog(org_id, include_inactive):
    """List manufacturer products and their stock."""
    products = catalog_service.list_manufacturer_products(org_id, include_inactive=include_inactive)
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"{'ID':<6} {'Org':<5} {'SKU':<20} {'Name':<30} {'Price':>12} {'Stock':>8}")
    for p in products:
        click.echo(
            f"{p.id:<6} {p.org_id:<5} {p.sku:<20} {p.name:<30} "
            f"{p.price_cents / 100:>12.2f} {p.stock or 0:>8}"
        )


@click.group('requests')
def requests_group():
    """Purchase request inspection and decisions."""


@requests_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization owning the catalog')
@click.option('--status', default=None, help='pending | approved | rejected | all')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_requests_cli(org_id, status, limit):
    """List purchase requests for an organization, newest first."""
    try:
        requests = purchase_request_service.list_requests(
            organization_id=org_id,
            status=purchase_request_service.normalize_status_filter(status),
            limit=purchase_request_service.normalize_limit(limit),
        )
    except PurchaseRequestError as e:
        click.echo(f"FAIL {e}")
        return

    if not requests:
        click.echo("No purchase requests found.")
        return

    click.echo(f"{'ID':<6} {'Client':<7} {'Product':<30} {'Qty':>6} {'Total':>12} {'Status':<10}")
    for r in requests:
        click.echo(
            f"{r.id:<6} {r.client_id:<7} {r.product_name:<30} {r.quantity:>6} "
            f"{r.total_cents / 100:>12.2f} {r.status:<10}"
        )


@requests_group.command('approve')
@click.argument('request_id', type=int)
@click.option('--actor-id', type=int, required=True, help='Approving admin user ID')
@with_appcontext
def approve_request_cli(request_id, actor_id):
    """Approve a pending request and transfer the stock."""
    try:
        result = purchase_request_service.approve(request_id, actor_id=actor_id)
    except PurchaseRequestError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(
        f"PASS Approved request {result.request.id}: order {result.order.order_number}, "
        f"manufacturer stock now {result.manufacturer_product.stock}, "
        f"client stock now {result.client_product.current_stock}"
    )


@requests_group.command('reject')
@click.argument('request_id', type=int)
@click.option('--actor-id', type=int, required=True, help='Deciding admin user ID')
@click.option('--reason', required=True)
@with_appcontext
def reject_request_cli(request_id, actor_id, reason):
    """Reject a pending request."""
    try:
        purchase_request = purchase_request_service.reject(request_id, actor_id=actor_id, reason=reason)
    except PurchaseRequestError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Rejected request {purchase_request.id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(requests_group)
