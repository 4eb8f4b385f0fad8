# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/boutique/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin --admin-password "Password123!"]
#   Idempotent bootstrap: creates tables and, if given, the first admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system verify-ledger
#   Compare every product's quantity with the sum of its stock movements.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username ana --name "Ana" --password "Password123!" --role salesperson
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Product, User
from .models.auth import ROLE_ADMIN, ROLES
from .services import auth_service, ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', help='Create this admin user if it does not exist')
@click.option('--admin-name', default='Administrator', help='Display name for the admin user')
@click.option('--admin-password', help='Password for the admin user')
@with_appcontext
def init_system(admin_username, admin_name, admin_password):
    """Create all tables and optionally the first admin user."""
    click.echo("BUILD  Creating tables...")
    db.create_all()

    if admin_username:
        if not admin_password:
            admin_password = click.prompt('Admin password', hide_input=True, confirmation_prompt=True)
        existing = db.session.query(User).filter_by(username=admin_username).first()
        if existing:
            click.echo(f"SKIP  User '{admin_username}' already exists")
        else:
            try:
                auth_service.create_user(admin_username, admin_name, admin_password, ROLE_ADMIN)
            except ServiceError as e:
                raise click.ClickException(e.message)
            click.echo(f"PASS Created admin user '{admin_username}'")

    click.echo("PASS System initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to create an admin.")


@system_group.command('verify-ledger')
@with_appcontext
def verify_ledger_cli():
    """Report products whose quantity disagrees with their movement history."""
    mismatches = 0
    for product in db.session.query(Product).order_by(Product.id).all():
        result = ledger_service.verify_ledger(product.id)
        if not result["consistent"]:
            mismatches += 1
            click.echo(
                f"FAIL #{product.id} {product.name} ({product.size}): "
                f"quantity={result['quantity']} movements={result['movement_total']}"
            )
    if mismatches:
        raise click.ClickException(f"{mismatches} product(s) out of balance")
    click.echo("PASS Ledger consistent for all products.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, password, role):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = auth_service.create_user(username, name, password, role)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user '{user.username}' (id={user.id}, role={user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<14} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<14} {active_str}")

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
