# Overview: Flask CLI command groups for bootstrap, staff tokens and maintenance.

# backend/pos_server/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--location "Main Store"] [--tax-bps 825]
#   Idempotent: creates tables, the default location and the default tax rate.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and terminal tokens:
# - python -m flask users create --email cashier@pos.local --first-name Ana --last-name Diaz --role CASHIER
# - python -m flask users list
# - python -m flask users token --email cashier@pos.local
#   Issue an API token (printed once; set it as POS_API_TOKEN on the terminal).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired or revoked API tokens.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, TaxRate, User, USER_ROLES
from .services import session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--location', 'location_name', default='Main Store', help='Default location name')
@click.option('--tax-name', default='Sales Tax', help='Default tax rate name')
@click.option('--tax-bps', type=int, default=825, show_default=True, help='Default tax rate in basis points')
@with_appcontext
def init_system(location_name, tax_name, tax_bps):
    """
    Initialize the POS database.

    Creates:
    - All tables (if missing)
    - Default location
    - Default active tax rate (applied to every taxable product)
    """
    click.echo("START Initializing POS system...")
    db.create_all()

    location = db.session.query(Location).filter_by(name=location_name).first()
    if not location:
        location = Location(name=location_name)
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    rate = db.session.query(TaxRate).filter_by(is_default=True, is_active=True).first()
    if not rate:
        rate = TaxRate(name=tax_name, rate_bps=tax_bps, is_default=True, is_active=True)
        db.session.add(rate)
        db.session.commit()
        click.echo(f"PASS Created default tax rate: {rate.name} ({rate.rate_bps} bps)")
    else:
        click.echo(f"PASS Using existing default tax rate: {rate.name} ({rate.rate_bps} bps)")

    click.echo("DONE POS system initialized")


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
    click.echo("DONE Database reset")


@click.group('users')
def users_group():
    """Staff user commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--role', type=click.Choice(USER_ROLES), default='CASHIER', show_default=True)
@click.option('--location-id', type=int, default=None, help='Location the user works at')
@with_appcontext
def create_user_cli(email, first_name, last_name, role, location_id):
    """Create a staff user."""
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise click.ClickException(f"User '{email}' already exists")

    if location_id is not None and not db.session.get(Location, location_id):
        raise click.ClickException(f"Location {location_id} not found")

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        location_id=location_id,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<30} {'Role':<10} {'Location':<10} {'Active'}")
    click.echo("="*80)
    for user in users:
        location = user.location_id if user.location_id is not None else "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<30} {user.role:<10} {location!s:<10} {active_str}")
    click.echo("="*80 + "\n")


@users_group.command('token')
@click.option('--email', prompt=True, help='Email of the user the token acts as')
@click.option('--ttl-hours', type=int, default=None, help='Token lifetime (default SESSION_TTL_HOURS)')
@with_appcontext
def issue_token_cli(email, ttl_hours):
    """
    Issue an API token for a user.

    SECURITY: The plaintext token is shown once; only its hash is stored.
    """
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")

    ttl = ttl_hours or current_app.config["SESSION_TTL_HOURS"]
    try:
        session, token = session_service.create_session(user.id, ttl_hours=ttl)
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Token for {user.email} (expires {session.expires_at:%Y-%m-%d %H:%M} UTC):")
    click.echo(token)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired or revoked API tokens."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired or revoked tokens.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
