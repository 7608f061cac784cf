# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Admin accounts:
# - python -m flask admins create --username admin --password "Password123!"
#   Create an admin (prompts if options are omitted). TOTP is enrolled on first login.
# - python -m flask admins list
#   List admins with 2FA and active status.
# - python -m flask admins reset-2fa --username admin
#   Clear TOTP enrolment; the next login issues a new secret.
#
# Inventory:
# - python -m flask inventory verify-ledger
#   Replay every variant's ledger and compare with stored stock. Exits 1 on mismatch.
#
# Maintenance:
# - python -m flask sessions cleanup
#   Delete expired admin sessions and pending 2FA tokens.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import AdminUser
from .errors import ValidationError
from .services import auth_service, inventory_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the inventory ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask admins create' to add an admin.")


@click.group('admins')
def admins_group():
    """Admin account management."""


@admins_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(username, password):
    """Create an admin. Two-factor enrolment happens on first login."""
    try:
        admin = auth_service.create_admin(username, password)
    except ValidationError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Admin '{admin.username}' created (id={admin.id}). Log in to enrol 2FA.")


@admins_group.command('list')
@with_appcontext
def list_admins():
    """List all admins."""
    admins = db.session.query(AdminUser).order_by(AdminUser.id).all()

    if not admins:
        click.echo("No admins found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<25} {'Active':<8} {'2FA':<6} {'Last login'}")
    click.echo("="*70)

    for admin in admins:
        active_str = "Yes" if admin.is_active else "No"
        totp_str = "Yes" if admin.totp_enabled else "No"
        last_login = admin.last_login_at.isoformat() if admin.last_login_at else "never"
        click.echo(f"{admin.id:<5} {admin.username:<25} {active_str:<8} {totp_str:<6} {last_login}")

    click.echo("="*70 + "\n")


@admins_group.command('reset-2fa')
@click.option('--username', prompt=True, help='Username')
@with_appcontext
def reset_2fa_cli(username):
    """Clear an admin's TOTP secret (lost authenticator)."""
    try:
        auth_service.reset_2fa(username)
    except ValidationError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS 2FA reset for '{username}'. A new secret is issued on next login.")


@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection."""


@inventory_group.command('verify-ledger')
@with_appcontext
def verify_ledger():
    """Check that every variant's stock equals the replay of its ledger."""
    mismatches = inventory_service.find_ledger_mismatches()

    if not mismatches:
        click.echo("PASS Ledger replay matches stored stock for every variant.")
        return

    for row in mismatches:
        click.echo(
            f"FAIL variant {row['variant_id']}: stock={row['stock_quantity']} "
            f"ledger={row['ledger_quantity']}"
        )
    raise click.ClickException(f"{len(mismatches)} variant(s) disagree with the ledger")


@click.group('sessions')
def sessions_group():
    """Admin session maintenance."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    """Delete expired sessions and pending 2FA tokens."""
    removed = session_service.get_session_store().purge_expired()
    click.echo(f"PASS Removed {removed} expired session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admins_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(sessions_group)
