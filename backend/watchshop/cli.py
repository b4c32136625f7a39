# Overview: Flask CLI command groups for bootstrap, user management and the ledger.

# backend/watchshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin/manager/staff users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username anita --email anita@shop.local --password "Password123!" --role manager
#
# Ledger:
# - python -m flask ledger show 2024-03-01 [--entries]
# - python -m flask ledger close 2024-03-01 --username manager --notes "Drawer counted"
# - python -m flask ledger history [--start 2024-03-01] [--end 2024-03-31]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF
from .services.auth_service import create_user, PasswordValidationError
from .services import cob_service, ledger_service
from .services.ledger_errors import LedgerError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and the default users.

    Users: admin / manager / staff, all with password "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing watchshop...")

    db.create_all()
    click.echo("PASS Tables created")

    default_password = "Password123!"
    default_users = [
        ("admin", "admin@watchshop.local", ROLE_ADMIN),
        ("manager", "manager@watchshop.local", ROLE_MANAGER),
        ("staff", "staff@watchshop.local", ROLE_STAFF),
    ]

    for username, email, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, email=email, password=default_password, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except (PasswordValidationError, ValueError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin   / Password123!")
    click.echo("   manager / Password123!")
    click.echo("   staff   / Password123!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, closures included!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("DONE Database reset. Run `flask system init` to create users.")


@click.group('users')
def users_group():
    """User inspection and creation."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active'}")
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {active_str}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_STAFF, show_default=True)
@click.option('--full-name', default=None)
@with_appcontext
def create_user_cmd(username, email, password, role, full_name):
    """Create a user."""
    try:
        user = create_user(username=username, email=email, password=password, role=role, full_name=full_name)
    except (PasswordValidationError, ValueError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@click.group('ledger')
def ledger_group():
    """Daily ledger and close-of-business."""


@ledger_group.command('show')
@click.argument('date')
@click.option('--entries', is_flag=True, help='List contributing entries')
@with_appcontext
def show_ledger(date, entries):
    """Print the ledger summary for DATE (YYYY-MM-DD)."""
    try:
        summary = ledger_service.compute_ledger(date)
    except ValueError:
        raise click.BadParameter("DATE must be YYYY-MM-DD", param_hint="DATE")
    except LedgerError as e:
        raise click.ClickException(str(e))

    data = summary.to_dict(include_entries=entries)
    state = cob_service.get_business_day_state(summary.business_date)

    click.echo(f"Ledger {data['date']} [{state}]")
    click.echo(f"  Sales     {data['salesTotal']:>14}  ({data['salesCount']})")
    click.echo(f"  Services  {data['servicesTotal']:>14}  ({data['servicesCount']})")
    click.echo(f"  Expenses  {data['expensesTotal']:>14}  ({data['expensesCount']})")
    click.echo(f"  Net       {data['netIncome']:>14}")
    click.echo(f"  Cash      {data['cashBalance']:>14}  (opening {data['openingCashBalance']})")
    click.echo(f"  Account   {data['accountBalance']:>14}  (opening {data['openingAccountBalance']})")

    for side in ("income", "expenses"):
        for method, totals in data["paymentBreakdown"][side].items():
            click.echo(f"  {side:<9} {method:<14} {totals['amount']:>12}  ({totals['count']})")

    if entries:
        for entry in data["entries"]:
            click.echo(
                f"  - {entry['occurredAt']} {entry['kind']:<8} {entry['paymentMethod']:<14} "
                f"{entry['amount']:>12}  {entry['reference'] or ''}"
            )


@ledger_group.command('close')
@click.argument('date')
@click.option('--username', required=True, help='User performing the closure')
@click.option('--notes', default=None)
@with_appcontext
def close_ledger(date, username, notes):
    """Close business DATE (irreversible)."""
    user = db.session.query(User).filter_by(username=username, is_active=True).first()
    if not user:
        raise click.ClickException(f"Active user '{username}' not found")

    try:
        record = cob_service.close_business_day(date, notes, user.id)
    except ValueError:
        raise click.BadParameter("DATE must be YYYY-MM-DD", param_hint="DATE")
    except LedgerError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")

    summary = record.summary
    click.echo(
        f"PASS Closed {summary['date']}: net {summary['netIncome']}, "
        f"cash {summary['cashBalance']}, account {summary['accountBalance']}"
    )


@ledger_group.command('history')
@click.option('--start', default=None, help='YYYY-MM-DD (inclusive)')
@click.option('--end', default=None, help='YYYY-MM-DD (inclusive)')
@with_appcontext
def ledger_history(start, end):
    """List closures."""
    try:
        records = cob_service.list_cob_records(start, end)
    except ValueError:
        raise click.BadParameter("dates must be YYYY-MM-DD")

    if not records:
        click.echo("No closures found.")
        return

    click.echo(f"{'Date':<12} {'Net':>14} {'Cash':>14} {'Account':>14}  {'Closed by':<16} Notes")
    for record in records:
        summary = record.summary
        closed_by = record.closed_by.username if record.closed_by else "?"
        click.echo(
            f"{summary['date']:<12} {summary['netIncome']:>14} {summary['cashBalance']:>14} "
            f"{summary['accountBalance']:>14}  {closed_by:<16} {record.notes or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
