# Overview: Flask CLI command groups for bootstrap, user administration, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin, pharmacist and doctor users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User administration:
# - python -m flask users list [--lockouts]
#   List all users with role, MFA and active status.
# - python -m flask users create --username alice --name "Alice" --email alice@pharmasys.local --role pharmacist
#   Create a user (prompts for the password).
# - python -m flask users set-role alice admin
#   Change a user's role.
# - python -m flask users disable-mfa alice
#   Recovery: turn off every MFA factor for a user who lost their device.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired/revoked sessions older than 30 days.

import click
from flask.cli import with_appcontext

from .errors import PharmaSysError
from .extensions import db, get_notifier
from .models import ROLES, User
from .services import auth_service, login_throttle_service, mfa_service, session_service
from .services.password_service import PasswordValidationError


DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("admin", "Administrator", "admin@pharmasys.local", "admin"),
    ("pharmacist", "Default Pharmacist", "pharmacist@pharmasys.local", "pharmacist"),
    ("doctor", "Default Doctor", "doctor@pharmasys.local", "doctor"),
]


def _require_user(username: str) -> User:
    user = auth_service.find_user(username)
    if user is None:
        raise click.ClickException(f"User '{username}' not found")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for the seeded users')
@with_appcontext
def init_system(password):
    """
    Initialize PharmaSys: schema and default users.

    Creates:
    - All tables (if missing)
    - Users: admin, pharmacist, doctor (real password hashes, no bypass)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing PharmaSys...")

    db.create_all()
    click.echo("PASS Tables ready")

    click.echo("\nUSERS Creating default users...")
    for username, name, email, role in DEFAULT_USERS:
        if auth_service.find_user(username):
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            auth_service.create_user(
                username=username,
                password=password,
                name=name,
                email=email,
                role=role,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except PasswordValidationError as e:
            db.session.rollback()
            click.echo(f"FAIL Password validation failed for '{username}': {e}")
            return

    click.echo("\n" + "=" * 60)
    click.echo("DONE PharmaSys initialized")
    click.echo("=" * 60)
    click.echo(f"\nDefault credentials (CHANGE IN PRODUCTION!): <username> / {password}")


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


@click.group('users')
def users_group():
    """User administration commands."""


@users_group.command('list')
@click.option('--lockouts', is_flag=True, help='Also show failed-login lockout status')
@with_appcontext
def list_users(lockouts):
    """List all users with role, MFA and active status."""
    users = auth_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<12} {'Active':<8} {'MFA'}")
    click.echo("=" * 100)

    for user in users:
        factors = [name for name, on in (("totp", user.mfa_enabled), ("email", user.email_mfa_enabled)) if on]
        line = (
            f"{user.id:<5} {user.username:<20} {user.email:<32} {user.role:<12} "
            f"{'Yes' if user.is_active else 'No':<8} {', '.join(factors) or 'off'}"
        )
        if lockouts:
            status = login_throttle_service.get_lockout_status(user.username)
            if status["locked"]:
                line += f"  LOCKED ({status['seconds_until_unlock']}s)"
            elif status["failed_attempts"]:
                line += f"  {status['failed_attempts']} recent failures"
        click.echo(line)

    click.echo("=" * 100 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default='pharmacist', show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, name, email, password, role):
    """Create a user with any role, including admin."""
    try:
        user = auth_service.create_user(
            username=username,
            password=password,
            name=name,
            email=email,
            role=role,
        )
    except PharmaSysError as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('set-role')
@click.argument('username')
@click.argument('role', type=click.Choice(ROLES))
@with_appcontext
def set_role_cli(username, role):
    """Change a user's role."""
    user = _require_user(username)
    old_role = user.role
    auth_service.change_role(None, user.id, role, notifier=get_notifier())
    click.echo(f"PASS {username}: {old_role} -> {role}")


@users_group.command('disable-mfa')
@click.argument('username')
@with_appcontext
def disable_mfa_cli(username):
    """Turn off TOTP and email MFA for a user (device-loss recovery)."""
    user = _require_user(username)
    notifier = get_notifier()
    mfa_service.disable_totp(user, notifier=notifier)
    mfa_service.set_email_mfa(user, False, notifier=notifier)
    click.echo(f"PASS MFA disabled for {username}")


@click.group('maintenance')
def maintenance_group():
    """Periodic housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired or revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
