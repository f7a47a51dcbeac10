# Overview: Flask CLI command groups for bootstrap, sede provisioning and access grants.

# backend/docportal/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the superadmin account.
#
# Admin accounts:
# - python -m flask admins create --email ana@example.com --full-name "Ana Perez" [--superadmin]
#   Create an administrator (prompts for the password).
# - python -m flask admins list
#   List administrators with superadmin and active flags.
#
# Sedes:
# - python -m flask sedes create --name "Sede Norte" --email norte@example.com
# - python -m flask sedes list [--all]
# - python -m flask sedes deactivate --name "Sede Norte"
#
# Access codes:
# - python -m flask tokens issue --sede "Sede Norte" [--send]
#   Print the active code (creating one if needed); --send mails it to the sede.
# - python -m flask tokens regenerate --sede "Sede Norte"
#   Rotate the code. Sessions opened with the old code stop working.
# - python -m flask tokens list --sede "Sede Norte"
#
# Access grants:
# - python -m flask access grant --admin ana@example.com --sede "Sede Norte" --view --edit
# - python -m flask access revoke --admin ana@example.com --sede "Sede Norte"

import click
from flask.cli import with_appcontext

from .errors import PortalError
from .extensions import db
from .models import AdminUser, Sede
from .services import sede_access_service, sede_service, token_service
from .services.auth_service import create_admin, PasswordValidationError


def _admin_by_email(email: str) -> AdminUser | None:
    return db.session.query(AdminUser).filter_by(email=(email or "").strip().lower()).first()


def _sede_by_name(name: str) -> Sede | None:
    return db.session.query(Sede).filter_by(name=name).first()


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--email', default='admin@docportal.local', help='Superadmin email')
@click.option('--full-name', default='Portal Administrator', help='Superadmin name')
@click.option('--password', default='Password123!', help='Superadmin password')
@with_appcontext
def init_system(email, full_name, password):
    """
    Create tables and a superadmin account if none exists.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing document portal...")

    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(AdminUser).filter_by(is_superadmin=True).first()
    if existing:
        click.echo(f"PASS Using existing superadmin: {existing.email} (ID: {existing.id})")
        return

    try:
        admin = create_admin(email, full_name, password, is_superadmin=True)
    except (PasswordValidationError, ValueError) as e:
        click.echo(f"FAIL Could not create superadmin: {str(e)}")
        return

    click.echo(f"PASS Created superadmin: {admin.email} (ID: {admin.id})")
    click.echo("\nWARN  Default password in use. Change it before going live.")


@click.group('admins')
def admins_group():
    """Administrator account commands."""


@admins_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--company', default=None, help='Company')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--superadmin', is_flag=True, help='Bypass per-sede grants')
@with_appcontext
def create_admin_cli(email, full_name, company, password, superadmin):
    """Create an administrator account."""
    try:
        admin = create_admin(email, full_name, password, company=company, is_superadmin=superadmin)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create admin: {str(e)}")
        return

    click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id}, superadmin={admin.is_superadmin})")


@admins_group.command('list')
@with_appcontext
def list_admins_cli():
    """List all administrators."""
    admins = db.session.query(AdminUser).order_by(AdminUser.id.asc()).all()
    if not admins:
        click.echo("No admins found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Super':<6} {'Active'}")
    click.echo("="*80)
    for admin in admins:
        click.echo(
            f"{admin.id:<5} {admin.email:<35} {admin.full_name:<25} "
            f"{'Yes' if admin.is_superadmin else 'No':<6} {'Yes' if admin.is_active else 'No'}"
        )
    click.echo("="*80 + "\n")


@click.group('sedes')
def sedes_group():
    """Sede provisioning commands."""


@sedes_group.command('create')
@click.option('--name', prompt=True, help='Sede name (unique)')
@click.option('--email', prompt=True, help='Mailbox that receives access codes')
@click.option('--phone', default=None)
@click.option('--address', default=None)
@click.option('--admin-sede', is_flag=True, help='Mark as an administrative sede')
@with_appcontext
def create_sede_cli(name, email, phone, address, admin_sede):
    try:
        sede = sede_service.create_sede(name, email, phone=phone, address=address, is_admin_sede=admin_sede)
    except PortalError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS Created sede: {sede.name} (ID: {sede.id})")


@sedes_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive sedes')
@with_appcontext
def list_sedes_cli(show_all):
    sedes = sede_service.list_sedes(active_only=not show_all)
    if not sedes:
        click.echo("No sedes found.")
        return

    for sede in sedes:
        token = token_service.get_active_token(sede.id)
        status = "active" if sede.is_active else "inactive"
        code = "has code" if token else "no code"
        click.echo(f"{sede.id:<5} {sede.name:<30} {sede.email:<35} {status:<9} {code}")


@sedes_group.command('deactivate')
@click.option('--name', required=True)
@with_appcontext
def deactivate_sede_cli(name):
    sede = _sede_by_name(name)
    if not sede:
        click.echo(f"FAIL Sede '{name}' not found")
        return
    sede_service.set_sede_active(sede.id, False)
    click.echo(f"PASS Sede '{name}' deactivated")


@click.group('tokens')
def tokens_group():
    """Sede access code commands."""


@tokens_group.command('issue')
@click.option('--sede', 'sede_name', required=True)
@click.option('--email', default=None, help='Address recorded on a new token')
@click.option('--send', is_flag=True, help='Mail the code to the sede')
@with_appcontext
def issue_token_cli(sede_name, email, send):
    try:
        if send:
            delivery = token_service.send_token(sede_name)
            token, is_new = delivery.token, delivery.is_new
            if not delivery.delivered:
                click.echo("WARN  Code issued but the mail could not be delivered")
        else:
            token, is_new = token_service.issue_or_reuse(sede_name, email)
    except PortalError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS {'New' if is_new else 'Existing'} code for {sede_name}: {token.token}")


@tokens_group.command('regenerate')
@click.option('--sede', 'sede_name', required=True)
@click.option('--email', default=None)
@with_appcontext
def regenerate_token_cli(sede_name, email):
    try:
        token = token_service.regenerate(sede_name, email)
    except PortalError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS New code for {sede_name}: {token.token}")


@tokens_group.command('list')
@click.option('--sede', 'sede_name', required=True)
@with_appcontext
def list_tokens_cli(sede_name):
    sede = _sede_by_name(sede_name)
    if not sede:
        click.echo(f"FAIL Sede '{sede_name}' not found")
        return
    for token in token_service.list_tokens(sede.id):
        state = "ACTIVE" if token.is_active else "retired"
        last_used = token.last_used_at.isoformat() if token.last_used_at else "never"
        click.echo(f"{token.id:<5} {token.token} {state:<8} created {token.created_at.isoformat()} last used {last_used}")


@click.group('access')
def access_group():
    """Admin-to-sede grant commands."""


@access_group.command('grant')
@click.option('--admin', 'admin_email', required=True)
@click.option('--sede', 'sede_name', required=True)
@click.option('--view/--no-view', default=True)
@click.option('--edit/--no-edit', default=False)
@with_appcontext
def grant_access_cli(admin_email, sede_name, view, edit):
    admin = _admin_by_email(admin_email)
    sede = _sede_by_name(sede_name)
    if not admin or not sede:
        click.echo("FAIL Admin or sede not found")
        return
    sede_access_service.grant(admin.id, sede.id, view, edit)
    click.echo(f"PASS {admin.email} on {sede.name}: can_view={view} can_edit={edit}")


@access_group.command('revoke')
@click.option('--admin', 'admin_email', required=True)
@click.option('--sede', 'sede_name', required=True)
@with_appcontext
def revoke_access_cli(admin_email, sede_name):
    admin = _admin_by_email(admin_email)
    sede = _sede_by_name(sede_name)
    if not admin or not sede:
        click.echo("FAIL Admin or sede not found")
        return
    if sede_access_service.revoke(admin.id, sede.id):
        click.echo(f"PASS Revoked {admin.email} on {sede.name}")
    else:
        click.echo("WARN  No grant to revoke")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admins_group)
    app.cli.add_command(sedes_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(access_group)
