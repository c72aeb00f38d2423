# Overview: Flask CLI command groups for bootstrap, user management, and ledger checks.

# backend/ricemill/cli.py
# Run from backend/ with FLASK_APP=wsgi.py:
#   flask system init-db                 create missing tables
#   flask system reset-db --yes          drop and recreate everything (dev only)
#   flask users create --role admin      add an account (prompts for omitted options)
#   flask users list                     show accounts, roles and status
#   flask ledger verify [--product-id N] replay stock ledgers; exits 1 on mismatch

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, USER_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services import stock_service
from .validation import NotFoundError

RULE = "-" * 72


@click.group('system')
def system_group():
    """Database bootstrap."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any tables that don't exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@with_appcontext
def reset_db(yes):
    """Drop every table and rebuild the schema. All stock history is lost."""
    if not yes:
        click.confirm("WARN Every product, transaction and withdrawal will be erased. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database rebuilt; create an admin with 'flask users create --role admin'.")


@click.group('users')
def users_group():
    """Mill staff accounts."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--name', prompt=True, help='Name shown on transactions and audit entries')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='staff', show_default=True)
@with_appcontext
def create_user_cli(username, name, email, password, role):
    """Add a staff or admin account."""
    try:
        create_user(username=username, name=name, email=email, password=password, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        sys.exit(1)
    except ValueError as e:
        click.echo(f"FAIL Could not create user: {e}")
        sys.exit(1)

    click.echo(f"PASS Created user: {username} <{email}> role={role}")


@users_group.command('list')
@with_appcontext
def list_users():
    """Print every account."""
    users = db.session.query(User).order_by(User.username.asc()).all()
    if not users:
        click.echo("No users yet.")
        return

    click.echo(RULE)
    click.echo(f"{'Username':<20} {'Name':<24} {'Role':<7} {'Status'}")
    click.echo(RULE)
    for user in users:
        status = "active" if user.is_active else "disabled"
        click.echo(f"{user.username:<20} {user.name:<24} {user.role:<7} {status}")


@click.group('ledger')
def ledger_group():
    """Stock ledger consistency checks."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, help='Check a single product')
@with_appcontext
def verify_ledger(product_id):
    """Replay each product's transactions from zero and compare with current_stock."""
    if product_id is not None:
        try:
            results = [stock_service.verify_product_ledger(product_id)]
        except NotFoundError as e:
            click.echo(f"FAIL {str(e)}")
            sys.exit(1)
        inconsistent = [r for r in results if not r["consistent"]]
        checked = 1
    else:
        report = stock_service.verify_all_ledgers()
        inconsistent = report["inconsistent"]
        checked = report["products_checked"]

    for r in inconsistent:
        click.echo(
            f"FAIL Product {r['product_id']} ({r['name']}): current_stock={r['current_stock']} "
            f"replayed={r['replayed_stock']} issues={len(r['issues'])}"
        )
        for issue in r["issues"]:
            click.echo(f"     tx {issue['transaction_id']}: {issue['issue']}")

    if inconsistent:
        click.echo(f"FAIL {len(inconsistent)} of {checked} product ledger(s) inconsistent")
        sys.exit(1)

    click.echo(f"PASS {checked} product ledger(s) consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
