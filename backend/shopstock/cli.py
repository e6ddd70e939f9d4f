# Overview: Flask CLI command groups for bootstrap, access management and restock maintenance.

# backend/shopstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "shopstock:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and tokens:
# - python -m flask users create --username admin --email admin@shop.local --role Admin
# - python -m flask users create --username owner --email owner@shop.local --role Shop_Owner --shop-id 1
# - python -m flask users issue-token --username owner
#   Print a bearer token for API calls (shown once).
# - python -m flask users list
#
# Shops:
# - python -m flask shops create --name "Downtown" --location "Main St"
# - python -m flask shops assign-manager --shop-id 1 --username owner [--secondary]
# - python -m flask shops revoke-manager --shop-id 1 --username owner
# - python -m flask shops list
#
# Restock maintenance:
# - python -m flask restock migrate-legacy-statuses [--dry-run]
#   Rewrite pending/accepted/in_transit statuses to the current vocabulary.
# - python -m flask restock scan-low-stock
#   Re-evaluate every active shop inventory row; auto-generates restock requests.
# - python -m flask restock cleanup-sessions --retention-days 7

import click
from flask.cli import with_appcontext

from .errors import RestockError
from .extensions import db
from .models import Shop, User, ROLES, ROLE_SHOP_OWNER
from .services import maintenance_service
from .services.session_service import create_session
from .services.shop_access_service import assign_manager, revoke_manager


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User bootstrap and token commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--shop-id', type=int, default=None, help='Shop to manage (Shop_Owner only)')
@with_appcontext
def create_user_cli(username, email, name, role, shop_id):
    """Create a user, optionally as primary manager of a shop."""
    if db.session.query(User).filter((User.username == username) | (User.email == email)).first():
        click.echo(f"FAIL User '{username}' or email '{email}' already exists")
        return

    try:
        user = User(username=username, email=email, name=name, role=role)
        db.session.add(user)
        db.session.flush()

        if shop_id is not None:
            assign_manager(user_id=user.id, shop_id=shop_id)

        db.session.commit()
    except RestockError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}' (ID: {user.id})")
    if shop_id is not None:
        click.echo(f"     Manages shop {shop_id}")


@users_group.command('issue-token')
@click.option('--username', prompt=True, help='Username')
@with_appcontext
def issue_token_cli(username):
    """Issue a bearer token. The plaintext is printed once and never stored."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    try:
        session, token = create_session(user.id)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Token for {username} (expires {session.expires_at.isoformat()}Z):")
    click.echo(token)


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and managed shops."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Active':<8} {'Shops'}")
    click.echo("=" * 90)
    for user in users:
        data = user.to_dict()
        shops = ", ".join(str(s) for s in data["managed_shop_ids"]) or "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<12} {active_str:<8} {shops}")
    click.echo("=" * 90 + "\n")


@click.group('shops')
def shops_group():
    """Shop management commands."""


@shops_group.command('create')
@click.option('--name', prompt=True, help='Shop name')
@click.option('--location', default=None, help='Location')
@with_appcontext
def create_shop_cli(name, location):
    shop = Shop(name=name, location=location)
    db.session.add(shop)
    db.session.commit()
    click.echo(f"PASS Created shop '{name}' (ID: {shop.id})")


@shops_group.command('assign-manager')
@click.option('--shop-id', type=int, required=True)
@click.option('--username', required=True)
@click.option('--secondary', is_flag=True, help='Grant access without moving the primary manager pointer')
@with_appcontext
def assign_manager_cli(shop_id, username, secondary):
    """Grant a Shop_Owner management of a shop."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    if user.role != ROLE_SHOP_OWNER:
        click.echo(f"FAIL Only {ROLE_SHOP_OWNER} users can manage shops")
        return

    try:
        assign_manager(user_id=user.id, shop_id=shop_id, primary=not secondary)
        db.session.commit()
    except RestockError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return

    kind = "secondary" if secondary else "primary"
    click.echo(f"PASS {username} is now a {kind} manager of shop {shop_id}")


@shops_group.command('revoke-manager')
@click.option('--shop-id', type=int, required=True)
@click.option('--username', required=True)
@with_appcontext
def revoke_manager_cli(shop_id, username):
    """Remove a user's management of a shop. Active sessions pick it up on their next request."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    if not revoke_manager(user_id=user.id, shop_id=shop_id):
        db.session.rollback()
        click.echo(f"FAIL {username} does not manage shop {shop_id}")
        return
    db.session.commit()
    click.echo(f"PASS {username} no longer manages shop {shop_id}")


@shops_group.command('list')
@with_appcontext
def list_shops():
    shops = db.session.query(Shop).order_by(Shop.id.asc()).all()
    if not shops:
        click.echo("No shops found.")
        return
    for shop in shops:
        status = "active" if shop.is_active else "inactive"
        click.echo(f"{shop.id:<5} {shop.name:<30} manager={shop.manager_id or '-'} ({status})")


@click.group('restock')
def restock_group():
    """Restock maintenance commands."""


@restock_group.command('migrate-legacy-statuses')
@click.option('--dry-run', is_flag=True, help='Report counts without writing')
@with_appcontext
def migrate_legacy_statuses_cli(dry_run):
    """Rewrite pending/accepted/in_transit to waiting_for_approval/approved_pending."""
    counts = maintenance_service.migrate_legacy_statuses(dry_run=dry_run)
    verb = "Would rewrite" if dry_run else "Rewrote"
    for legacy, count in counts.items():
        click.echo(f"{verb} {count} request(s) with status '{legacy}'")
    click.echo(f"Total: {sum(counts.values())}")


@restock_group.command('scan-low-stock')
@with_appcontext
def scan_low_stock_cli():
    """Re-evaluate every active shop inventory row against its low-stock threshold."""
    result = maintenance_service.scan_low_stock()
    click.echo(f"Scanned {result['scanned']} inventory rows; generated {result['generated']} restock request(s).")


@restock_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=7, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete session tokens that expired more than --retention-days ago."""
    deleted = maintenance_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} expired session tokens.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(restock_group)
