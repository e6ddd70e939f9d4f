"""
CLI command tests (flask users / shops / restock groups).
"""

from shopstock.extensions import db
from shopstock.models import RestockRequest, Shop, ShopInventory, User, ShopManager


def test_create_user_and_issue_token(app, shop):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create", "--username", "north", "--email", "north@shop.test",
        "--role", "Shop_Owner", "--shop-id", str(shop.id),
    ])
    assert "PASS Created user: north" in result.output

    user = db.session.query(User).filter_by(username="north").one()
    assert db.session.query(ShopManager).filter_by(user_id=user.id, shop_id=shop.id).count() == 1

    result = runner.invoke(args=["users", "issue-token", "--username", "north"])
    assert result.output.startswith("PASS Token for north")
    token = result.output.strip().splitlines()[-1]
    assert len(token) == 64


def test_duplicate_user(app, admin):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create", "--username", "admin", "--email", "x@factory.test", "--role", "Admin",
    ])
    assert result.output.startswith("FAIL")


def test_assign_manager_requires_shop_owner(app, admin, shop):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["shops", "assign-manager", "--shop-id", str(shop.id), "--username", "admin"])
    assert "FAIL Only Shop_Owner users can manage shops" in result.output


def test_migrate_legacy_statuses_dry_run(app, shop, product):
    db.session.add(RestockRequest(shop_id=shop.id, product_id=product.id, requested_amount=1, status="pending"))
    db.session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["restock", "migrate-legacy-statuses", "--dry-run"])

    assert "Would rewrite 1 request(s) with status 'pending'" in result.output
    assert db.session.query(RestockRequest).filter_by(status="pending").count() == 1


def test_scan_low_stock(app, shop, product, sinks):
    db.session.add(ShopInventory(shop_id=shop.id, product_id=product.id, current_stock=1))
    db.session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["restock", "scan-low-stock"])

    assert "Scanned 1 inventory rows; generated 1 restock request(s)." in result.output


def test_revoke_manager(app, client, owner, owner_headers, shop):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["shops", "revoke-manager", "--shop-id", str(shop.id), "--username", "owner"])

    assert "PASS owner no longer manages shop" in result.output
    assert db.session.query(ShopManager).filter_by(user_id=owner.id, shop_id=shop.id).count() == 0
    assert db.session.get(Shop, shop.id).manager_id is None
    assert client.get(f"/api/shops/{shop.id}/inventory", headers=owner_headers).status_code == 403

    result = runner.invoke(args=["shops", "revoke-manager", "--shop-id", str(shop.id), "--username", "owner"])
    assert "FAIL owner does not manage shop" in result.output
