"""
Product catalogue, factory stock, shop inventory and notification API tests.
"""

from sqlalchemy import text

from shopstock.extensions import db
from shopstock.models import Product, RestockRequest, ShopInventory
from shopstock.services import product_service


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProducts:

    def test_create_books_initial_stock(self, client, admin_headers, sinks):
        response = client.post(
            "/api/products",
            json={"sku": "WATER-500", "name": "Water 500ml", "total_stock": 40, "min_stock_level": 10},
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["total_stock"] == 40
        assert "initial_stock" in {e["metadata"].get("reason") for e in sinks.auditor.events}

    def test_duplicate_sku(self, client, admin_headers, product, sinks):
        response = client.post(
            "/api/products", json={"sku": "COLA-330", "name": "Another cola"}, headers=admin_headers,
        )
        assert response.status_code == 409
        assert response.get_json()["error"] == "conflict"

    def test_owner_cannot_create(self, client, owner_headers, sinks):
        response = client.post("/api/products", json={"sku": "X-1", "name": "X"}, headers=owner_headers)
        assert response.status_code == 403

    def test_unknown_field_rejected(self, client, admin_headers, sinks):
        response = client.post(
            "/api/products", json={"sku": "X-1", "name": "X", "version_id": 3}, headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["field"] == "version_id"

    def test_negative_price_rejected(self, client, admin_headers, sinks):
        response = client.post(
            "/api/products", json={"sku": "X-1", "name": "X", "unit_price_cents": -1}, headers=admin_headers,
        )
        assert response.status_code == 400

    def test_list_and_paginate(self, client, owner_headers, product, sinks):
        db.session.add(Product(sku="APPLE-1", name="Apple juice", total_stock=5))
        db.session.commit()

        body = client.get("/api/products", headers=owner_headers).get_json()
        assert [p["name"] for p in body["items"]] == ["Apple juice", "Cola 330ml"]

        body = client.get("/api/products?page=2&per_page=1", headers=owner_headers).get_json()
        assert body["pagination"]["total"] == 2
        assert body["pagination"]["has_prev"] is True
        assert [p["sku"] for p in body["items"]] == ["COLA-330"]

    def test_patch_total_stock_goes_through_ledger(self, client, admin_headers, product, sinks):
        response = client.patch(
            f"/api/products/{product.id}", json={"total_stock": 130, "name": "Cola 330"}, headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["total_stock"] == 130
        assert "factory_adjusted" in sinks.auditor.actions()

    def test_low_stock_listing(self, client, owner_headers, product, sinks):
        db.session.add(Product(sku="LOW-1", name="Low item", total_stock=2, min_stock_level=5))
        db.session.commit()

        body = client.get("/api/products/low-stock", headers=owner_headers).get_json()
        assert [p["sku"] for p in body["items"]] == ["LOW-1"]
        assert body["items"][0]["is_low_stock"] is True


class TestFactoryStockEndpoint:

    def test_negative_result_conflict(self, client, admin_headers, product, sinks):
        response = client.post(f"/api/products/{product.id}/stock", json={"delta": -150}, headers=admin_headers)

        assert response.status_code == 409
        assert response.get_json()["available"] == 100
        assert db.session.get(Product, product.id).total_stock == 100

    def test_absolute_edit(self, client, admin_headers, product, sinks):
        response = client.post(f"/api/products/{product.id}/stock", json={"total_stock": 30}, headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["total_stock"] == 30

    def test_both_fields_rejected(self, client, admin_headers, product, sinks):
        response = client.post(
            f"/api/products/{product.id}/stock", json={"delta": 5, "total_stock": 30}, headers=admin_headers,
        )
        assert response.status_code == 400

    def test_owner_forbidden(self, client, owner_headers, product, sinks):
        response = client.post(f"/api/products/{product.id}/stock", json={"delta": 5}, headers=owner_headers)
        assert response.status_code == 403


class TestProductDeletion:

    def test_deactivate(self, client, admin_headers, product, sinks):
        response = client.delete(f"/api/products/{product.id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["product"]["is_active"] is False
        assert "deactivated" in sinks.auditor.actions()

    def test_deactivate_retries_after_concurrent_write(self, admin, product, sinks, monkeypatch):
        actions = []
        real_audit = product_service._audit_product

        def audit_after_concurrent_write(effects, p, action, *args, **kwargs):
            actions.append(action)
            if len(actions) == 1:
                # Another writer bumps the row version before our flush.
                db.session.connection().execute(
                    text("UPDATE products SET version_id = version_id + 1 WHERE id = :id"), {"id": p.id},
                )
            return real_audit(effects, p, action, *args, **kwargs)

        monkeypatch.setattr(product_service, "_audit_product", audit_after_concurrent_write)

        p = product_service.deactivate_product(product_id=product.id, user_id=admin.id)

        assert p.is_active is False
        assert actions == ["deactivated", "deactivated"]
        assert sinks.auditor.actions().count("deactivated") == 1

    def test_deactivate_twice_audits_once(self, admin, product, sinks):
        product_service.deactivate_product(product_id=product.id, user_id=admin.id)
        product_service.deactivate_product(product_id=product.id, user_id=admin.id)

        assert sinks.auditor.actions().count("deactivated") == 1

    def test_hard_delete_blocked_by_requests(self, client, admin_headers, shop, product, sinks):
        db.session.add(RestockRequest(shop_id=shop.id, product_id=product.id, requested_amount=5))
        db.session.commit()

        response = client.delete(f"/api/products/{product.id}/hard", headers=admin_headers)
        assert response.status_code == 409
        assert response.get_json()["count"] == 1

    def test_hard_delete_blocked_by_inventory(self, client, admin_headers, shop, product, sinks):
        db.session.add(ShopInventory(shop_id=shop.id, product_id=product.id, current_stock=50))
        db.session.commit()

        response = client.delete(f"/api/products/{product.id}/hard", headers=admin_headers)
        assert response.status_code == 409

    def test_hard_delete(self, client, admin_headers, product, sinks):
        response = client.delete(f"/api/products/{product.id}/hard", headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["count"] == 0
        assert db.session.get(Product, product.id) is None


# =============================================================================
# SHOP INVENTORY
# =============================================================================


class TestShopInventoryApi:

    def test_count_correction_and_listing(self, client, owner_headers, shop, product, sinks):
        response = client.patch(
            f"/api/shops/{shop.id}/inventory/{product.id}", json={"current_stock": 45}, headers=owner_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["current_stock"] == 45

        body = client.get(f"/api/shops/{shop.id}/inventory", headers=owner_headers).get_json()
        assert body["count"] == 1
        assert body["items"][0]["product"]["sku"] == "COLA-330"

    def test_threshold_change_triggers_evaluation(self, client, owner_headers, shop, product, sinks):
        client.patch(f"/api/shops/{shop.id}/inventory/{product.id}", json={"current_stock": 45}, headers=owner_headers)

        response = client.patch(
            f"/api/shops/{shop.id}/inventory/{product.id}", json={"min_stock_per_item": 50}, headers=owner_headers,
        )
        assert response.status_code == 200
        auto = db.session.query(RestockRequest).filter_by(shop_id=shop.id, auto_generated=True).all()
        assert len(auto) == 1

    def test_negative_count_rejected(self, client, owner_headers, shop, product, sinks):
        response = client.patch(
            f"/api/shops/{shop.id}/inventory/{product.id}", json={"current_stock": -1}, headers=owner_headers,
        )
        assert response.status_code == 400

    def test_foreign_owner_forbidden(self, client, other_owner_headers, shop, product, sinks):
        response = client.patch(
            f"/api/shops/{shop.id}/inventory/{product.id}", json={"current_stock": 10}, headers=other_owner_headers,
        )
        assert response.status_code == 403
        assert client.get(f"/api/shops/{shop.id}/inventory", headers=other_owner_headers).status_code == 403

    def test_remove_product_from_shop(self, client, owner_headers, shop, product, sinks):
        client.patch(f"/api/shops/{shop.id}/inventory/{product.id}", json={"current_stock": 45}, headers=owner_headers)

        response = client.delete(f"/api/shops/{shop.id}/inventory/{product.id}", headers=owner_headers)
        assert response.status_code == 200
        assert response.get_json()["inventory"]["is_active"] is False
        assert response.get_json()["inventory"]["current_stock"] == 45

        body = client.get(f"/api/shops/{shop.id}/inventory", headers=owner_headers).get_json()
        assert body["count"] == 0

    def test_remove_is_audited_and_broadcast_once(self, client, owner_headers, shop, product, sinks):
        client.patch(f"/api/shops/{shop.id}/inventory/{product.id}", json={"current_stock": 45}, headers=owner_headers)

        client.delete(f"/api/shops/{shop.id}/inventory/{product.id}", headers=owner_headers)
        response = client.delete(f"/api/shops/{shop.id}/inventory/{product.id}", headers=owner_headers)

        assert response.status_code == 200
        assert sinks.auditor.actions().count("removed_from_shop") == 1
        removed = [p for name, p in sinks.broadcaster.history if name == "shop_inventory.removed"]
        assert len(removed) == 1
        assert removed[0]["product_id"] == product.id

    def test_remove_unstocked_product_not_found(self, client, owner_headers, shop, product, sinks):
        response = client.delete(f"/api/shops/{shop.id}/inventory/{product.id}", headers=owner_headers)
        assert response.status_code == 404


class TestLowStockListing:

    def _stock(self, shop, product, current, min_per_item=None):
        db.session.add(ShopInventory(
            shop_id=shop.id, product_id=product.id, current_stock=current, min_stock_per_item=min_per_item,
        ))
        db.session.commit()

    def test_admin_sees_all_shops_ordered_by_stock_then_shop(
        self, client, admin_headers, shop, other_shop, product, sinks,
    ):
        juice = Product(sku="JUICE-1L", name="Juice 1L", total_stock=50, min_stock_level=None)
        db.session.add(juice)
        db.session.commit()
        self._stock(other_shop, product, 5)
        self._stock(shop, product, 5)
        self._stock(shop, juice, 8, min_per_item=10)
        self._stock(other_shop, juice, 3)  # no threshold anywhere

        body = client.get("/api/shops/inventory/low-stock", headers=admin_headers).get_json()

        assert body["count"] == 3
        assert [(i["shop"]["name"], i["product"]["sku"]) for i in body["items"]] == [
            ("North Shop", "COLA-330"),
            ("South Shop", "COLA-330"),
            ("North Shop", "JUICE-1L"),
        ]

    def test_override_threshold_wins_over_product_level(self, client, admin_headers, shop, product, sinks):
        self._stock(shop, product, 15, min_per_item=10)

        body = client.get("/api/shops/inventory/low-stock", headers=admin_headers).get_json()
        assert body["count"] == 0

    def test_owner_scoped_to_managed_shops(
        self, client, owner_headers, shop, other_shop, product, sinks,
    ):
        self._stock(shop, product, 5)
        self._stock(other_shop, product, 2)

        body = client.get("/api/shops/inventory/low-stock", headers=owner_headers).get_json()
        assert [i["shop_id"] for i in body["items"]] == [shop.id]

        response = client.get(f"/api/shops/inventory/low-stock?shop_id={other_shop.id}", headers=owner_headers)
        assert response.status_code == 403

    def test_inactive_rows_excluded(self, client, admin_headers, shop, product, sinks):
        self._stock(shop, product, 5)
        client.delete(f"/api/shops/{shop.id}/inventory/{product.id}", headers=admin_headers)

        body = client.get(f"/api/shops/inventory/low-stock?shop_id={shop.id}", headers=admin_headers).get_json()
        assert body["count"] == 0

    def test_bad_shop_id_rejected(self, client, admin_headers, sinks):
        response = client.get("/api/shops/inventory/low-stock?shop_id=abc", headers=admin_headers)
        assert response.status_code == 400


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class TestNotificationsApi:

    def test_inbox_and_mark_read(self, client, admin, admin_headers, owner_headers, shop, product):
        client.post(
            "/api/restock-requests",
            json={"shop_id": shop.id, "product_id": product.id, "requested_amount": 10},
            headers=owner_headers,
        )

        inbox = client.get("/api/notifications", headers=admin_headers).get_json()
        assert inbox["count"] == 1
        notification_id = inbox["items"][0]["id"]

        response = client.patch(f"/api/notifications/{notification_id}/read", headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["is_read"] is True

        unread = client.get("/api/notifications?unread_only=true", headers=admin_headers).get_json()
        assert unread["count"] == 0

        assert client.patch(f"/api/notifications/{notification_id}/read", headers=owner_headers).status_code == 404
