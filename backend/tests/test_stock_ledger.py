"""
Stock ledger tests.

Verifies:
- Factory and shop counters never go negative (error, never clamped)
- Absolute edits are booked as deltas
- Shop inventory rows are created lazily
- Only admins move factory stock; only managers move their shop's stock
"""

import pytest

from shopstock.errors import Forbidden, InsufficientStock, NotFound, ValidationError
from shopstock.extensions import db
from shopstock.models import Product, ShopInventory
from shopstock.services import stock_ledger_service as ledger


# =============================================================================
# FACTORY STOCK
# =============================================================================


class TestFactoryStock:

    def test_positive_delta_persists(self, admin_caller, product, sinks):
        result = ledger.adjust_factory_stock(product.id, 25, caller=admin_caller)

        assert result.total_stock == 125
        assert db.session.get(Product, product.id).total_stock == 125

    def test_negative_result_raises_and_leaves_stock(self, admin_caller, product, sinks):
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.adjust_factory_stock(product.id, -150, caller=admin_caller)

        assert exc_info.value.available == 100
        assert exc_info.value.requested == 150
        assert db.session.get(Product, product.id).total_stock == 100
        assert sinks.auditor.events == []

    def test_drain_to_exactly_zero_is_allowed(self, admin_caller, product, sinks):
        result = ledger.adjust_factory_stock(product.id, -100, caller=admin_caller)
        assert result.total_stock == 0

    def test_set_is_booked_as_delta(self, admin_caller, product, sinks):
        ledger.set_factory_stock(product.id, 30, caller=admin_caller)

        assert db.session.get(Product, product.id).total_stock == 30
        event = sinks.auditor.events[-1]
        assert event["action"] == "factory_adjusted"
        assert event["metadata"]["previous_stock"] == 100
        assert event["metadata"]["new_stock"] == 30
        assert event["metadata"]["delta"] == -70

    def test_set_negative_rejected(self, admin_caller, product, sinks):
        with pytest.raises(ValidationError):
            ledger.set_factory_stock(product.id, -1, caller=admin_caller)

    def test_set_to_same_value_emits_nothing(self, admin_caller, product, sinks):
        ledger.set_factory_stock(product.id, 100, caller=admin_caller)
        assert sinks.auditor.events == []
        assert len(sinks.broadcaster.history) == 0

    def test_stock_update_is_broadcast(self, admin_caller, product, sinks):
        ledger.adjust_factory_stock(product.id, 5, caller=admin_caller)

        names = [name for name, _ in sinks.broadcaster.history]
        assert "stock.updated" in names
        payload = dict(sinks.broadcaster.history)["stock.updated"]
        assert payload["previous_stock"] == 100
        assert payload["new_stock"] == 105
        assert payload["delta"] == 5
        assert payload["reason"] == ledger.REASON_MANUAL_ADJUSTMENT

    def test_shop_owner_cannot_move_factory_stock(self, owner_caller, product, sinks):
        with pytest.raises(Forbidden):
            ledger.adjust_factory_stock(product.id, 10, caller=owner_caller)
        assert db.session.get(Product, product.id).total_stock == 100

    def test_missing_product(self, admin_caller, sinks):
        with pytest.raises(NotFound):
            ledger.adjust_factory_stock(999, 1, caller=admin_caller)


# =============================================================================
# SHOP INVENTORY
# =============================================================================


class TestShopInventory:

    def test_row_created_lazily(self, owner_caller, shop, product, sinks):
        assert db.session.query(ShopInventory).count() == 0

        inventory = ledger.adjust_shop_inventory(shop.id, product.id, 30, caller=owner_caller)

        assert inventory.current_stock == 30
        row = db.session.query(ShopInventory).filter_by(shop_id=shop.id, product_id=product.id).one()
        assert row.current_stock == 30
        assert row.is_active is True

    def test_negative_delta_on_missing_row_raises(self, owner_caller, shop, product, sinks):
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.adjust_shop_inventory(shop.id, product.id, -5, caller=owner_caller)

        assert exc_info.value.available == 0
        assert db.session.query(ShopInventory).count() == 0

    def test_negative_result_is_not_clamped(self, owner_caller, shop, product, sinks):
        ledger.adjust_shop_inventory(shop.id, product.id, 30, caller=owner_caller)

        with pytest.raises(InsufficientStock):
            ledger.adjust_shop_inventory(shop.id, product.id, -31, caller=owner_caller)

        row = db.session.query(ShopInventory).filter_by(shop_id=shop.id, product_id=product.id).one()
        assert row.current_stock == 30

    def test_count_correction_is_booked_as_delta(self, owner_caller, shop, product, sinks):
        ledger.adjust_shop_inventory(shop.id, product.id, 30, caller=owner_caller)
        ledger.set_shop_inventory_level(shop.id, product.id, 25, caller=owner_caller)

        event = [e for e in sinks.auditor.events if e["action"] == "shop_adjusted"][-1]
        assert event["metadata"]["delta"] == -5
        assert event["metadata"]["reason"] == ledger.REASON_STOCK_COUNT
        assert event["shop_id"] == shop.id

    def test_foreign_shop_owner_forbidden(self, other_owner_caller, shop, product, sinks):
        with pytest.raises(Forbidden):
            ledger.adjust_shop_inventory(shop.id, product.id, 5, caller=other_owner_caller)

    def test_admin_can_adjust_any_shop(self, admin_caller, shop, product, sinks):
        inventory = ledger.adjust_shop_inventory(shop.id, product.id, 40, caller=admin_caller)
        assert inventory.current_stock == 40

    def test_missing_shop(self, admin_caller, product, sinks):
        with pytest.raises(NotFound):
            ledger.adjust_shop_inventory(999, product.id, 5, caller=admin_caller)

    def test_non_integer_delta_rejected(self, admin_caller, shop, product, sinks):
        with pytest.raises(ValidationError):
            ledger.adjust_shop_inventory(shop.id, product.id, 2.5, caller=admin_caller)
