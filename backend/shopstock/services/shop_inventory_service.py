from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import Forbidden, NotFound
from ..extensions import db
from ..models import Product, Shop, ShopInventory
from .concurrency import lock_for_update, run_with_retry
from .notification_service import SideEffects
from .session_service import CallerContext
from .stock_ledger_service import REASON_STOCK_COUNT, apply_shop_delta, record_stock_change
from . import low_stock_service

INVENTORY_SETTING_FIELDS = {"min_stock_per_item", "low_stock_alerts_enabled", "is_active"}


def _require_shop(caller: CallerContext, shop_id: int) -> Shop:
    shop = db.session.get(Shop, shop_id)
    if not shop:
        raise NotFound("Shop", shop_id)
    if not caller.can_manage(shop_id):
        raise Forbidden(f"Access denied to shop {shop_id}", shop_id=shop_id)
    return shop


def list_shop_inventory(caller: CallerContext, shop_id: int, *, include_inactive: bool = False) -> list[dict]:
    """Inventory rows for a shop ordered by product name, each with its product embedded."""
    _require_shop(caller, shop_id)

    query = (
        db.session.query(ShopInventory)
        .join(Product, ShopInventory.product_id == Product.id)
        .filter(ShopInventory.shop_id == shop_id)
    )
    if not include_inactive:
        query = query.filter(ShopInventory.is_active.is_(True))

    rows = query.order_by(Product.name.asc(), ShopInventory.id.asc()).all()
    return [{**row.to_dict(), "product": row.product.to_dict()} for row in rows]


def list_low_stock_inventory(caller: CallerContext, shop_id: int | None = None) -> list[dict]:
    """
    Active shop inventory rows at or below their effective threshold
    (min_stock_per_item, else Product.min_stock_level), lowest stock first,
    then by shop name.

    Admins see every shop unless shop_id is given; shop owners see the shops
    they manage.
    """
    if shop_id is not None:
        _require_shop(caller, shop_id)
        shop_ids = [shop_id]
    elif caller.is_admin:
        shop_ids = None
    else:
        shop_ids = sorted(caller.managed_shop_ids)
        if not shop_ids:
            return []

    threshold = func.coalesce(ShopInventory.min_stock_per_item, Product.min_stock_level)
    query = (
        db.session.query(ShopInventory)
        .join(Product, ShopInventory.product_id == Product.id)
        .join(Shop, ShopInventory.shop_id == Shop.id)
        .filter(
            ShopInventory.is_active.is_(True),
            Product.is_active.is_(True),
            threshold.isnot(None),
            ShopInventory.current_stock <= threshold,
        )
    )
    if shop_ids is not None:
        query = query.filter(ShopInventory.shop_id.in_(shop_ids))

    rows = query.order_by(ShopInventory.current_stock.asc(), Shop.name.asc(), ShopInventory.id.asc()).all()
    return [
        {**row.to_dict(), "shop": row.shop.to_dict(), "product": row.product.to_dict()}
        for row in rows
    ]


def update_shop_inventory(caller: CallerContext, shop_id: int, product_id: int, patch: dict) -> ShopInventory:
    """
    Update a shop's inventory row for a product.

    Settings (threshold override, alert toggle, is_active) are written directly.
    current_stock is a physical count, booked as a ledger delta. The row is
    created if the pair has never been stocked. Low stock is re-evaluated
    afterwards.
    """
    _require_shop(caller, shop_id)

    def _op():
        effects = SideEffects()
        changes = []

        if patch.get("current_stock") is not None:
            inventory, change = apply_shop_delta(
                shop_id,
                product_id,
                target_stock=patch["current_stock"],
                reason=REASON_STOCK_COUNT,
                actor_user_id=caller.user_id,
            )
            if change.delta:
                record_stock_change(effects, change)
                changes.append(change)
        else:
            inventory = lock_for_update(
                db.session.query(ShopInventory).filter_by(shop_id=shop_id, product_id=product_id)
            ).first()
            if inventory is None:
                if not db.session.get(Product, product_id):
                    raise NotFound("Product", product_id)
                inventory = ShopInventory(shop_id=shop_id, product_id=product_id, current_stock=0)
                db.session.add(inventory)

        settings = {k: v for k, v in patch.items() if k in INVENTORY_SETTING_FIELDS}
        for k, v in settings.items():
            setattr(inventory, k, v)
        db.session.flush()

        if settings:
            effects.audit(
                type="stock",
                action="shop_inventory_settings_updated",
                entity="ShopInventory",
                entity_id=inventory.id,
                user_id=caller.user_id,
                shop_id=shop_id,
                metadata={"product_id": product_id, **settings},
                message=f"Shop {shop_id} inventory settings for product {product_id} updated",
            )

        db.session.commit()
        return inventory, effects, changes

    inventory, effects, changes = run_with_retry(_op)
    effects.dispatch()

    if changes:
        low_stock_service.evaluate_stock_changes(changes)
    elif {"min_stock_per_item", "low_stock_alerts_enabled"} & patch.keys():
        low_stock_service.evaluate_shop_inventory(shop_id, product_id)

    current_app.logger.info(
        "Shop %s inventory for product %s updated by user %s: %s",
        shop_id, product_id, caller.user_id, sorted(patch.keys()),
    )
    return inventory


def remove_product_from_shop(caller: CallerContext, shop_id: int, product_id: int) -> ShopInventory:
    """Soft delete: the row stays, is_active=False. Stock is untouched."""
    _require_shop(caller, shop_id)

    def _op():
        inventory = lock_for_update(
            db.session.query(ShopInventory).filter_by(shop_id=shop_id, product_id=product_id)
        ).first()
        if not inventory:
            raise NotFound("ShopInventory", message=f"Product {product_id} is not stocked by shop {shop_id}")

        effects = SideEffects()
        if inventory.is_active:
            inventory.is_active = False
            db.session.flush()
            effects.audit(
                type="stock",
                action="removed_from_shop",
                entity="ShopInventory",
                entity_id=inventory.id,
                user_id=caller.user_id,
                shop_id=shop_id,
                metadata={"product_id": product_id, "current_stock": inventory.current_stock},
                message=f"Product {product_id} removed from shop {shop_id}",
            )
            effects.broadcast("shop_inventory.removed", inventory.to_dict())

        db.session.commit()
        return inventory, effects

    inventory, effects = run_with_retry(_op)
    effects.dispatch()

    current_app.logger.info("Product %s removed from shop %s by user %s", product_id, shop_id, caller.user_id)
    return inventory
