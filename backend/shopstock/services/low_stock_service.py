# Overview: Low-stock alerts and automatic restock request generation.

"""
Low-stock trigger.

Runs after a stock mutation has committed, in its own unit of work. A failure
here is logged and never reaches back into the committed mutation.

Thresholds:
- shop:    ShopInventory.min_stock_per_item, else Product.min_stock_level
- factory: Product.min_stock_level

A breach is value <= threshold with alerts enabled.

Auto-generation (shop breaches only): one waiting_for_approval request of
min_stock_level * LOW_STOCK_AUTO_MULTIPLIER, suppressed while any open
(non-terminal) request exists for the same (shop, product).
"""
from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import (
    Product,
    ShopInventory,
    RestockRequest,
    RestockRequestType,
    RestockStatus,
    OPEN_STATUSES,
    ROLE_ADMIN,
)
from ..models.restock import status_values
from .concurrency import lock_for_update, run_with_retry
from .notification_service import SideEffects, PRIORITY_HIGH
from .shop_access_service import get_shop_manager_ids
from shopstock.time_utils import utcnow


AUTO_GENERATED_NOTE = "Auto-generated due to low stock"


def evaluate_stock_changes(changes: Iterable) -> list[RestockRequest]:
    """
    Evaluate committed stock changes. Returns restock requests auto-generated
    for shop breaches.
    """
    created: list[RestockRequest] = []
    for change in changes:
        try:
            if change.shop_id is None:
                evaluate_factory_stock(change.product_id)
            else:
                request = evaluate_shop_inventory(change.shop_id, change.product_id)
                if request is not None:
                    created.append(request)
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "Low-stock evaluation failed for product %s (shop %s)", change.product_id, change.shop_id
            )
    return created


def evaluate_factory_stock(product_id: int) -> bool:
    """Alert all admins when factory stock is at or below the product's level. Returns True on breach."""
    product = db.session.get(Product, product_id)
    if not product or not product.is_active or not product.is_low_stock:
        return False

    effects = SideEffects()
    payload = {
        "scope": "factory",
        "product_id": product.id,
        "sku": product.sku,
        "current_stock": product.total_stock,
        "threshold": product.min_stock_level,
    }
    effects.notify(
        ROLE_ADMIN,
        type="LOW_STOCK",
        priority=PRIORITY_HIGH,
        message=(
            f"Low factory stock: {product.name} has only {product.total_stock} units remaining "
            f"(min: {product.min_stock_level})"
        ),
        data=payload,
    )
    effects.broadcast("stock.low", payload)
    effects.dispatch()
    return True


def evaluate_shop_inventory(shop_id: int, product_id: int) -> RestockRequest | None:
    """Alert the shop's managers on breach and auto-generate a restock request if none is open."""

    def _op():
        inventory = lock_for_update(
            db.session.query(ShopInventory).filter_by(shop_id=shop_id, product_id=product_id)
        ).first()
        if inventory is None or not inventory.is_active:
            return None, None
        if inventory.low_stock_alerts_enabled is False:
            return None, None

        threshold = inventory.effective_threshold()
        if threshold is None or inventory.current_stock > threshold:
            return None, None

        product = inventory.product
        shop = inventory.shop
        manager_ids = get_shop_manager_ids(shop_id)

        effects = SideEffects()
        payload = {
            "scope": "shop",
            "shop_id": shop_id,
            "product_id": product_id,
            "current_stock": inventory.current_stock,
            "threshold": threshold,
        }
        alert = (
            f"Low stock alert: {product.name} in {shop.name} has only "
            f"{inventory.current_stock} units remaining (min: {threshold})"
        )
        for user_id in manager_ids:
            effects.notify(user_id, type="LOW_STOCK", priority=PRIORITY_HIGH, message=alert, data=payload)
        effects.broadcast("stock.low", payload)

        # Bumps version_id: a concurrent evaluation of the same pair fails its
        # flush with StaleDataError and re-runs after this one commits.
        inventory.updated_at = utcnow()
        db.session.flush()

        existing = (
            db.session.query(RestockRequest.id)
            .filter(
                RestockRequest.shop_id == shop_id,
                RestockRequest.product_id == product_id,
                RestockRequest.status.in_(status_values(OPEN_STATUSES)),
            )
            .first()
        )
        if existing is not None:
            db.session.commit()
            return None, effects

        multiplier = current_app.config.get("LOW_STOCK_AUTO_MULTIPLIER", 2)
        base_level = product.min_stock_level if product.min_stock_level is not None else threshold
        amount = base_level * multiplier
        if amount <= 0:
            current_app.logger.info(
                "Skipping auto restock for shop %s product %s: computed amount %s", shop_id, product_id, amount
            )
            db.session.commit()
            return None, effects

        request = RestockRequest(
            shop_id=shop_id,
            product_id=product_id,
            requested_amount=amount,
            request_type=RestockRequestType.RESTOCK.value,
            status=RestockStatus.WAITING_FOR_APPROVAL.value,
            notes=AUTO_GENERATED_NOTE,
            auto_generated=True,
        )
        db.session.add(request)
        db.session.flush()

        message = (
            f"Auto restock request: {amount} units of {product.name} requested for {shop.name} "
            f"due to low stock ({inventory.current_stock}/{threshold})"
        )
        data = {"event": "auto_generated", "restock_request_id": request.id, **payload}
        for user_id in manager_ids:
            effects.notify(user_id, type="RESTOCK_REQUEST", message=message, data=data)
        effects.notify(ROLE_ADMIN, type="RESTOCK_REQUEST", message=f"{message} (shop: {shop.name})", data=data)
        effects.audit(
            type="restock",
            action="auto_generated",
            entity="RestockRequest",
            entity_id=request.id,
            user_id=None,
            shop_id=shop_id,
            metadata={"requested_amount": amount, "product_id": product_id, "current_stock": inventory.current_stock,
                      "threshold": threshold},
            message=message,
        )
        effects.broadcast("restock_request.created", request.to_dict())

        db.session.commit()
        return request, effects

    request, effects = run_with_retry(_op)
    if effects is not None:
        effects.dispatch()
    if request is not None:
        current_app.logger.info(
            "Auto-generated restock request %s for product %s in shop %s", request.id, product_id, shop_id
        )
    return request
