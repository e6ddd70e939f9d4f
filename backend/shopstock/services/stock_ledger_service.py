# Overview: The only sanctioned write path for factory stock and shop inventory.

"""
Stock Ledger Invariants (authoritative)

Counters:
- Product.total_stock is factory stock; ShopInventory.current_stock is per-shop stock.
- Both are >= 0 at all times (service guard + DB check constraint).

Write path:
- All mutations are deltas. "Set to N" requests are translated to a delta
  against the value read under the row lock, so the negative-stock guard,
  audit and low-stock trigger apply the same way to both.
- A delta that would drive a counter below zero raises InsufficientStock
  before anything is flushed. Nothing is ever clamped.

Transactions:
- apply_factory_delta / apply_shop_delta run inside the caller's unit of
  work (flush, no commit) so a fulfillment can move both counters atomically.
- adjust_* / set_* are standalone units of work: they commit, dispatch side
  effects, then run the low-stock trigger.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import Forbidden, InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Product, Shop, ShopInventory
from shopstock.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .notification_service import SideEffects
from .session_service import CallerContext
from . import low_stock_service


SCOPE_FACTORY = "factory"
SCOPE_SHOP = "shop"

REASON_MANUAL_ADJUSTMENT = "manual_adjustment"
REASON_STOCK_COUNT = "stock_count"
REASON_RESTOCK_FULFILLMENT = "restock_fulfillment"


@dataclass(frozen=True)
class StockChange:
    scope: str
    product_id: int
    shop_id: int | None
    previous_stock: int
    new_stock: int
    delta: int
    reason: str
    actor_user_id: int | None = None
    metadata: dict = field(default_factory=dict)
    inventory_id: int | None = None

    def to_event(self) -> dict:
        return {
            "scope": self.scope,
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "delta": self.delta,
            "reason": self.reason,
            "actor_user_id": self.actor_user_id,
            "metadata": self.metadata,
            "inventory_id": self.inventory_id,
        }


def _require_int(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)
    return value


def apply_factory_delta(
    product_id: int,
    delta: int | None = None,
    *,
    target_stock: int | None = None,
    reason: str,
    actor_user_id: int | None = None,
    metadata: dict | None = None,
) -> tuple[Product, StockChange]:
    """
    Move factory stock by delta (or to target_stock) inside the current transaction.

    Raises:
        NotFound: product missing
        InsufficientStock: result would be negative
    """
    if (delta is None) == (target_stock is None):
        raise ValidationError("Provide exactly one of delta or target_stock")

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFound("Product", product_id)

    previous = product.total_stock
    if target_stock is not None:
        if _require_int(target_stock, "total_stock") < 0:
            raise ValidationError("total_stock must be >= 0", field="total_stock")
        delta = target_stock - previous
    delta = _require_int(delta, "delta")

    new_stock = previous + delta
    if new_stock < 0:
        raise InsufficientStock(available=previous, requested=-delta, product_id=product_id)

    product.total_stock = new_stock
    db.session.flush()

    return product, StockChange(
        scope=SCOPE_FACTORY,
        product_id=product_id,
        shop_id=None,
        previous_stock=previous,
        new_stock=new_stock,
        delta=delta,
        reason=reason,
        actor_user_id=actor_user_id,
        metadata=metadata or {},
    )


def apply_shop_delta(
    shop_id: int,
    product_id: int,
    delta: int | None = None,
    *,
    target_stock: int | None = None,
    reason: str,
    actor_user_id: int | None = None,
    metadata: dict | None = None,
) -> tuple[ShopInventory, StockChange]:
    """
    Move a shop's inventory of a product inside the current transaction.

    The (shop, product) row is created on first use; a soft-deleted row is
    reactivated when stock arrives.
    """
    if (delta is None) == (target_stock is None):
        raise ValidationError("Provide exactly one of delta or target_stock")

    inventory = lock_for_update(
        db.session.query(ShopInventory).filter_by(shop_id=shop_id, product_id=product_id)
    ).first()

    if inventory is None:
        if not db.session.get(Shop, shop_id):
            raise NotFound("Shop", shop_id)
        if not db.session.get(Product, product_id):
            raise NotFound("Product", product_id)
        inventory = ShopInventory(shop_id=shop_id, product_id=product_id, current_stock=0)
        db.session.add(inventory)

    previous = inventory.current_stock or 0
    if target_stock is not None:
        if _require_int(target_stock, "current_stock") < 0:
            raise ValidationError("current_stock must be >= 0", field="current_stock")
        delta = target_stock - previous
    delta = _require_int(delta, "delta")

    new_stock = previous + delta
    if new_stock < 0:
        raise InsufficientStock(
            available=previous, requested=-delta, product_id=product_id, shop_id=shop_id
        )

    inventory.current_stock = new_stock
    if delta > 0:
        inventory.is_active = True
    if delta > 0 and reason == REASON_RESTOCK_FULFILLMENT:
        inventory.last_restock_date = utcnow()
    db.session.flush()

    return inventory, StockChange(
        scope=SCOPE_SHOP,
        product_id=product_id,
        shop_id=shop_id,
        previous_stock=previous,
        new_stock=new_stock,
        delta=delta,
        reason=reason,
        actor_user_id=actor_user_id,
        metadata=metadata or {},
        inventory_id=inventory.id,
    )


def record_stock_change(effects: SideEffects, change: StockChange) -> None:
    """Queue the audit entry and live-update event for a committed stock change."""
    if change.scope == SCOPE_FACTORY:
        entity, entity_id = "Product", change.product_id
        message = (
            f"Factory stock for product {change.product_id} moved "
            f"{change.previous_stock} -> {change.new_stock} ({change.reason})"
        )
    else:
        entity, entity_id = "ShopInventory", change.inventory_id
        message = (
            f"Shop {change.shop_id} stock for product {change.product_id} moved "
            f"{change.previous_stock} -> {change.new_stock} ({change.reason})"
        )

    effects.audit(
        type="stock",
        action=f"{change.scope}_adjusted",
        entity=entity,
        entity_id=entity_id,
        user_id=change.actor_user_id,
        shop_id=change.shop_id,
        metadata=change.to_event(),
        message=message,
    )
    effects.broadcast("stock.updated", change.to_event())


def _commit_change(apply, **kwargs):
    def _op():
        effects = SideEffects()
        row, change = apply(**kwargs)
        if change.delta:
            record_stock_change(effects, change)
        db.session.commit()
        return row, change, effects

    row, change, effects = run_with_retry(_op)
    if change.delta:
        effects.dispatch()
        low_stock_service.evaluate_stock_changes([change])
        current_app.logger.info(
            "%s stock for product %s: %s -> %s (%s)",
            change.scope, change.product_id, change.previous_stock, change.new_stock, change.reason,
        )
    return row


def _require_factory_admin(caller: CallerContext | None) -> None:
    if caller is not None and not caller.is_admin:
        raise Forbidden("Only Admin users can change factory stock", role=caller.role)


def adjust_factory_stock(
    product_id: int,
    delta: int,
    *,
    reason: str = REASON_MANUAL_ADJUSTMENT,
    caller: CallerContext | None = None,
    metadata: dict | None = None,
) -> Product:
    _require_factory_admin(caller)
    return _commit_change(
        apply_factory_delta,
        product_id=product_id,
        delta=delta,
        reason=reason,
        actor_user_id=caller.user_id if caller else None,
        metadata=metadata,
    )


def set_factory_stock(
    product_id: int,
    total_stock: int,
    *,
    reason: str = REASON_MANUAL_ADJUSTMENT,
    caller: CallerContext | None = None,
    metadata: dict | None = None,
) -> Product:
    """Absolute factory stock edit, applied as a delta against the locked current value."""
    _require_factory_admin(caller)
    return _commit_change(
        apply_factory_delta,
        product_id=product_id,
        target_stock=total_stock,
        reason=reason,
        actor_user_id=caller.user_id if caller else None,
        metadata=metadata,
    )


def adjust_shop_inventory(
    shop_id: int,
    product_id: int,
    delta: int,
    *,
    reason: str = REASON_MANUAL_ADJUSTMENT,
    caller: CallerContext | None = None,
    metadata: dict | None = None,
) -> ShopInventory:
    _require_shop_access(caller, shop_id)
    return _commit_change(
        apply_shop_delta,
        shop_id=shop_id,
        product_id=product_id,
        delta=delta,
        reason=reason,
        actor_user_id=caller.user_id if caller else None,
        metadata=metadata,
    )


def set_shop_inventory_level(
    shop_id: int,
    product_id: int,
    current_stock: int,
    *,
    reason: str = REASON_STOCK_COUNT,
    caller: CallerContext | None = None,
    metadata: dict | None = None,
) -> ShopInventory:
    """Physical count correction for a shop, applied as a delta."""
    _require_shop_access(caller, shop_id)
    return _commit_change(
        apply_shop_delta,
        shop_id=shop_id,
        product_id=product_id,
        target_stock=current_stock,
        reason=reason,
        actor_user_id=caller.user_id if caller else None,
        metadata=metadata,
    )


def _require_shop_access(caller: CallerContext | None, shop_id: int) -> None:
    if caller is not None and not caller.can_manage(shop_id):
        raise Forbidden(f"Access denied to shop {shop_id}", shop_id=shop_id)
