# Overview: Factory product catalogue: CRUD, low-stock listing and guarded deletion.

"""
Product catalogue.

Factory stock (total_stock) is never assigned here directly: initial stock on
create and stock edits on update go through the stock ledger primitives in the
same unit of work, so the negative-stock guard, audit and low-stock trigger
apply exactly as for any other stock mutation.
"""
from __future__ import annotations

from flask import current_app

from ..errors import Conflict, NotFound
from ..extensions import db
from ..models import Product, RestockRequest, ShopInventory
from .concurrency import lock_for_update, run_with_retry
from .notification_service import SideEffects
from .stock_ledger_service import (
    REASON_MANUAL_ADJUSTMENT,
    apply_factory_delta,
    record_stock_change,
)
from . import low_stock_service

REASON_INITIAL_STOCK = "initial_stock"

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "unit_price_cents", "min_stock_level", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise Conflict("SKU already exists.", sku=sku)


def _audit_product(effects: SideEffects, p: Product, action: str, user_id: int | None, message: str, **metadata):
    effects.audit(
        type="product",
        action=action,
        entity="Product",
        entity_id=p.id,
        user_id=user_id,
        metadata={"sku": p.sku, **metadata},
        message=message,
    )


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise NotFound("Product", product_id)
    return p


def list_products(*, include_inactive: bool = False, page: int | None = None, per_page: int | None = None) -> dict:
    """Product listing ordered by name, with optional pagination."""
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_low_stock_products() -> list[Product]:
    """Active products whose factory stock is at or below min_stock_level, lowest stock first."""
    return (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.min_stock_level.isnot(None),
            Product.total_stock <= Product.min_stock_level,
        )
        .order_by(Product.total_stock.asc(), Product.id.asc())
        .all()
    )


def create_product(*, patch: dict, user_id: int | None = None) -> Product:
    """
    Create a product from a validated patch. A non-zero total_stock is booked
    through the ledger as initial stock.

    Raises:
        Conflict: SKU already exists
    """
    initial_stock = patch.get("total_stock") or 0

    def _op():
        _require_unique_sku(patch["sku"])

        p = Product(total_stock=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()

        effects = SideEffects()
        _audit_product(effects, p, "created", user_id, f"Created product sku={p.sku} name={p.name}")

        changes = []
        if initial_stock:
            _, change = apply_factory_delta(
                p.id, initial_stock, reason=REASON_INITIAL_STOCK, actor_user_id=user_id,
            )
            record_stock_change(effects, change)
            changes.append(change)

        db.session.commit()
        return p, effects, changes

    p, effects, changes = run_with_retry(_op)
    effects.dispatch()
    if changes:
        low_stock_service.evaluate_stock_changes(changes)
    current_app.logger.info("Product %s (%s) created by user %s", p.id, p.sku, user_id)
    return p


def update_product(*, product_id: int, patch: dict, user_id: int | None = None) -> Product:
    """
    Update catalogue fields. total_stock in the patch is an absolute edit,
    translated into a ledger delta against the locked current value.

    Raises:
        NotFound, Conflict, InsufficientStock
    """
    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not p:
            raise NotFound("Product", product_id)

        if "sku" in patch and patch["sku"] != p.sku:
            _require_unique_sku(patch["sku"], exclude_id=p.id)

        apply_product_patch(p, patch)
        db.session.flush()

        effects = SideEffects()
        _audit_product(
            effects, p, "updated", user_id,
            f"Updated fields: {', '.join(sorted(patch.keys()))}",
            fields=sorted(patch.keys()),
        )

        changes = []
        if patch.get("total_stock") is not None:
            _, change = apply_factory_delta(
                p.id, target_stock=patch["total_stock"], reason=REASON_MANUAL_ADJUSTMENT, actor_user_id=user_id,
            )
            if change.delta:
                record_stock_change(effects, change)
                changes.append(change)

        db.session.commit()
        return p, effects, changes

    p, effects, changes = run_with_retry(_op)
    effects.dispatch()
    if changes:
        low_stock_service.evaluate_stock_changes(changes)
    return p


def deactivate_product(*, product_id: int, user_id: int | None = None) -> Product:
    """Soft-delete: preserve IDs and historical references."""
    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not p:
            raise NotFound("Product", product_id)

        effects = SideEffects()
        if p.is_active:
            p.is_active = False
            _audit_product(effects, p, "deactivated", user_id, f"Soft-deleted (is_active=false) product sku={p.sku}")
        db.session.commit()
        return p, effects

    p, effects = run_with_retry(_op)
    effects.dispatch()
    return p


def hard_delete_product(*, product_id: int, user_id: int | None = None) -> dict:
    """
    Remove a product row. Blocked while any restock request or shop inventory
    row references it.

    Raises:
        NotFound, Conflict
    """
    p = get_product(product_id)

    request_count = db.session.query(RestockRequest).filter_by(product_id=product_id).count()
    if request_count:
        raise Conflict(
            "Cannot delete product with existing restock requests",
            product_id=product_id,
            count=request_count,
        )
    inventory_count = db.session.query(ShopInventory).filter_by(product_id=product_id).count()
    if inventory_count:
        raise Conflict(
            "Cannot delete product stocked by shops; deactivate it instead",
            product_id=product_id,
            count=inventory_count,
        )

    name, sku = p.name, p.sku
    effects = SideEffects()
    _audit_product(effects, p, "deleted", user_id, f"Deleted product sku={sku} name={name}")
    db.session.delete(p)
    db.session.commit()
    effects.dispatch()

    current_app.logger.info("Product %s (%s) hard-deleted by user %s", product_id, sku, user_id)
    return {
        "message": f"{name} has been successfully deleted",
        "count": db.session.query(Product).count(),
    }
