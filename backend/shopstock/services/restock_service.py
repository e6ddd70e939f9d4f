# Overview: Restock request workflow: creation, approval, rejection, fulfillment and admin overrides.

"""
Restock request workflow engine.

LIFECYCLE:
1. waiting_for_approval: created by a shop manager, an admin, or the low-stock trigger
2. approved_pending: approved; factory stock checked, nothing moved
3. fulfilled: factory stock -n and shop inventory +n in one transaction
4. rejected: closed, no stock movement

Every transition is one unit of work:
load (row-locked) -> authorize -> guard -> stock legs -> status/timestamps
-> commit -> dispatch side effects -> low-stock evaluation.

Stock guards read the factory counter at transition time. If either
fulfillment leg fails the whole unit of work is rolled back and the request
keeps its previous status.
"""
from __future__ import annotations

from flask import current_app

from ..errors import (
    Forbidden,
    InsufficientStock,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import (
    Product,
    Shop,
    RestockRequest,
    RestockRequestType,
    RestockStatus,
    ROLE_ADMIN,
)
from ..models.restock import status_values
from shopstock.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .notification_service import SideEffects
from .session_service import CallerContext
from .shop_access_service import get_shop_manager_ids
from .stock_ledger_service import (
    REASON_RESTOCK_FULFILLMENT,
    apply_factory_delta,
    apply_shop_delta,
    record_stock_change,
)
from . import low_stock_service


SCOPE_ALL = "ALL"

EVENT_CREATED = "created"
EVENT_APPROVED = "approved"
EVENT_REJECTED = "rejected"
EVENT_FULFILLED = "fulfilled"
EVENT_STATUS_UPDATED = "status_updated"
EVENT_HIDDEN = "hidden"


# =============================================================================
# Helpers
# =============================================================================

def _require_shop_access(caller: CallerContext, shop_id: int) -> None:
    if not caller.can_manage(shop_id):
        raise Forbidden(
            f"User {caller.user_id} does not manage shop {shop_id}",
            shop_id=shop_id,
            role=caller.role,
        )


def _require_admin(caller: CallerContext, action: str) -> None:
    if not caller.is_admin:
        raise Forbidden(f"Only Admin users can {action}", role=caller.role)


def _load_request(request_id: int) -> RestockRequest:
    request = lock_for_update(db.session.query(RestockRequest).filter_by(id=request_id)).first()
    if not request:
        raise NotFound("RestockRequest", request_id)
    return request


def _load_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFound("Product", product_id)
    return product


def _check_factory_stock(product: Product, requested_amount: int) -> None:
    if product.total_stock < requested_amount:
        raise InsufficientStock(
            available=product.total_stock,
            requested=requested_amount,
            product_id=product.id,
        )


def _parse_amount(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("requested_amount must be an integer", field="requested_amount")
    if value <= 0:
        raise ValidationError("requested_amount must be greater than 0", field="requested_amount")
    return value


def _parse_request_type(value) -> str:
    try:
        return RestockRequestType(str(value).strip().upper()).value
    except ValueError:
        raise ValidationError(
            f"Invalid request_type: {value}",
            field="request_type",
            allowed=[t.value for t in RestockRequestType],
        ) from None


def _parse_status(value) -> RestockStatus:
    try:
        return RestockStatus.parse(value)
    except ValueError:
        raise ValidationError(
            f"Invalid status: {value}",
            field="status",
            allowed=[s.value for s in RestockStatus],
        ) from None


def _append_notes(request: RestockRequest, notes: str | None) -> None:
    # Reviewer notes go below the requester's, never over them
    if not notes:
        return
    request.notes = f"{request.notes}\n{notes}" if request.notes else notes


# =============================================================================
# Side effects
# =============================================================================

def _emit_created(effects: SideEffects, request: RestockRequest, caller: CallerContext) -> None:
    product = request.product
    shop = request.shop
    message = (
        f"New restock request: {request.requested_amount} units of {product.name} "
        f"for {shop.name} (by {caller.display_name})"
    )
    data = {
        "event": EVENT_CREATED,
        "restock_request_id": request.id,
        "shop_id": request.shop_id,
        "product_id": request.product_id,
        "requested_amount": request.requested_amount,
    }
    for user_id in get_shop_manager_ids(request.shop_id):
        if user_id != caller.user_id:
            effects.notify(user_id, type="RESTOCK_REQUEST", message=message, data=data)
    effects.notify(ROLE_ADMIN, type="RESTOCK_REQUEST", message=message, data=data)
    effects.audit(
        type="restock",
        action=EVENT_CREATED,
        entity="RestockRequest",
        entity_id=request.id,
        user_id=caller.user_id,
        shop_id=request.shop_id,
        metadata={
            "new_status": request.status,
            "requested_amount": request.requested_amount,
            "request_type": request.request_type,
            "product_id": request.product_id,
        },
        message=message,
    )
    effects.broadcast(f"restock_request.{EVENT_CREATED}", request.to_dict())


def _emit_status_change(
    effects: SideEffects,
    request: RestockRequest,
    caller: CallerContext,
    *,
    event: str,
    previous_status: str,
    stock_changes=(),
) -> None:
    product = request.product
    shop = request.shop
    message = (
        f"Restock request #{request.id} ({request.requested_amount} x {product.name} for {shop.name}) "
        f"{previous_status} -> {request.status} by {caller.display_name}"
    )
    data = {
        "event": event,
        "restock_request_id": request.id,
        "shop_id": request.shop_id,
        "product_id": request.product_id,
        "previous_status": previous_status,
        "new_status": request.status,
    }
    for user_id in get_shop_manager_ids(request.shop_id):
        effects.notify(user_id, type="RESTOCK_STATUS", message=message, data=data)
    if not caller.is_admin:
        effects.notify(ROLE_ADMIN, type="RESTOCK_STATUS", message=message, data=data)

    effects.audit(
        type="restock",
        action=event,
        entity="RestockRequest",
        entity_id=request.id,
        user_id=caller.user_id,
        shop_id=request.shop_id,
        metadata={
            "previous_status": previous_status,
            "new_status": request.status,
            "requested_amount": request.requested_amount,
            "product_id": request.product_id,
            "hidden": request.hidden,
            "stock_changes": [change.to_event() for change in stock_changes],
        },
        message=message,
    )
    effects.broadcast(f"restock_request.{event}", request.to_dict())
    for change in stock_changes:
        record_stock_change(effects, change)


# =============================================================================
# Creation
# =============================================================================

def create_restock_request(
    caller: CallerContext,
    shop_id: int,
    product_id: int,
    requested_amount: int,
    request_type: str = RestockRequestType.RESTOCK.value,
    notes: str | None = None,
) -> RestockRequest:
    """
    Create a request in waiting_for_approval.

    Raises:
        ValidationError: non-positive amount, unknown type, inactive shop/product
        NotFound: shop or product missing
        Forbidden: caller neither Admin nor a manager of the shop
    """
    amount = _parse_amount(requested_amount)
    request_type = _parse_request_type(request_type)

    def _op():
        shop = db.session.get(Shop, shop_id)
        if not shop:
            raise NotFound("Shop", shop_id)
        _require_shop_access(caller, shop_id)
        if not shop.is_active:
            raise ValidationError(f"Shop {shop_id} is not active", shop_id=shop_id)

        product = db.session.get(Product, product_id)
        if not product:
            raise NotFound("Product", product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product_id} is not active", product_id=product_id)

        request = RestockRequest(
            shop_id=shop_id,
            product_id=product_id,
            requested_amount=amount,
            request_type=request_type,
            status=RestockStatus.WAITING_FOR_APPROVAL.value,
            notes=notes,
            created_by_user_id=caller.user_id,
        )
        db.session.add(request)
        db.session.flush()

        effects = SideEffects()
        _emit_created(effects, request, caller)

        db.session.commit()
        return request, effects

    request, effects = run_with_retry(_op)
    effects.dispatch()
    current_app.logger.info(
        "Restock request %s created for shop %s product %s (%s units) by user %s",
        request.id, shop_id, product_id, amount, caller.user_id,
    )
    return request


# =============================================================================
# Transitions
# =============================================================================

def approve_restock_request(caller: CallerContext, request_id: int) -> RestockRequest:
    """
    waiting_for_approval -> approved_pending.

    Checks current factory stock covers the amount; moves nothing.
    """
    def _op():
        request = _load_request(request_id)
        _require_shop_access(caller, request.shop_id)

        current = request.status_enum
        if current != RestockStatus.WAITING_FOR_APPROVAL:
            raise InvalidStateTransition(current.value, RestockStatus.APPROVED_PENDING.value)

        product = _load_product(request.product_id)
        _check_factory_stock(product, request.requested_amount)

        request.status = RestockStatus.APPROVED_PENDING.value
        request.approved_at = utcnow()
        request.approved_by_user_id = caller.user_id
        db.session.flush()

        effects = SideEffects()
        _emit_status_change(effects, request, caller, event=EVENT_APPROVED, previous_status=current.value)

        db.session.commit()
        return request, effects

    request, effects = run_with_retry(_op)
    effects.dispatch()
    current_app.logger.info("Restock request %s approved by user %s", request_id, caller.user_id)
    return request


def reject_restock_request(caller: CallerContext, request_id: int, notes: str | None = None) -> RestockRequest:
    """waiting_for_approval -> rejected. No stock movement."""
    def _op():
        request = _load_request(request_id)
        _require_shop_access(caller, request.shop_id)

        current = request.status_enum
        if current != RestockStatus.WAITING_FOR_APPROVAL:
            raise InvalidStateTransition(current.value, RestockStatus.REJECTED.value)

        request.status = RestockStatus.REJECTED.value
        request.rejected_at = utcnow()
        request.rejected_by_user_id = caller.user_id
        _append_notes(request, notes)
        db.session.flush()

        effects = SideEffects()
        _emit_status_change(effects, request, caller, event=EVENT_REJECTED, previous_status=current.value)

        db.session.commit()
        return request, effects

    request, effects = run_with_retry(_op)
    effects.dispatch()
    current_app.logger.info("Restock request %s rejected by user %s", request_id, caller.user_id)
    return request


def _fulfill_locked(request: RestockRequest, caller: CallerContext) -> list:
    """
    Apply both stock legs and mark the request fulfilled. Returns the stock changes.

    Must run inside the caller's unit of work; nothing is committed here.
    """
    _, factory_change = apply_factory_delta(
        request.product_id,
        -request.requested_amount,
        reason=REASON_RESTOCK_FULFILLMENT,
        actor_user_id=caller.user_id,
        metadata={"restock_request_id": request.id},
    )
    _, shop_change = apply_shop_delta(
        request.shop_id,
        request.product_id,
        request.requested_amount,
        reason=REASON_RESTOCK_FULFILLMENT,
        actor_user_id=caller.user_id,
        metadata={"restock_request_id": request.id},
    )

    now = utcnow()
    if request.approved_at is None:
        request.approved_at = now
        request.approved_by_user_id = caller.user_id
    request.status = RestockStatus.FULFILLED.value
    request.fulfilled_at = now
    request.fulfilled_by_user_id = caller.user_id
    db.session.flush()

    return [factory_change, shop_change]


def _finish(request, effects, changes, message, *args):
    effects.dispatch()
    if changes:
        low_stock_service.evaluate_stock_changes(changes)
    current_app.logger.info(message, *args)
    return request


def fulfill_restock_request(caller: CallerContext, request_id: int) -> RestockRequest:
    """
    approved_pending -> fulfilled.

    Factory stock is re-checked under the product lock. Fulfilling an
    already-fulfilled request raises InvalidStateTransition and moves nothing.

    Raises:
        InsufficientStock: factory stock below the requested amount
        ConcurrentModification: lost the race more times than the retry budget
    """
    def _op():
        request = _load_request(request_id)
        _require_shop_access(caller, request.shop_id)

        current = request.status_enum
        if current != RestockStatus.APPROVED_PENDING:
            raise InvalidStateTransition(current.value, RestockStatus.FULFILLED.value)

        changes = _fulfill_locked(request, caller)

        effects = SideEffects()
        _emit_status_change(
            effects, request, caller,
            event=EVENT_FULFILLED, previous_status=current.value, stock_changes=changes,
        )

        db.session.commit()
        return request, effects, changes

    request, effects, changes = run_with_retry(_op)
    return _finish(
        request, effects, changes,
        "Restock request %s fulfilled by user %s", request_id, caller.user_id,
    )


def fulfill_restock_request_for(caller: CallerContext, shop_id: int, product_id: int) -> RestockRequest:
    """Fulfill the most recent approved_pending request for (shop, product)."""
    _require_shop_access(caller, shop_id)

    base = db.session.query(RestockRequest).filter(
        RestockRequest.shop_id == shop_id,
        RestockRequest.product_id == product_id,
    )
    candidate = (
        base.filter(RestockRequest.status.in_(status_values([RestockStatus.APPROVED_PENDING])))
        .order_by(RestockRequest.created_at.desc(), RestockRequest.id.desc())
        .first()
    )
    if candidate is None:
        waiting = base.filter(
            RestockRequest.status.in_(status_values([RestockStatus.WAITING_FOR_APPROVAL]))
        ).first()
        if waiting is not None:
            raise InvalidStateTransition(
                RestockStatus.WAITING_FOR_APPROVAL.value,
                RestockStatus.FULFILLED.value,
                message=f"Restock request {waiting.id} for shop {shop_id} product {product_id} "
                        f"must be approved before fulfillment",
            )
        raise NotFound(
            "RestockRequest",
            message=f"No approved restock request for shop {shop_id} product {product_id}",
        )

    return fulfill_restock_request(caller, candidate.id)


def update_restock_request_status(
    caller: CallerContext,
    request_id: int,
    target_status,
    notes: str | None = None,
) -> RestockRequest:
    """
    Admin override from any non-terminal status.

    approved_pending re-checks factory stock; fulfilled applies the same stock
    legs as fulfill; waiting_for_approval clears the approval. Legacy status
    names are accepted.
    """
    _require_admin(caller, "override restock request status")
    target = _parse_status(target_status)

    def _op():
        request = _load_request(request_id)

        current = request.status_enum
        if current.is_terminal or target == current:
            raise InvalidStateTransition(current.value, target.value)

        now = utcnow()
        changes = []
        if target == RestockStatus.APPROVED_PENDING:
            _check_factory_stock(_load_product(request.product_id), request.requested_amount)
            request.approved_at = now
            request.approved_by_user_id = caller.user_id
            request.status = target.value
        elif target == RestockStatus.FULFILLED:
            changes = _fulfill_locked(request, caller)
        elif target == RestockStatus.REJECTED:
            request.rejected_at = now
            request.rejected_by_user_id = caller.user_id
            request.status = target.value
        else:
            request.approved_at = None
            request.approved_by_user_id = None
            request.status = target.value

        _append_notes(request, notes)
        db.session.flush()

        effects = SideEffects()
        _emit_status_change(
            effects, request, caller,
            event=EVENT_STATUS_UPDATED, previous_status=current.value, stock_changes=changes,
        )

        db.session.commit()
        return request, effects, changes

    request, effects, changes = run_with_retry(_op)
    return _finish(
        request, effects, changes,
        "Restock request %s status set to %s by admin %s", request_id, target.value, caller.user_id,
    )


def hide_restock_request(caller: CallerContext, request_id: int) -> RestockRequest:
    """Soft delete. Status is untouched; hiding twice is a no-op."""
    _require_admin(caller, "hide restock requests")

    def _op():
        request = _load_request(request_id)
        effects = SideEffects()
        if request.hidden:
            return request, effects

        request.hidden = True
        db.session.flush()
        _emit_status_change(effects, request, caller, event=EVENT_HIDDEN, previous_status=request.status)

        db.session.commit()
        return request, effects

    request, effects = run_with_retry(_op)
    effects.dispatch()
    current_app.logger.info("Restock request %s hidden by admin %s", request_id, caller.user_id)
    return request


# =============================================================================
# Queries
# =============================================================================

def get_restock_request(caller: CallerContext, request_id: int) -> RestockRequest:
    request = db.session.get(RestockRequest, request_id)
    if not request:
        raise NotFound("RestockRequest", request_id)
    _require_shop_access(caller, request.shop_id)
    return request


def list_restock_requests(
    caller: CallerContext,
    scope=SCOPE_ALL,
    *,
    include_hidden: bool = False,
    status=None,
) -> list[RestockRequest]:
    """
    Requests for one shop, or for every shop when scope is "ALL" (Admin only).
    Newest first; hidden requests only with include_hidden.
    """
    query = db.session.query(RestockRequest)

    if scope == SCOPE_ALL:
        _require_admin(caller, "list restock requests across all shops")
    else:
        shop_id = int(scope)
        if not db.session.get(Shop, shop_id):
            raise NotFound("Shop", shop_id)
        _require_shop_access(caller, shop_id)
        query = query.filter(RestockRequest.shop_id == shop_id)

    if not include_hidden:
        query = query.filter(RestockRequest.hidden.is_(False))
    if status:
        query = query.filter(RestockRequest.status.in_(status_values([_parse_status(status)])))

    return query.order_by(RestockRequest.created_at.desc(), RestockRequest.id.desc()).all()
