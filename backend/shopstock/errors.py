# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class RestockError(Exception):
    """
    Base class for every error a restock/stock operation returns to its caller.

    Each subclass maps to one HTTP status. `context` carries the values a client
    needs to render a precise message (entity, amounts, statuses).
    """
    status_code = 400
    code = "restock_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class NotFound(RestockError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id=None, message: str | None = None):
        super().__init__(
            message or f"{entity} {entity_id} not found",
            entity=entity,
            entity_id=entity_id,
        )


class Forbidden(RestockError):
    status_code = 403
    code = "forbidden"


class ValidationError(RestockError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class InvalidStateTransition(RestockError):
    status_code = 409
    code = "invalid_state_transition"

    def __init__(self, current_status: str, target_status: str, message: str | None = None):
        super().__init__(
            message or f"Cannot move restock request from {current_status} to {target_status}",
            current_status=current_status,
            target_status=target_status,
        )


class InsufficientStock(RestockError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(
        self,
        *,
        available: int,
        requested: int,
        product_id: int | None = None,
        shop_id: int | None = None,
        message: str | None = None,
    ):
        where = "factory" if shop_id is None else f"shop {shop_id}"
        super().__init__(
            message or f"Insufficient {where} stock for product {product_id}. "
                       f"Available: {available}, requested: {requested}",
            available=available,
            requested=requested,
            product_id=product_id,
            shop_id=shop_id,
        )
        self.available = available
        self.requested = requested


class ConcurrentModification(InsufficientStock):
    """Stock changed underneath us more times than the retry budget allows. Safe to retry."""
    code = "concurrent_modification"
    retryable = True

    def __init__(self, attempts: int, message: str | None = None):
        RestockError.__init__(
            self,
            message or f"Stock was modified concurrently; gave up after {attempts} attempts",
            attempts=attempts,
            retryable=True,
        )
        self.available = None
        self.requested = None


class Conflict(RestockError):
    """409-level business rule conflict (duplicate SKU, delete blocked by references)."""
    status_code = 409
    code = "conflict"
