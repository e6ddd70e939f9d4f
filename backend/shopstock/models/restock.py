from __future__ import annotations

from enum import Enum

from ..extensions import db
from shopstock.time_utils import to_utc_z


class RestockStatus(str, Enum):
    """
    Restock request lifecycle.

    WAITING_FOR_APPROVAL -> APPROVED_PENDING -> FULFILLED
    WAITING_FOR_APPROVAL -> REJECTED

    FULFILLED and REJECTED are terminal.
    """
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    APPROVED_PENDING = "approved_pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value) -> "RestockStatus":
        """Resolve a current or legacy status name; raises ValueError if unknown."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in LEGACY_STATUS_MAP:
            return LEGACY_STATUS_MAP[key]
        return cls(key)


TERMINAL_STATUSES = frozenset({RestockStatus.FULFILLED, RestockStatus.REJECTED})
OPEN_STATUSES = frozenset({RestockStatus.WAITING_FOR_APPROVAL, RestockStatus.APPROVED_PENDING})

# Older rows were written with the pending/accepted/in_transit vocabulary.
LEGACY_STATUS_MAP = {
    "pending": RestockStatus.WAITING_FOR_APPROVAL,
    "accepted": RestockStatus.APPROVED_PENDING,
    "in_transit": RestockStatus.APPROVED_PENDING,
}


class RestockRequestType(str, Enum):
    RESTOCK = "RESTOCK"
    INVENTORY_ADD = "INVENTORY_ADD"


class RestockRequest(db.Model):
    """
    One replenishment transaction between the factory and a shop.

    LIFECYCLE:
    1. waiting_for_approval: created by a shop owner, an admin, or the low-stock trigger
    2. approved_pending: approved; factory stock checked but NOT moved
    3. fulfilled: factory stock decremented and shop inventory incremented
    4. rejected: closed without stock movement

    Requests are never deleted. hidden=True removes them from default listings
    without touching status.
    """
    __tablename__ = "restock_requests"
    __table_args__ = (
        db.CheckConstraint("requested_amount > 0", name="ck_restock_requests_amount_positive"),
        db.Index("ix_restock_requests_shop_product_status", "shop_id", "product_id", "status"),
        db.Index("ix_restock_requests_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    requested_amount = db.Column(db.Integer, nullable=False)
    request_type = db.Column(db.String(16), nullable=False, default=RestockRequestType.RESTOCK.value)

    status = db.Column(
        db.String(32),
        nullable=False,
        default=RestockStatus.WAITING_FOR_APPROVAL.value,
        index=True,
    )
    notes = db.Column(db.Text, nullable=True)

    hidden = db.Column(db.Boolean, nullable=False, default=False, index=True)
    auto_generated = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    fulfilled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop")
    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status_enum(self) -> RestockStatus:
        return RestockStatus.parse(self.status)

    def __repr__(self) -> str:
        return (
            f"<RestockRequest id={self.id} shop_id={self.shop_id} product_id={self.product_id} "
            f"amount={self.requested_amount} status={self.status}>"
        )

    def to_dict(self, *, include_relations: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "requested_amount": self.requested_amount,
            "request_type": self.request_type,
            "status": self.status,
            "notes": self.notes,
            "hidden": self.hidden,
            "auto_generated": self.auto_generated,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "fulfilled_by_user_id": self.fulfilled_by_user_id,
            "rejected_by_user_id": self.rejected_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "approved_at": to_utc_z(self.approved_at),
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_relations:
            data["shop"] = self.shop.to_dict() if self.shop else None
            data["product"] = self.product.to_dict() if self.product else None
        return data


def status_values(statuses) -> list[str]:
    """Stored values for the given statuses, legacy aliases included (for IN filters)."""
    wanted = {RestockStatus.parse(s) for s in statuses}
    values = [s.value for s in wanted]
    values.extend(legacy for legacy, current in LEGACY_STATUS_MAP.items() if current in wanted)
    return sorted(values)
