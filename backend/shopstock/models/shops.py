from __future__ import annotations

from ..extensions import db
from shopstock.time_utils import to_utc_z


class Shop(db.Model):
    """
    Retail shop replenished from factory stock.

    MANAGEMENT:
    ShopManager rows are the authoritative user <-> shop relation.
    manager_id is the primary manager pointer kept in sync by
    shop_access_service.assign_manager; do not write it directly.
    """
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)

    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    manager = db.relationship("User", foreign_keys=[manager_id])

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "manager_id": self.manager_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ShopManager(db.Model):
    """Grants a Shop_Owner user management of a shop (many-to-many)."""
    __tablename__ = "shop_managers"
    __table_args__ = (
        db.UniqueConstraint("user_id", "shop_id", name="uq_shop_managers_user_shop"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "shop_id": self.shop_id,
            "granted_by_user_id": self.granted_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ShopInventory(db.Model):
    """
    Per-shop stock of one product.

    Created lazily on the first stock event for the (shop, product) pair and
    only ever soft-deleted (is_active=False).
    """
    __tablename__ = "shop_inventory"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "product_id", name="uq_shop_inventory_shop_product"),
        db.CheckConstraint("current_stock >= 0", name="ck_shop_inventory_current_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)

    # Overrides Product.min_stock_level for this shop when set
    min_stock_per_item = db.Column(db.Integer, nullable=True)
    low_stock_alerts_enabled = db.Column(db.Boolean, nullable=False, default=True)

    last_restock_date = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("inventory", lazy=True))
    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    def effective_threshold(self) -> int | None:
        if self.min_stock_per_item is not None:
            return self.min_stock_per_item
        return self.product.min_stock_level if self.product else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "current_stock": self.current_stock,
            "min_stock_per_item": self.min_stock_per_item,
            "effective_threshold": self.effective_threshold(),
            "low_stock_alerts_enabled": self.low_stock_alerts_enabled,
            "last_restock_date": to_utc_z(self.last_restock_date),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
