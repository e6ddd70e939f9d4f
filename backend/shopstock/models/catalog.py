from __future__ import annotations

from ..extensions import db
from shopstock.time_utils import to_utc_z


class Product(db.Model):
    """
    Factory master record.

    total_stock is the factory counter shops are replenished from. It is only
    written through the stock ledger service, never assigned by routes directly.

    CONCURRENCY:
    version_id is an optimistic lock column. Two fulfillments that read the same
    version cannot both write; the loser raises StaleDataError and is retried
    against the fresh stock value.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("total_stock >= 0", name="ck_products_total_stock_nonneg"),
        db.CheckConstraint(
            "min_stock_level IS NULL OR min_stock_level >= 0",
            name="ck_products_min_stock_level_nonneg",
        ),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    unit_price_cents = db.Column(db.Integer, nullable=True)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} total_stock={self.total_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock_level is not None and self.total_stock <= self.min_stock_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "total_stock": self.total_stock,
            "min_stock_level": self.min_stock_level,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
