from __future__ import annotations

from ..extensions import db
from shopstock.time_utils import to_utc_z


class Notification(db.Model):
    """
    Per-user notification written by the database notification sink.

    Broadcast targets ("ALL", a role name) are expanded into one row per user
    at write time so read/unread state stays per user.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(64), nullable=False)  # RESTOCK_REQUEST, LOW_STOCK, ...
    priority = db.Column(db.String(16), nullable=False, default="NORMAL")  # NORMAL, HIGH
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "priority": self.priority,
            "message": self.message,
            "data": self.data,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }


class AuditLog(db.Model):
    """
    Append-only audit trail of restock and stock events.

    No updates or deletes. `meta` maps to the "metadata" column, which is a
    reserved attribute name on declarative models.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(32), nullable=False, index=True)  # restock, stock
    action = db.Column(db.String(64), nullable=False)
    entity = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)

    meta = db.Column("metadata", db.JSON, nullable=True)
    message = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="success")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "shop_id": self.shop_id,
            "metadata": self.meta,
            "message": self.message,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
