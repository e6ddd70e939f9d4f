# Overview: Data maintenance: legacy status normalization, low-stock rescans and session cleanup.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import RestockRequest, SessionToken, ShopInventory, LEGACY_STATUS_MAP
from . import low_stock_service
from shopstock.time_utils import utcnow


def migrate_legacy_statuses(*, dry_run: bool = False) -> dict[str, int]:
    """
    Rewrite restock requests still stored with legacy status names
    (pending / accepted / in_transit). Returns {legacy_name: row_count}.
    """
    counts: dict[str, int] = {}
    for legacy, current in LEGACY_STATUS_MAP.items():
        query = db.session.query(RestockRequest).filter(RestockRequest.status == legacy)
        if dry_run:
            counts[legacy] = query.count()
            continue
        counts[legacy] = query.update(
            {
                RestockRequest.status: current.value,
                RestockRequest.version_id: RestockRequest.version_id + 1,
            },
            synchronize_session=False,
        )

    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()
        current_app.logger.info("Normalized legacy restock statuses: %s", counts)
    return counts


def scan_low_stock() -> dict[str, int]:
    """
    Re-evaluate every active shop inventory row against its threshold.

    Returns counts of rows scanned and restock requests auto-generated.
    """
    pairs = (
        db.session.query(ShopInventory.shop_id, ShopInventory.product_id)
        .filter(ShopInventory.is_active.is_(True))
        .order_by(ShopInventory.shop_id.asc(), ShopInventory.product_id.asc())
        .all()
    )

    generated = 0
    for shop_id, product_id in pairs:
        try:
            if low_stock_service.evaluate_shop_inventory(shop_id, product_id) is not None:
                generated += 1
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "Low-stock scan failed for shop %s product %s", shop_id, product_id
            )

    return {"scanned": len(pairs), "generated": generated}


def cleanup_expired_sessions(*, retention_days: int = 7) -> int:
    """Delete session tokens that expired more than retention_days ago."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SessionToken).filter(
        SessionToken.expires_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
