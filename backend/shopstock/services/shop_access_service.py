from __future__ import annotations

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import User, Shop, ShopManager, ROLE_SHOP_OWNER


def get_managed_shop_ids(user_id: int) -> set[int]:
    """Shops the user manages: every ShopManager row plus any shop naming them as primary."""
    rows = db.session.query(ShopManager.shop_id).filter_by(user_id=user_id).all()
    shop_ids = {row[0] for row in rows}

    primary = db.session.query(Shop.id).filter_by(manager_id=user_id).all()
    shop_ids.update(row[0] for row in primary)

    return shop_ids


def get_shop_manager_ids(shop_id: int) -> list[int]:
    rows = db.session.query(ShopManager.user_id).filter_by(shop_id=shop_id).all()
    user_ids = {row[0] for row in rows}

    shop = db.session.get(Shop, shop_id)
    if shop and shop.manager_id is not None:
        user_ids.add(shop.manager_id)

    return sorted(user_ids)


def assign_manager(
    *,
    user_id: int,
    shop_id: int,
    granted_by_user_id: int | None = None,
    primary: bool = True,
) -> ShopManager:
    """
    Grant management of a shop. With primary=True the shop's manager_id pointer
    is moved to this user as well. Caller commits.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User", user_id)
    if user.role != ROLE_SHOP_OWNER:
        raise ValidationError(f"Only {ROLE_SHOP_OWNER} users can manage shops", user_id=user_id)

    shop = db.session.get(Shop, shop_id)
    if not shop:
        raise NotFound("Shop", shop_id)

    link = db.session.query(ShopManager).filter_by(user_id=user_id, shop_id=shop_id).first()
    if not link:
        link = ShopManager(user_id=user_id, shop_id=shop_id, granted_by_user_id=granted_by_user_id)
        db.session.add(link)

    if primary:
        shop.manager_id = user_id

    db.session.flush()
    return link


def revoke_manager(*, user_id: int, shop_id: int) -> bool:
    """Remove management; clears manager_id if it pointed at this user. Caller commits."""
    link = db.session.query(ShopManager).filter_by(user_id=user_id, shop_id=shop_id).first()
    shop = db.session.get(Shop, shop_id)

    removed = False
    if link:
        db.session.delete(link)
        removed = True
    if shop and shop.manager_id == user_id:
        shop.manager_id = None
        removed = True

    db.session.flush()
    return removed
