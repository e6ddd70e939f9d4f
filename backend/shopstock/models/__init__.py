from .auth import User, SessionToken, ROLE_ADMIN, ROLE_SHOP_OWNER, ROLES
from .catalog import Product
from .shops import Shop, ShopManager, ShopInventory
from .restock import (
    RestockRequest,
    RestockStatus,
    RestockRequestType,
    TERMINAL_STATUSES,
    OPEN_STATUSES,
    LEGACY_STATUS_MAP,
)
from .communications import Notification, AuditLog

__all__ = [
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_SHOP_OWNER', 'ROLES',
    'Product',
    'Shop', 'ShopManager', 'ShopInventory',
    'RestockRequest', 'RestockStatus', 'RestockRequestType',
    'TERMINAL_STATUSES', 'OPEN_STATUSES', 'LEGACY_STATUS_MAP',
    'Notification', 'AuditLog',
]
