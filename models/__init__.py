"""ORM models exposed by the ShopSync application."""
from .account import Account, SubUser
from .expense import Expense
from .order import Order
from .sync_item import SyncItem, SyncMethod, SyncStatus

__all__ = ["Account", "SubUser", "Expense", "Order", "SyncItem", "SyncMethod", "SyncStatus"]
