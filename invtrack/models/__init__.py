"""SQLAlchemy models. Importing this package registers every table on ``Base``."""

from .department import Department
from .user import ROLES, User
from .area import Area
from .catalog import AreaItem, Category, Item
from .threshold import Threshold
from .record import Record, RecordItem
from .spot import SpotInventory, SpotInventoryItem
from .monthly import MonthlyInventory

__all__ = [
    "Area",
    "AreaItem",
    "Category",
    "Department",
    "Item",
    "MonthlyInventory",
    "ROLES",
    "Record",
    "RecordItem",
    "SpotInventory",
    "SpotInventoryItem",
    "Threshold",
    "User",
]
