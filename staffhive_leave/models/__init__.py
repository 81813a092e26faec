# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import cache_entry, leave_balance

# Explicit class exports for cleaner imports
from .cache_entry import CacheEntry
from .leave_balance import LeaveBalance

__all__ = [
    "CacheEntry",
    "LeaveBalance",
]
