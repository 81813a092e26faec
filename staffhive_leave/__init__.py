"""Leave management core for the Staff Hive HR dashboard."""
from staffhive_leave.core.config import settings

__version__ = settings.version
