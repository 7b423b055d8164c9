"""API endpoint modules for version 1."""

from .backup import router as backup_router
from .cron import router as cron_router
from .drive import router as drive_router
from .system import router as system_router

__all__ = [
    "backup_router",
    "cron_router",
    "drive_router",
    "system_router",
]
