"""Version 1 API endpoints."""

from .endpoints import backup_router, cron_router, drive_router, system_router

__all__ = [
    "backup_router",
    "cron_router",
    "drive_router",
    "system_router",
]
