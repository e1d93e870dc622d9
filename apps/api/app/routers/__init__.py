"""API routers."""

from app.routers.admin import router as admin_router
from app.routers.auth import router as auth_router
from app.routers.events import router as events_router
from app.routers.internal import router as internal_router
from app.routers.people import router as people_router

__all__ = [
    "admin_router",
    "auth_router",
    "events_router",
    "internal_router",
    "people_router",
]
