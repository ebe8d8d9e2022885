"""
app/api/routers package marker.
"""

from app.api.routers.admin_router import router as admin_router
from app.api.routers.auth_router import router as auth_router
from app.api.routers.catalog_router import router as catalog_router
from app.api.routers.dashboard_router import router as dashboard_router
from app.api.routers.reports_router import router as reports_router

__all__ = [
    "admin_router",
    "auth_router",
    "catalog_router",
    "dashboard_router",
    "reports_router",
]
