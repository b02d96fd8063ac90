# api/routes/__init__.py
"""
API route handlers organized by domain.
"""

from api.routes.health import router as health_router
from api.routes.imports import router as imports_router
from api.routes.logs import router as logs_router
from api.routes.webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "imports_router",
    "logs_router",
    "webhooks_router",
]
