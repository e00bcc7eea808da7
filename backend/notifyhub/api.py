"""API router: all JSON endpoints under the /api prefix."""

from fastapi import APIRouter

from .notifications.routes import router as notifications_router
from .preferences.routes import router as preferences_router

api_router = APIRouter(prefix="/api")

api_router.include_router(preferences_router)
api_router.include_router(notifications_router)
