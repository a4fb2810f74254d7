"""API routers for different endpoint groups.

Routers:
- health: Health check and monitoring endpoints
- offline: Offline stories, operation queue, sync and recovery
"""

from .health import router as health_router
from .offline import router as offline_router

__all__ = [
    "health_router",
    "offline_router",
]
