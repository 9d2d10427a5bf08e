"""
app/api/routers package marker.
"""

from app.api.routers.batch_router import router as batch_router
from app.api.routers.fact_change_router import router as fact_change_router
from app.api.routers.status_router import router as status_router

__all__ = [
    "batch_router",
    "fact_change_router",
    "status_router",
]
