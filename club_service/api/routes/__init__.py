from .community import router as community_router
from .journeys import router as journeys_router
from .admin import router as admin_router


__all__ = [
    # community.py
    "community_router",
    # journeys.py
    "journeys_router",
    # admin.py
    "admin_router",
]
