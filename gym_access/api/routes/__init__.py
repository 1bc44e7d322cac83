from gym_access.api.routes.access import router as access_router
from gym_access.api.routes.admin import router as admin_router
from gym_access.api.routes.webhooks import router as webhooks_router

__all__ = [
    "access_router",
    "admin_router",
    "webhooks_router",
]
