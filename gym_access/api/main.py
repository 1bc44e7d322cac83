from fastapi import FastAPI

from gym_access.api.routes.access import router as access_router
from gym_access.api.routes.admin import router as admin_router
from gym_access.api.routes.webhooks import router as webhooks_router
from gym_access.core.permissions import validate_catalog

app = FastAPI(title="Gym Access Engine")
app.include_router(access_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


@app.on_event("startup")
async def check_permission_catalog() -> None:
    validate_catalog()


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
