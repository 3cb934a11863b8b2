from fastapi import APIRouter

from opsdesk.api.routes import health, timeline

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(timeline.router, prefix="/projects", tags=["timeline"])
