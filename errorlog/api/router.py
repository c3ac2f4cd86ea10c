from __future__ import annotations

from fastapi import APIRouter

from errorlog.api.errors import router as errors_router
from errorlog.api.galleries import router as galleries_router
from errorlog.api.health import router as health_router


api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(errors_router)
api_router.include_router(galleries_router)
