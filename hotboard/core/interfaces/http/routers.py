"""API router configuration."""

from fastapi import APIRouter

from hotboard.modules.sources.interfaces.router import router as sources_router
from hotboard.modules.sources.interfaces.system_router import router as system_router

api_router = APIRouter()

# Sources / hot lists / cache
api_router.include_router(sources_router)

# Health / metrics / errors
api_router.include_router(system_router)
