"""hotboard - 热榜聚合服务入口。"""

import httpx
import sentry_sdk
from fastapi import FastAPI
from fastapi.concurrency import asynccontextmanager
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from loguru import logger
from starlette.middleware.cors import CORSMiddleware

from hotboard.core.config import settings
from hotboard.core.domain.exceptions import DomainException
from hotboard.core.infrastructure.logging import setup_logging
from hotboard.core.interfaces.http.exceptions import (
    domain_exception_handler,
    global_exception_handler,
    validation_exception_handler,
)
from hotboard.core.interfaces.http.routers import api_router
from hotboard.modules.sources.application import dependencies as sources_app_deps
from hotboard.modules.sources.infrastructure import dependencies as sources_infra_deps


def custom_generate_unique_id(route: APIRoute) -> str:
    """Generate unique operation IDs for OpenAPI."""
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


# Initialize Sentry if configured
if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(
        dsn=str(settings.SENTRY_DSN),
        enable_tracing=True,
        environment=settings.ENVIRONMENT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting hotboard...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    async with httpx.AsyncClient(follow_redirects=False) as client:
        context = sources_infra_deps.build_app_context(settings, client=client)
        app.state.context = context
        await context.startup()

        yield

        logger.info("Shutting down hotboard...")
        await context.shutdown()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="热榜聚合服务 - 多数据源抓取、缓存与健康监控",
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    root_path=settings.ROOTPATH,
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)

# Dependency overrides (application -> infrastructure)
app.dependency_overrides[sources_app_deps.get_app_context] = (
    sources_infra_deps.get_app_context
)

# Exception handlers
app.add_exception_handler(DomainException, domain_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# CORS middleware
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to hotboard API",
        "docs": f"{settings.API_V1_STR}/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.SERVER_PORT,
        reload=settings.ENVIRONMENT == "local",
    )
