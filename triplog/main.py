"""
Trip Log Bot - Main FastAPI Application
"""
from fastapi import FastAPI
from starlette.responses import JSONResponse

from triplog.api.routes import router as api_router
from triplog.core.config import settings
from triplog.core.logging import get_logger, setup_logging
from triplog.core.middleware import setup_exception_handlers, setup_middleware
from triplog.core.redis_client import close_redis
from triplog.db.database import Base, engine
from triplog.domain.services.health_service import check_readiness

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "LINE Messaging API webhook driving the trip entry conversation."},
    {
        "name": "Admin",
        "description": "Sessions, vehicle / store lists, report window and circuit breaker status.",
    },
    {"name": "Health", "description": "Liveness and readiness probes."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="LINE bot that collects trip records through a guided conversation.",
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (rate limit, correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await close_redis()
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="The process is up and answering. External dependencies are not checked.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description="Checks the database and Redis. 503 with details when one is unavailable.",
    responses={
        200: {
            "description": "All dependencies available",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "db": "ok",
                        "redis": "ok",
                        "circuit_breakers": {"line": "closed"},
                    }
                }
            },
        },
        503: {
            "description": "At least one dependency unavailable",
            "content": {
                "application/json": {
                    "example": {
                        "status": "degraded",
                        "db": "ok",
                        "redis": "error: redis_unavailable",
                        "circuit_breakers": {},
                    }
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
