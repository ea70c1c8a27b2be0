"""
Main FastAPI application for the ChoreQuest backend.
Configures the API server with routes, middleware, error handling and documentation.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

import structlog

from chorequest.core.config import settings
from chorequest.core.database import init_database, close_database, DatabaseManager
from chorequest.core.exceptions import ChoreQuestException
from chorequest.core.logging import setup_logging
from chorequest.api.middleware import add_middleware
from chorequest.api.schemas.common import APIResponse, HealthCheckResponse, error_body
from chorequest.api.routes import quests, quest_instances, boss_quests, cron, users, characters
from chorequest.scheduler.task_scheduler import get_quest_scheduler, shutdown_quest_scheduler


logger = structlog.get_logger(__name__)

ROUTERS = (
    (quests, "/quests", "Quests"),
    (quest_instances, "/quest-instances", "Quest Instances"),
    (boss_quests, "/boss-quests", "Boss Quests"),
    (cron, "/cron", "Cron"),
    (users, "/users", "Users"),
    (characters, "/characters", "Characters"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting ChoreQuest API server", environment=settings.environment)

    await init_database()

    if settings.scheduler_enabled:
        await get_quest_scheduler().start()
        logger.info("Quest scheduler started")

    yield

    logger.info("Shutting down ChoreQuest API server")

    if settings.scheduler_enabled:
        await shutdown_quest_scheduler()
    await close_database()


def _error_response(status_code: int, message: str, code: str, details=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(message, code, details))


async def chorequest_exception_handler(request: Request, exc: ChoreQuestException) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.code,
        error=exc.message,
    )
    return _error_response(exc.status_code, exc.message, exc.code, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Request validation failed", path=request.url.path, errors=len(exc.errors()))
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "Validation failed",
        "VALIDATION_ERROR",
        {"errors": exc.errors()},
    )


def create_app() -> FastAPI:
    """Build the API: logging, middleware, error handlers, system routes and routers."""
    setup_logging()

    app = FastAPI(
        title="ChoreQuest API",
        description="""
        Quest lifecycle and reward engine for family chore gamification.

        ## Authentication

        ```
        Authorization: Bearer <access-token>
        ```

        Cron endpoints take the shared cron secret as the bearer token.

        ## Error Handling

        Errors return `{success: false, error, error_code, details, timestamp}`.
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    add_middleware(app)

    app.add_exception_handler(ChoreQuestException, chorequest_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.get("/health", response_model=HealthCheckResponse, tags=["System"], summary="Health Check")
    async def health_check():
        health = HealthCheckResponse(
            version=settings.app_version,
            environment=settings.environment,
            scheduler=get_quest_scheduler().health_check() if settings.scheduler_enabled else None,
        )
        if await DatabaseManager.health_check():
            return health

        health.status = "unhealthy"
        health.database = "unreachable"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=jsonable_encoder(health),
        )

    @app.get("/", response_model=APIResponse, tags=["System"], summary="API Information")
    async def root():
        return APIResponse(message=f"ChoreQuest API v{settings.app_version}")

    for module, path, tag in ROUTERS:
        app.include_router(module.router, prefix=f"{settings.api_v1_prefix}{path}", tags=[tag])

    logger.info("FastAPI application created", routers=len(ROUTERS))
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chorequest.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
