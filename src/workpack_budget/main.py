"""Work pack budget service entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from workpack_budget.adapters.backend_client import BackendRestClient
from workpack_budget.adapters.database import database_health_check, dispose_engine
from workpack_budget.api.exception_handlers import setup_exception_handlers
from workpack_budget.api.router import router
from workpack_budget.api.schemas import HealthResponse
from workpack_budget.observability import configure_logging, get_logger
from workpack_budget.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    configure_logging(settings)
    logger.info(
        "workpack-budget starting",
        service=settings.service_name,
        environment=settings.environment,
        data_source=settings.data_source,
        negative_amount_policy=settings.negative_amount_policy,
    )
    yield
    await dispose_engine()
    logger.info("workpack-budget shutting down")


def create_app() -> FastAPI:
    """Build the FastAPI application with routes and exception handlers."""
    application = FastAPI(title="Work Pack Budget", version="0.1.0", lifespan=lifespan)
    setup_exception_handlers(application)

    @application.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service=settings.service_name, data_source=settings.data_source)

    @application.get("/health/ready", response_model=HealthResponse, tags=["health"])
    async def readiness() -> JSONResponse:
        if settings.data_source == "sql":
            ready = await database_health_check()
        else:
            ready = await BackendRestClient(settings).health_check()
        body = HealthResponse(
            status="ok" if ready else "unavailable",
            service=settings.service_name,
            data_source=settings.data_source,
        )
        return JSONResponse(status_code=200 if ready else 503, content=body.model_dump())

    application.include_router(router, prefix="/api/v1")
    return application


app = create_app()
