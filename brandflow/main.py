from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from brandflow.exceptions import BrandflowError, generate_error_code
from brandflow.factories import scheduler_factory
from brandflow.routes import (
    admin,
    billing,
    brand,
    company_profiles,
    health,
    posts,
    receivers,
    workflow_sessions,
    workflows,
)
from brandflow.services.workflow_payloads import format_validation_error
from brandflow.settings import settings
from brandflow.utils.logging_utils import setup_logger_fastapi
from brandflow.utils.migrations import run_migrations
from brandflow.utils.sentry import init_sentry, report_exception

logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        await run_migrations()

    if settings.SCHEDULER_ENABLED:
        scheduler = scheduler_factory()
        scheduler.start()

    yield

    if settings.SCHEDULER_ENABLED:
        scheduler = scheduler_factory()
        if scheduler.running:
            scheduler.shutdown(wait=True)


init_sentry()
app = FastAPI(lifespan=lifespan)
setup_logger_fastapi(app)


api_router = APIRouter(prefix="/api")


@app.exception_handler(BrandflowError)
async def brandflow_exception_handler(request: Request, exc: BrandflowError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": format_validation_error(exc)},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Clients only get an opaque code; the details stay in the logs and Sentry."""
    error_code = generate_error_code()
    logger.exception(
        "Unhandled exception",
        error_code=error_code,
        path=request.url.path,
        method=request.method,
    )
    report_exception(exc, error_code)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Unexpected error", "code": error_code},
    )


api_router.include_router(health.router)
api_router.include_router(workflows.router)
api_router.include_router(receivers.router)
api_router.include_router(workflow_sessions.router)
api_router.include_router(company_profiles.router)
api_router.include_router(posts.router)
api_router.include_router(brand.router)
api_router.include_router(billing.router)
api_router.include_router(admin.router)
app.include_router(api_router)
