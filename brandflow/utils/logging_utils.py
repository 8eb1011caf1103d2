import logging
import time

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from structlog.typing import Processor
from uvicorn.protocols.utils import get_path_with_query_string

from brandflow.settings import settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "LiteLLM", "apscheduler.executors.default")

# Polled by load balancers, not worth an access line each
UNLOGGED_PATHS = frozenset({"/api/health"})


def _shared_processors(log_format: str) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.stdlib.ExtraAdder(),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.PATHNAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    return processors


def configure_logging(log_format: str | None = None, log_level: str | None = None):
    """Send structlog events and stdlib records through one renderer on stderr."""
    log_format = log_format or settings.LOG_FORMAT
    log_level = (log_level or settings.LOG_LEVEL).upper()

    processors = _shared_processors(log_format)
    renderer: Processor = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    # RequestContextMiddleware writes the access log
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logger_fastapi(app: FastAPI):
    configure_logging()

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


access_logger = structlog.stdlib.get_logger("api.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds the correlation id for the request and writes one access line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        structlog.contextvars.clear_contextvars()
        request_id = correlation_id.get()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response = Response(status_code=500)
        try:
            response = await call_next(request)
        finally:
            duration = time.perf_counter() - started
            if request.url.path not in UNLOGGED_PATHS:
                http_version = request.scope.get("http_version", "1.1")
                access_logger.info(
                    f'"{request.method} {get_path_with_query_string(request.scope)} '
                    f'HTTP/{http_version}" {response.status_code}',
                    http={
                        "url": str(request.url),
                        "status_code": response.status_code,
                        "method": request.method,
                        "request_id": request_id,
                        "version": http_version,
                    },
                    duration=duration,
                    endpoint=request.url.path,
                )
        response.headers["X-Process-Time"] = f"{duration:.6f}"
        return response
