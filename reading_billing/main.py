from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from reading_billing.api.admin import router as admin_router
from reading_billing.api.gifts import router as gifts_router
from reading_billing.api.internal import router as internal_router
from reading_billing.api.me import router as me_router
from reading_billing.api.payments import router as payments_router
from reading_billing.api.readers import router as readers_router
from reading_billing.api.readings import router as readings_router
from reading_billing.core.config import Settings, get_settings
from reading_billing.core.exceptions import AppException, app_exception_handler
from reading_billing.core.logging import configure_logging
from reading_billing.core.observability import metrics
from reading_billing.core.rate_limit import RateLimiter, build_rate_limiter
from reading_billing.services.scheduler import scheduler_lifespan

configure_logging()


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Request-ID"] = request_id
        app_metrics = getattr(request.app.state, "metrics", None)
        if app_metrics is not None:
            app_metrics.observe_http_request(
                path=request.url.path,
                method=request.method,
                elapsed_seconds=elapsed_ms / 1000,
            )
        app_logger = getattr(request.app.state, "logger", None)
        if app_logger is not None:
            app_logger.info(
                "method=%s path=%s status=%s elapsed_ms=%.2f",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                extra={"request_id": request_id},
            )
        return response


def build_rate_limiters(settings: Settings) -> dict[str, RateLimiter]:
    return {
        "session_start": build_rate_limiter(
            redis_url=settings.redis_url,
            max_requests=settings.session_start_rate_limit,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        "add_funds": build_rate_limiter(
            redis_url=settings.redis_url,
            max_requests=settings.add_funds_rate_limit,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.rate_limiters = build_rate_limiters(get_settings())
    app.state.metrics = metrics
    async with scheduler_lifespan(app):
        yield


app = FastAPI(title="Reading Billing", version="0.1.0", lifespan=lifespan)
app.state.logger = logging.getLogger("reading-billing")
app.state.metrics = metrics
app.state.rate_limiters = build_rate_limiters(get_settings())
app.add_middleware(RequestContextMiddleware)
app.add_exception_handler(AppException, app_exception_handler)
app.include_router(me_router)
app.include_router(readings_router)
app.include_router(readers_router)
app.include_router(gifts_router)
app.include_router(payments_router)
app.include_router(internal_router)
app.include_router(admin_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": "reading-billing"}


@app.get("/metrics")
def metrics_endpoint(request: Request) -> Response:
    body = request.app.state.metrics.render()
    return Response(content=body, media_type="text/plain; version=0.0.4")
