import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import get_settings


_REQ_COUNT = Counter(
    "fa_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
_REQ_LATENCY = Histogram(
    "fa_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)

_UNMETERED_ROUTES = ("/metrics", "/health", "/healthz", "/readyz")


def _request_payload(request: Request, request_id: str, start: float, status_code: int, event: str) -> dict:
    route_obj = request.scope.get("route")
    return {
        "event": event,
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "route": getattr(route_obj, "path", None) or request.url.path,
        "status_code": status_code,
        "status_class": int(status_code // 100),
        "duration_ms": int((time.time() - start) * 1000),
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "release": os.getenv("GIT_SHA"),
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Adds a request ID to every response and logs one JSON line per request.
    Uploads can be slow (remote storage round trip), so latency buckets go up to 30s.
    """

    async def dispatch(self, request: Request, call_next):
        # Reuse an upstream request id (proxy / CDN) when present.
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-requestid")
            or str(uuid.uuid4())
        )
        start = time.time()
        logger = logging.getLogger("fa.http")
        try:
            response = await call_next(request)
        except Exception:
            payload = _request_payload(request, request_id, start, 500, "http_exception")
            logger.exception(json.dumps(payload, ensure_ascii=False))
            raise

        payload = _request_payload(request, request_id, start, response.status_code, "http_request")
        if response.status_code >= 500:
            logger.error(json.dumps(payload, ensure_ascii=False))
        elif response.status_code >= 400:
            logger.warning(json.dumps(payload, ensure_ascii=False))
        else:
            logger.info(json.dumps(payload, ensure_ascii=False))

        route = payload["route"]
        if route not in _UNMETERED_ROUTES:
            _REQ_COUNT.labels(request.method, route, str(response.status_code)).inc()
            _REQ_LATENCY.labels(request.method, route).observe(time.time() - start)

        response.headers["X-Request-ID"] = request_id
        return response


def configure_logging() -> None:
    """Configure a sane default logging setup for the backend."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    # Keep our loggers visible even if uvicorn already configured logging
    for name in ("fa.http", "fa.storage", "fa.records", "fa.auth", "fa.tracing"):
        logging.getLogger(name).setLevel(logging.INFO)


def init_tracing(app: FastAPI) -> None:
    """
    Attach request logging and, if a DSN is configured, Sentry error tracking.
    """
    settings = get_settings()
    configure_logging()

    app.add_middleware(RequestLoggingMiddleware)

    dsn: Optional[str] = settings.sentry_dsn
    if not dsn:
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=dsn,
        environment=(settings.sentry_env or settings.environment),
        release=os.getenv("GIT_SHA") or None,
        integrations=[FastApiIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
    )
    logging.getLogger("fa.tracing").info("Sentry tracing initialized")
