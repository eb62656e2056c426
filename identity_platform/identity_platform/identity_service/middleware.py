"""
Request logging middleware: one line per request with method, path,
status code and duration.
"""
import logging
import time

from fastapi import FastAPI, Request

logger = logging.getLogger("identity_service.requests")


def register_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception("[%s] %s 500 %.1fms", request.method, request.url.path, duration_ms)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log("[%s] %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
        return response
