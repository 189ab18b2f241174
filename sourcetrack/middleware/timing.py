"""
Request timing and access logging.

Every response carries ``X-Request-ID`` (echoed from the client when sent)
and ``X-Request-Duration-Ms``. API requests get one access line: DEBUG
normally, WARNING above SLOW_REQUEST_MS, ERROR for 5xx. Health probes are
not logged.
"""

import logging
import time
import uuid

from flask import g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
_UNLOGGED_PREFIXES = ("/api/v1/health",)


def _access_level(status, duration_ms):
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app):
    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _access_log(response):
        start = g.get("request_start")
        if start is None:
            return response
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        path = request.path
        if not path.startswith("/api/") or path.startswith(_UNLOGGED_PREFIXES):
            return response

        logger.log(
            _access_level(response.status_code, duration_ms),
            "%s %s -> %d",
            request.method,
            path,
            response.status_code,
            extra={
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 1),
                "remote_addr": request.remote_addr,
            },
        )
        return response
