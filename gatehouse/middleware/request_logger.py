"""
middleware/request_logger.py — Per-request id and access log.

Every request gets an id: the incoming X-Request-ID header when the client
sent one, otherwise a fresh uuid4 hex. The id is stored on flask.g, echoed
back in the X-Request-ID response header, and included in the access log
line written when the response leaves.

Log level follows the status class: 5xx → error, 4xx → warning, else info.
"""

from __future__ import annotations

import logging
import time
import uuid

from flask import Flask, g, request

REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger("gatehouse.request")

_SKIPPED_PATHS = frozenset({"/favicon.ico"})


def _log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


def register_request_logger(app: Flask) -> None:

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        request_id = g.get("request_id")
        if request_id is None:
            return response

        response.headers[REQUEST_ID_HEADER] = request_id

        if request.path in _SKIPPED_PATHS:
            return response

        duration_ms = (time.perf_counter() - g.get("request_started", time.perf_counter())) * 1000
        logger.log(
            _log_level(response.status_code),
            "%s %s -> %s (%.1fms) request_id=%s",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
