"""WSGI middleware: request validation and access logging."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from http import HTTPStatus

from setera.webhook.validation import CONTENT_TYPE_JSON

logger = logging.getLogger(__name__)

Middleware = Callable[[Callable], Callable]


def _http_error(start_response: Callable, message: str, status: HTTPStatus) -> list[bytes]:
    body = (message + "\n").encode()
    start_response(
        f"{status.value} {status.phrase}",
        [
            ("Content-Type", "text/plain; charset=utf-8"),
            ("X-Content-Type-Options", "nosniff"),
            ("Content-Length", str(len(body))),
        ],
    )
    return [body]


def run_middleware(*middlewares: Middleware) -> Middleware:
    """Chain middlewares so that the first one given runs outermost."""

    def chain(app: Callable) -> Callable:
        for middleware in reversed(middlewares):
            app = middleware(app)
        return app

    return chain


def validating_middleware(app: Callable) -> Callable:
    """Reject requests that are not JSON POSTs with a body."""

    def validate(environ: dict, start_response: Callable) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        content_type = environ.get("CONTENT_TYPE", "")
        if method != "POST":
            status, message = HTTPStatus.METHOD_NOT_ALLOWED, f"{method} method is not allowed"
        elif content_type != CONTENT_TYPE_JSON:
            status, message = HTTPStatus.UNSUPPORTED_MEDIA_TYPE, f"{content_type} is not a supported content type"
        elif environ.get("wsgi.input") is None:
            status, message = HTTPStatus.METHOD_NOT_ALLOWED, f" {method} request is empty "
        else:
            return app(environ, start_response)
        logger.error("%d %s", status, message.strip())
        return _http_error(start_response, message, status)

    return validate


def logging_middleware(app: Callable) -> Callable:
    """Log the address, status, method, path and duration of each request."""

    def log(environ: dict, start_response: Callable) -> Iterable[bytes]:
        start = time.perf_counter()
        status = int(HTTPStatus.OK)

        def recording_start_response(status_line, headers, exc_info=None):
            nonlocal status
            status = int(status_line.split(" ", 1)[0])
            if exc_info is None:
                return start_response(status_line, headers)
            return start_response(status_line, headers, exc_info)

        result = app(environ, recording_start_response)
        try:
            body = list(result)
        finally:
            if hasattr(result, "close"):
                result.close()
        logger.info(
            "%s %d %s %s %.6fs",
            environ.get("REMOTE_ADDR", ""),
            status,
            environ.get("REQUEST_METHOD", ""),
            environ.get("PATH_INFO", ""),
            time.perf_counter() - start,
        )
        return body

    return log