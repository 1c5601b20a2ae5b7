"""The admission webhook HTTP server and its command entry point."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from http import HTTPStatus
from typing import Any
from wsgiref.simple_server import make_server

from setera.api import GroupVersionKind
from setera.kube import KubeError, init_kube_config, new_kube_client, new_setera_client
from setera.webhook.middleware import _http_error, logging_middleware, run_middleware, validating_middleware
from setera.webhook.validation import (
    CONTENT_TYPE_HEADER,
    CONTENT_TYPE_JSON,
    POD_GVK,
    SERVER_PORT,
    TENANT_GVK,
    VALIDATE_ENDPOINT,
    new_admission_review,
    validate_pod,
    validate_tenant,
)

logger = logging.getLogger(__name__)


def _read_body(environ: Mapping) -> bytes:
    stream = environ.get("wsgi.input")
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if stream is None or length <= 0:
        return b""
    return stream.read(length)


class WebhookServer:
    """Serves admission reviews for pods and tenants."""

    def __init__(self, setera_client: Any, kube_client: Any) -> None:
        self.port = SERVER_PORT
        self.setera_client = setera_client
        self.kube_client = kube_client
        self.server = None

    def admission_validation_handler(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        try:
            review = json.loads(_read_body(environ))
            if not isinstance(review, dict):
                raise ValueError("expected a JSON object")
        except ValueError as exc:
            logger.error(" error code: %d failed decoding admission request with error %s", HTTPStatus.BAD_REQUEST, exc)
            return _http_error(start_response, f"failed decoding admission request: {exc}", HTTPStatus.BAD_REQUEST)

        request = review.get("request")
        request_kind = request.get("requestKind") if isinstance(request, Mapping) else None
        if not isinstance(request_kind, Mapping):
            logger.error(" error code: %d failed to extract resource from request", HTTPStatus.BAD_REQUEST)
            return _http_error(start_response, "failed to extract resource from request", HTTPStatus.BAD_REQUEST)

        gvk = GroupVersionKind(
            group=request_kind.get("group", ""),
            version=request_kind.get("version", ""),
            kind=request_kind.get("kind", ""),
        )
        response: dict = {"uid": "", "allowed": False}
        try:
            if gvk == POD_GVK:
                response = validate_pod(request, self.setera_client)
            elif gvk == TENANT_GVK:
                response = validate_tenant(request, self.kube_client)
        except Exception as exc:
            return _http_error(start_response, str(exc), HTTPStatus.INTERNAL_SERVER_ERROR)

        reply = new_admission_review(review, response)
        kind = request.get("kind")
        logger.info(
            "request ID %s %s",
            request.get("uid", ""),
            kind.get("kind", "") if isinstance(kind, Mapping) else "",
        )

        try:
            payload = json.dumps(reply).encode()
        except (TypeError, ValueError) as exc:
            logger.error("%s", exc)
            return _http_error(start_response, str(exc), HTTPStatus.INTERNAL_SERVER_ERROR)
        start_response(
            f"{HTTPStatus.OK.value} {HTTPStatus.OK.phrase}",
            [(CONTENT_TYPE_HEADER, CONTENT_TYPE_JSON), ("Content-Length", str(len(payload)))],
        )
        return [payload]

    def application(self) -> Callable:
        """The WSGI application: routing wrapped in logging and validation."""

        def router(environ: dict, start_response: Callable) -> Iterable[bytes]:
            if environ.get("PATH_INFO", "") == VALIDATE_ENDPOINT:
                return self.admission_validation_handler(environ, start_response)
            return _http_error(start_response, "404 page not found", HTTPStatus.NOT_FOUND)

        return run_middleware(logging_middleware, validating_middleware)(router)

    def start(self) -> None:
        """Serve until interrupted."""
        host, _, port = self.port.rpartition(":")
        self.server = make_server(host, int(port), self.application())
        logger.info("started webhook server at %s", self.port)
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()


def main(argv: list[str] | None = None) -> None:
    """Connect to the cluster and run the admission webhook."""
    logging.basicConfig(level=logging.INFO)
    try:
        config = init_kube_config(argv)
    except KubeError as exc:
        logger.critical("%s Error in building kubeconfig", exc)
        raise SystemExit(1) from exc
    try:
        setera_client = new_setera_client(config)
    except KubeError as exc:
        logger.critical("%s Error in building setera clientset", exc)
        raise SystemExit(1) from exc
    try:
        kube_client = new_kube_client(config)
    except KubeError as exc:
        logger.critical("%s Error in building kubernetes clientset", exc)
        raise SystemExit(1) from exc

    try:
        WebhookServer(setera_client, kube_client).start()
    except KeyboardInterrupt:
        logger.info("webhook server stopped")