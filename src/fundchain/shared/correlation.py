"""
Correlation ID propagation for request tracing.

Each request runs with a correlation id taken from ``X-Correlation-ID`` (or
``X-Request-ID``) or freshly generated. Log lines carry it, relay calls
forward it and the response echoes it back.
"""

import uuid
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from fundchain.shared.logging import correlation_id_var

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def inject_correlation_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return ``headers`` plus the current correlation id, if there is one."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        headers = dict(headers)
        headers[CORRELATION_ID_HEADER] = correlation_id
    return headers


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation id to the request context and the response."""

    def __init__(
        self,
        app: Any,
        header_name: str = CORRELATION_ID_HEADER,
        generator: Callable[[], str] = generate_correlation_id,
    ) -> None:
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = (
            request.headers.get(self.header_name)
            or request.headers.get(REQUEST_ID_HEADER)
            or self.generator()
        )

        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
            response.headers[self.header_name] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)
