import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from callgate.core.logging import ROOT_LOGGER, request_id_ctx_var, latency_bucket_ms

REQUEST_ID_HEADER = "x-request-id"
MAX_INCOMING_REQUEST_ID = 128

logger = logging.getLogger(ROOT_LOGGER)


def _accept_request_id(incoming):
    # Caller-supplied ids end up in every log line; keep them short and printable
    if incoming and len(incoming) <= MAX_INCOMING_REQUEST_ID and incoming.isprintable():
        return incoming
    return str(uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request_id for the duration of each request and echo it back."""

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = _accept_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            logger.info(
                "request.complete",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
