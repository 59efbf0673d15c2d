"""FastAPI middleware for observability.

Every request runs under one operation id. A caller may supply it in the
X-Operation-ID header so that retried stage or commit calls correlate with
the original attempt; otherwise a new id is generated. The id is echoed
back on the response.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .request_id import generate_operation_id, set_operation_id
from .logging_config import get_logger

logger = get_logger(__name__)

OPERATION_ID_HEADER = "X-Operation-ID"

# Probe endpoints are polled constantly and would drown the request log
QUIET_PATHS = ("/metrics", "/health", "/ready")


class OperationIDMiddleware(BaseHTTPMiddleware):
    """Bind an operation id to the request and log its outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        operation_id = request.headers.get(OPERATION_ID_HEADER) or generate_operation_id()
        set_operation_id(operation_id)

        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} failed after "
                f"{(time.perf_counter() - started) * 1000:.2f}ms: {e}",
                exc_info=True
            )
            raise

        if not quiet:
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"in {(time.perf_counter() - started) * 1000:.2f}ms"
            )
        response.headers[OPERATION_ID_HEADER] = operation_id
        return response
