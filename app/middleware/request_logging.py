"""
Request Logging Middleware

- Assigns a unique request_id to every request
- Sets customer_id context from the bearer JWT
- Logs request start & end with timing
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.logging_config import (
    customer_id_ctx,
    deployment_id_ctx,
    generate_request_id,
    request_id_ctx,
)

logger = logging.getLogger("axp.request")


def _extract_customer_id(request: Request) -> str:
    """Parse the Authorization header minimally; auth deps do the real check."""
    from app.core.security import decode_access_token

    auth = request.headers.get("authorization", "")
    if auth.startswith("Bearer "):
        payload = decode_access_token(auth[7:])
        if payload:
            return str(payload.get("sub", "-"))
    return "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Generate & set request ID
        rid = generate_request_id()
        request_id_ctx.set(rid)
        customer_id_ctx.set(_extract_customer_id(request))
        deployment_id_ctx.set("-")

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "-"

        logger.info("→ %s %s from %s", method, path, client_ip)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("✗ %s %s — %.1fms (unhandled exception)", method, path, elapsed)
            raise

        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid

        logger.info(
            "← %s %s — %d — %.1fms",
            method, path, response.status_code, elapsed,
        )
        return response
