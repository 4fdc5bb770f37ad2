"""HTTP middleware for Prometheus metrics instrumentation."""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from plyglot.shared.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics per route template."""

    # Scrapes and health probes would drown out real traffic
    EXCLUDE_PATHS = {"/metrics", "/api/health"}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.EXCLUDE_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        endpoint = self._endpoint_label(request)
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method, endpoint=endpoint, status=str(response.status_code)
        ).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, endpoint=endpoint).observe(
            duration
        )
        return response

    @staticmethod
    def _endpoint_label(request: Request) -> str:
        """Use the matched route template; unmatched paths share one label."""
        route = request.scope.get("route")
        return getattr(route, "path", None) or "unmatched"
