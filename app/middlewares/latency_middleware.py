import time
import statistics
from collections import defaultdict, deque
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import structlog

from metrics.metrics import get_metrics

logger = structlog.get_logger(__name__)

# Recent latencies (ms) per path
GLOBAL_LATENCIES = defaultdict(lambda: deque(maxlen=100))


def get_stats():
    """Compute latency stats directly from GLOBAL_LATENCIES."""
    stats = {}
    for route, times in GLOBAL_LATENCIES.items():
        if not times:
            continue
        stats[route] = {
            "count": len(times),
            "avg_ms": round(statistics.mean(times), 2),
            "min_ms": round(min(times), 2),
            "max_ms": round(max(times), 2),
            "p95_ms": (
                round(statistics.quantiles(times, n=100)[94], 2)
                if len(times) >= 20
                else None
            ),
        }
    return stats


def _register_route(app: FastAPI):
    """Attach /__latency_stats__ endpoint (only once)."""

    @app.get("/__latency_stats__", include_in_schema=False)
    async def latency_stats():
        return JSONResponse(get_stats())


class LatencyMiddleware(BaseHTTPMiddleware):
    """
    Tracks latency for each endpoint globally, feeds the request duration
    histogram and writes one access log line per request.
    """

    def __init__(self, app: FastAPI, history_size: int = 100):
        super().__init__(app)
        self.history_size = history_size

        for path, dq in GLOBAL_LATENCIES.items():
            GLOBAL_LATENCIES[path] = deque(dq, maxlen=history_size)

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        path = request.url.path
        if path not in GLOBAL_LATENCIES:
            GLOBAL_LATENCIES[path] = deque(maxlen=self.history_size)
        GLOBAL_LATENCIES[path].append(elapsed * 1000)
        get_metrics().observe_request(request.method, path, elapsed)
        logger.info(
            "http_request",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
        )
        return response
