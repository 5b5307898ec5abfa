from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from contextlib import asynccontextmanager
import httpx
import structlog
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import settings
from core.logging_config import configure_logging
from core.rate_limit import limiter
from middlewares.latency_middleware import LatencyMiddleware, _register_route
from routes import submit
from routes.submit import SUBMIT_PATH, cors_response

configure_logging(settings.log_level, settings.log_json)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared GitHub HTTP pool for the lifetime of the app"""
    logger.info("Starting plugin submission API...", repo=settings.github_repo, write_order=settings.submit_write_order)
    if not settings.github_token:
        logger.warning("github_token_missing")

    app.state.http = httpx.AsyncClient(timeout=settings.github_timeout)
    yield
    await app.state.http.aclose()
    logger.info("Shutting down plugin submission API...")


app = FastAPI(
    title="WhiteSalary Plugin Submission API",
    description="Accepts plugin submissions and commits them to the plugin repository",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_middleware(LatencyMiddleware)
_register_route(app)


# Exception handlers
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Keep the submit contract (JSON body, CORS headers) on 429s"""
    if request.url.path != SUBMIT_PATH:
        return _rate_limit_exceeded_handler(request, exc)
    logger.warning("rate_limited", path=request.url.path, limit=exc.detail)
    response = cors_response(429, {"success": False, "error": f"Rate limit exceeded: {exc.detail}"})
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)

# Starlette's router raises this for unknown methods and paths, before any route runs.
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with proper logging"""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )
    if exc.status_code == 405 and request.url.path == SUBMIT_PATH:
        return cors_response(405, {"success": False, "error": "Method not allowed"})
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail}
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(
        "unexpected_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"}
    )


app.include_router(submit.router)


@app.get("/")
async def root():
    return {
        "service": "WhiteSalary Plugin Submission API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }

@app.get("/health")
async def health():
    return {"status": "healthy", "github_configured": bool(settings.github_token)}

@app.get("/metrics")
async def metrics():
    return PlainTextResponse(generate_latest().decode(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
