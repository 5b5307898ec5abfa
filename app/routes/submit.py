from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import json
import structlog

from core.config import Settings, get_settings, settings as app_settings
from core.rate_limit import limiter
from metrics.metrics import get_metrics
from services.github_contents import GitHubContentsClient
from services.submission_service import SubmissionService, parse_submission
from utils.exceptions import InvalidSubmissionError, SubmissionError

router = APIRouter(prefix="/api", tags=["submit"])
SUBMIT_PATH = "/api/submit"
logger = structlog.get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST",
    "Access-Control-Allow-Headers": "Content-Type",
}


def cors_response(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


async def get_submission_service(request: Request, settings: Settings = Depends(get_settings)):
    """Build a SubmissionService on the app's shared HTTP pool (or a private one)."""
    session = getattr(request.app.state, "http", None)
    contents = GitHubContentsClient.from_settings(settings, session=session)
    try:
        yield SubmissionService(contents, settings)
    finally:
        await contents.close()


async def _read_json(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidSubmissionError("请求体必须是 JSON 对象")


# Every method is routed here so the 405 carries our JSON body and CORS headers.
@router.api_route("/submit", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
@limiter.limit(app_settings.submit_rate_limit)
async def submit_plugin(
    request: Request,
    settings: Settings = Depends(get_settings),
    service: SubmissionService = Depends(get_submission_service),
):
    """Accept a plugin submission and commit it to the plugin repository."""
    if request.method != "POST":
        return cors_response(405, {"success": False, "error": "Method not allowed"})

    metrics = get_metrics()
    try:
        submission = parse_submission(await _read_json(request))
        settings.validate_required_vars()
        message = await service.submit(submission)
    except SubmissionError as e:
        logger.warning("submission_rejected", status_code=e.status_code, error=str(e), outcome=e.outcome)
        metrics.record_submission(e.outcome)
        return cors_response(e.status_code, {"success": False, "error": str(e)})
    except Exception as e:
        logger.error("submit_error", error=str(e), exc_info=True)
        metrics.record_submission("error")
        return cors_response(500, {"success": False, "error": str(e)})

    metrics.record_submission("success")
    return cors_response(200, {"success": True, "message": message})
