"""FastAPI application entrypoint for the AI Copilot API."""

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from copilot_api import __version__
from copilot_api.ai_service import (
    generate_cover_letter,
    generate_fit_summary,
    generate_image,
    generate_jd,
    generate_screening_questions,
    improve_resume_bullets,
    rank_candidates,
)
from copilot_api.auth import TokenPayload, get_current_user
from copilot_api.config import get_settings
from copilot_api.errors import (
    AIServiceError,
    AppError,
    ErrorCode,
    internal_error,
    log_error,
    rate_limit_exceeded,
    validation_error,
)
from copilot_api.models import (
    AssistAction,
    AssistResponse,
    CopilotAction,
    ErrorResponse,
    HealthResponse,
    ImageRequest,
    JDGenerateRequest,
    JobCandidateRequest,
    ResumeImproveRequest,
    ShortlistRequest,
)
from copilot_api.monitoring import get_monitoring_service
from copilot_api.observability import (
    generate_trace_id,
    log_ai_request,
    log_ai_response,
    set_trace_id,
)
from copilot_api.provider_client import close_provider_client, get_provider_client

# Configure structlog
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
settings = get_settings()


def rate_limit_key(request: Request) -> str:
    """Rate limit per authenticated user, falling back to client IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


# Rate limiter
limiter = Limiter(key_func=rate_limit_key)


def ai_rate_limit() -> str:
    """Per-user limit for the assist routes, read from settings on each request."""
    return f"{get_settings().ai_rate_limit_per_minute}/minute"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown."""
    monitoring = get_monitoring_service()
    monitoring.log_startup(settings.port, settings.environment)

    try:
        await get_provider_client()
        logger.info("Provider client initialized")
    except Exception as e:
        logger.warning("Failed to initialize provider client", error=str(e))

    yield

    monitoring.log_shutdown()
    await close_provider_client()


# Create FastAPI app
app = FastAPI(
    title="AI Copilot API",
    description="AI assist routes for the job portal: fit summaries, cover letters, "
    "resume improvements, job descriptions, shortlists, screening questions and images",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Trace ID middleware for request correlation
@app.middleware("http")
async def trace_id_middleware(request: Request, call_next):
    """Add trace ID to every request for log correlation."""
    trace_id = request.headers.get("X-Trace-ID", generate_trace_id())
    set_trace_id(trace_id)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=trace_id)

    response = await call_next(request)

    response.headers["X-Trace-ID"] = trace_id
    return response


# =============================================================================
# Error Contract
# =============================================================================


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    code: ErrorCode,
    fallback: str | None = None,
    details: object = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        fallback=fallback,
        code=code,
        details=jsonable_encoder(details) if details is not None else None,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors as ``{error, fallback?, code}``.

    ``fallback`` on the wire is the remediation hint, never cached content.
    """
    log_error(exc, method=request.method, path=request.url.path)
    headers = None
    if exc.code == ErrorCode.RATE_LIMIT_EXCEEDED and isinstance(exc.details, dict):
        retry_after = exc.details.get("retryAfter")
        if retry_after:
            headers = {"Retry-After": str(retry_after)}
    return _error_response(
        request,
        exc.status_code,
        exc.message,
        exc.code,
        fallback=exc.hint,
        details=exc.details if exc.code != ErrorCode.AI_SERVICE_ERROR else None,
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Request validation failed", path=request.url.path)
    return _error_response(
        request,
        400,
        "Validation failed",
        ErrorCode.VALIDATION_ERROR,
        details=exc.errors(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = None
    limit = getattr(exc, "limit", None)
    if limit is not None:
        retry_after = limit.limit.get_expiry()
    return await app_error_handler(request, rate_limit_exceeded(retry_after))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    codes = {
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
    }
    code = codes.get(exc.status_code, ErrorCode.INVALID_INPUT)
    if exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    return _error_response(request, exc.status_code, str(exc.detail), code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    get_monitoring_service().record_error(exc, method=request.method, path=request.url.path)
    error = internal_error(str(exc)) if settings.is_development else internal_error()
    return _error_response(request, error.status_code, error.message, error.code)


# Add rate limiter
app.state.limiter = limiter

# Add Prometheus metrics
Instrumentator().instrument(app).expose(app)


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse)
@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check(response: Response) -> HealthResponse:
    """Check the health of the API and its dependencies."""
    health = get_monitoring_service().perform_health_check()
    if health.status == "unhealthy":
        response.status_code = 503
    return health


# =============================================================================
# Assist Endpoints
# =============================================================================

COVER_LETTER_ACTION = CopilotAction(
    label="Generate Cover Letter", type="primary", handler="generateCoverLetter"
)
USE_COVER_LETTER_ACTION = CopilotAction(
    label="Use This Cover Letter", type="primary", handler="useCoverLetter"
)
REGENERATE_COVER_LETTER_ACTION = CopilotAction(
    label="Regenerate", type="secondary", handler="regenerateCoverLetter"
)
APPLY_IMPROVEMENTS_ACTION = CopilotAction(
    label="Apply Suggestions", type="primary", handler="applyImprovements"
)
USE_JD_ACTION = CopilotAction(label="Use This JD", type="primary", handler="useJD")
REGENERATE_JD_ACTION = CopilotAction(label="Regenerate", type="secondary", handler="regenerateJD")
VIEW_SHORTLIST_ACTION = CopilotAction(
    label="View Top Candidates", type="primary", handler="viewShortlist"
)


async def _run_assist(
    action: AssistAction,
    user: TokenPayload,
    payload_chars: int,
    produce: Callable[[], Awaitable[str]],
    on_success: Callable[[str], AssistResponse],
    on_degraded: Callable[[str, str], AssistResponse],
) -> dict:
    """Run one assist action and shape the result.

    A provider failure with a cached copy becomes a 200 carrying ``warning``;
    without one the ``AIServiceError`` propagates to the error handler.
    """
    request_log = log_ai_request(action.value, user_id=user.user_id, payload_chars=payload_chars)

    try:
        text = await produce()
    except AIServiceError as e:
        if e.fallback is None:
            log_ai_response(request_log, "error", error=e.message)
            raise
        log_ai_response(request_log, "degraded")
        return on_degraded(e.fallback, e.message).to_wire()
    except Exception as e:
        log_ai_response(request_log, "error", error=str(e))
        raise

    log_ai_response(request_log, "success")
    return on_success(text).to_wire()


@app.post("/api/ai/fit-summary")
@limiter.limit(ai_rate_limit)
async def fit_summary(
    request: Request,
    body: JobCandidateRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Generate a fit summary for a candidate-job match."""
    if not body.job_data or not body.candidate_profile:
        raise validation_error("Missing required fields: jobData and candidateProfile")
    job, candidate = body.job_data, body.candidate_profile

    return await _run_assist(
        AssistAction.FIT_SUMMARY,
        user,
        len(body.model_dump_json()),
        lambda: generate_fit_summary(job, candidate),
        lambda text: AssistResponse(summary=text, actions=[COVER_LETTER_ACTION]),
        lambda cached, warning: AssistResponse(
            summary=cached, warning=warning, actions=[COVER_LETTER_ACTION]
        ),
    )


@app.post("/api/ai/cover-letter")
@limiter.limit(ai_rate_limit)
async def cover_letter(
    request: Request,
    body: JobCandidateRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Generate a tailored cover letter."""
    if not body.job_data or not body.candidate_profile:
        raise validation_error("Missing required fields: jobData and candidateProfile")
    job, candidate = body.job_data, body.candidate_profile

    return await _run_assist(
        AssistAction.COVER_LETTER,
        user,
        len(body.model_dump_json()),
        lambda: generate_cover_letter(job, candidate),
        lambda text: AssistResponse(
            summary="Cover letter generated successfully",
            items=[text],
            actions=[USE_COVER_LETTER_ACTION, REGENERATE_COVER_LETTER_ACTION],
        ),
        lambda cached, warning: AssistResponse(
            summary="Using cached cover letter",
            items=[cached],
            warning=warning,
            actions=[USE_COVER_LETTER_ACTION],
        ),
    )


@app.post("/api/ai/resume-improve")
@limiter.limit(ai_rate_limit)
async def resume_improve(
    request: Request,
    body: ResumeImproveRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Suggest resume bullet improvements."""
    if not body.bullets:
        raise validation_error("Missing or invalid bullets array")
    bullets = body.bullets

    return await _run_assist(
        AssistAction.RESUME_IMPROVE,
        user,
        sum(len(b) for b in bullets),
        lambda: improve_resume_bullets(bullets),
        lambda text: AssistResponse(
            summary="Resume improvements generated",
            items=[text],
            actions=[APPLY_IMPROVEMENTS_ACTION],
        ),
        lambda cached, warning: AssistResponse(
            summary="Using cached suggestions",
            items=[cached],
            warning=warning,
            actions=[APPLY_IMPROVEMENTS_ACTION],
        ),
    )


@app.post("/api/ai/jd-generate")
@limiter.limit(ai_rate_limit)
async def jd_generate(
    request: Request,
    body: JDGenerateRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Generate a job description from recruiter notes."""
    if not body.notes or not body.notes.strip():
        raise validation_error("Missing or empty notes field")
    notes = body.notes

    return await _run_assist(
        AssistAction.JD_GENERATE,
        user,
        len(notes),
        lambda: generate_jd(notes),
        lambda text: AssistResponse(
            summary="Job description generated successfully",
            items=[text],
            actions=[USE_JD_ACTION, REGENERATE_JD_ACTION],
        ),
        lambda cached, warning: AssistResponse(
            summary="Using cached job description",
            items=[cached],
            warning=warning,
            actions=[USE_JD_ACTION],
        ),
    )


@app.post("/api/ai/shortlist")
@limiter.limit(ai_rate_limit)
async def shortlist(
    request: Request,
    body: ShortlistRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Rank applicants for a job."""
    if not body.job_data or body.applications is None:
        raise validation_error("Missing required fields: jobData and applications array")
    job, applications = body.job_data, body.applications

    return await _run_assist(
        AssistAction.SHORTLIST,
        user,
        len(body.model_dump_json()),
        lambda: rank_candidates(job, applications),
        lambda text: AssistResponse(
            summary="Candidates ranked by fit score",
            items=[text],
            actions=[VIEW_SHORTLIST_ACTION],
        ),
        lambda cached, warning: AssistResponse(
            summary="Using cached ranking",
            items=[cached],
            warning=warning,
            actions=[VIEW_SHORTLIST_ACTION],
        ),
    )


@app.post("/api/ai/screening-questions")
@limiter.limit(ai_rate_limit)
async def screening_questions(
    request: Request,
    body: JobCandidateRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Generate screening questions for a candidate."""
    if not body.job_data or not body.candidate_profile:
        raise validation_error("Missing required fields: jobData and candidateProfile")
    job, candidate = body.job_data, body.candidate_profile

    return await _run_assist(
        AssistAction.SCREENING_QUESTIONS,
        user,
        len(body.model_dump_json()),
        lambda: generate_screening_questions(job, candidate),
        lambda text: AssistResponse(summary="Screening questions generated", items=[text]),
        lambda cached, warning: AssistResponse(
            summary="Using cached questions", items=[cached], warning=warning
        ),
    )


@app.post("/api/ai/image")
@limiter.limit(ai_rate_limit)
async def image(
    request: Request,
    body: ImageRequest,
    user: TokenPayload = Depends(get_current_user),
) -> dict:
    """Generate an image URL for a prompt."""
    if not body.prompt or not body.prompt.strip():
        raise validation_error("Missing or empty prompt field")

    request_log = log_ai_request(
        AssistAction.IMAGE.value, user_id=user.user_id, payload_chars=len(body.prompt)
    )
    image_url = await generate_image(
        body.prompt, width=body.width, height=body.height, seed=body.seed
    )
    log_ai_response(request_log, "success")

    return AssistResponse(summary="Image URL generated", image_url=image_url).to_wire()


# =============================================================================
# Entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "copilot_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
