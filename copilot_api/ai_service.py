"""AI generation service: caching, retries, circuit breaking and fallbacks.

``generate_text`` is the single path to the text provider:

1. A fresh cache hit is returned directly.
2. Otherwise the provider is called behind the circuit breaker, with
   exponential-backoff retries.
3. When every attempt fails, a stale cached copy (if any) is attached to the
   raised ``AIServiceError`` as ``fallback`` so the routes can answer with a
   degraded success; without one the error carries only a remediation hint.
"""

import time

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from copilot_api.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from copilot_api.config import get_settings
from copilot_api.errors import (
    DEFAULT_AI_HINT,
    DEFAULT_AI_UNAVAILABLE,
    ai_service_error,
    log_error,
)
from copilot_api.models import Application, CandidateProfile, JobData
from copilot_api.monitoring import get_monitoring_service
from copilot_api.observability import record_circuit_state, record_provider_call
from copilot_api.prompts import (
    CANDIDATE_RANKING_SYSTEM_PROMPT,
    COVER_LETTER_SYSTEM_PROMPT,
    FIT_SUMMARY_SYSTEM_PROMPT,
    JD_GENERATION_SYSTEM_PROMPT,
    RESUME_IMPROVEMENT_SYSTEM_PROMPT,
    SCREENING_QUESTIONS_SYSTEM_PROMPT,
    PromptOptions,
    build_candidate_ranking_user_prompt,
    build_cover_letter_user_prompt,
    build_fit_summary_user_prompt,
    build_jd_generation_user_prompt,
    build_prompt_options,
    build_resume_improvement_user_prompt,
    build_screening_questions_user_prompt,
)
from copilot_api.provider_client import ProviderError, get_provider_client
from copilot_api.response_cache import get_response_cache, make_key

logger = structlog.get_logger()

CACHED_RESULT_MESSAGE = "AI service temporarily unavailable. Using cached result."

DEFAULT_PLACEHOLDER_IMAGE = (
    "data:image/svg+xml,%3Csvg xmlns=%22http://www.w3.org/2000/svg%22 width=%221200%22 "
    "height=%22630%22 viewBox=%220 0 1200 630%22%3E%3Crect fill=%22%234F46E5%22 "
    "width=%221200%22 height=%22630%22/%3E%3Ctext x=%2250%25%22 y=%2250%25%22 "
    "dominant-baseline=%22middle%22 text-anchor=%22middle%22 font-family=%22sans-serif%22 "
    "font-size=%2248%22 fill=%22white%22%3EJob Opportunity%3C/text%3E%3C/svg%3E"
)


# =============================================================================
# Circuit Breaker
# =============================================================================

_circuit_breaker: CircuitBreaker | None = None


def _on_circuit_change(_name: str, _old: CircuitState, new: CircuitState) -> None:
    record_circuit_state(new.value)


def get_circuit_breaker() -> CircuitBreaker:
    """Get the global provider circuit breaker."""
    global _circuit_breaker
    if _circuit_breaker is None:
        settings = get_settings()
        _circuit_breaker = CircuitBreaker(
            name="ai_provider",
            failure_threshold=settings.circuit_breaker_threshold,
            recovery_timeout=settings.circuit_breaker_timeout,
            on_state_change=_on_circuit_change,
        )
    return _circuit_breaker


def reset_circuit_breaker() -> None:
    """Reset the global circuit breaker (for testing)."""
    global _circuit_breaker
    _circuit_breaker = None
    record_circuit_state(CircuitState.CLOSED.value)


# =============================================================================
# Text Generation
# =============================================================================


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Provider attempt failed, retrying",
        attempt=retry_state.attempt_number,
        delay_seconds=delay,
        error=str(error),
    )


async def _call_provider(
    system_prompt: str,
    user_prompt: str,
    model: str | None,
    temperature: float | None,
    seed: int | None,
) -> str:
    """Call the provider with retries, recording the result on the breaker."""
    settings = get_settings()
    breaker = get_circuit_breaker()

    try:
        breaker.check()
    except CircuitOpenError:
        record_provider_call("rejected")
        raise

    client = await get_provider_client()

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.ai_max_retries),
            wait=wait_exponential(multiplier=settings.ai_retry_base_delay, min=0),
            retry=retry_if_exception_type(ProviderError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                text = await client.generate_text(
                    system_prompt,
                    user_prompt,
                    model=model,
                    temperature=temperature,
                    seed=seed,
                )
    except ProviderError:
        record_provider_call("error")
        breaker.record_failure()
        raise

    record_provider_call("success")
    breaker.record_success()
    return text


async def generate_text(
    system_prompt: str,
    user_prompt: str,
    *,
    model: str | None = None,
    temperature: float | None = None,
    seed: int | None = None,
    cache_ttl: int | None = None,
    fallback_message: str | None = None,
    operation: str = "generate_text",
) -> str:
    """Generate text with caching, retries and graceful degradation.

    Args:
        system_prompt: System instructions for the model.
        user_prompt: Rendered user prompt.
        model: Model override.
        temperature: Temperature override.
        seed: Seed override.
        cache_ttl: Fresh-cache lifetime in seconds. Defaults to config value.
        fallback_message: Error message when no cached copy exists.
        operation: Name used in logs and metrics.

    Returns:
        Generated (or freshly cached) text.

    Raises:
        AIServiceError: With ``fallback`` set to a stale cached copy when one
            exists, otherwise with only a remediation ``hint``.
    """
    settings = get_settings()
    cache = get_response_cache()
    monitoring = get_monitoring_service()

    cache_key = make_key(
        "ai:text",
        {
            "system": system_prompt,
            "prompt": user_prompt,
            "model": model,
            "temperature": temperature,
            "seed": seed,
        },
    )

    cached = cache.get(cache_key)
    if cached is not None:
        monitoring.record_cache_operation("hit", cache_key)
        logger.info("Returning cached AI response", operation=operation)
        return cached
    monitoring.record_cache_operation("miss", cache_key)

    started = time.monotonic()
    try:
        result = await _call_provider(system_prompt, user_prompt, model, temperature, seed)
    except (ProviderError, CircuitOpenError) as e:
        monitoring.record_ai_usage(operation, time.monotonic() - started, success=False)
        log_error(
            e,
            service="ai_service",
            operation=operation,
            circuit_state=get_circuit_breaker().state.value,
        )

        fallback = cache.get_fallback(cache_key)
        if fallback is not None:
            monitoring.record_cache_operation("stale_hit", cache_key)
            logger.warning("Using expired cached result as fallback", operation=operation)
            raise ai_service_error(CACHED_RESULT_MESSAGE, fallback=fallback) from e

        raise ai_service_error(
            fallback_message or DEFAULT_AI_UNAVAILABLE,
            hint=DEFAULT_AI_HINT,
        ) from e

    monitoring.record_ai_usage(operation, time.monotonic() - started, success=True)
    cache.set(cache_key, result, cache_ttl or settings.ai_cache_ttl)
    monitoring.record_cache_operation("set", cache_key)
    return result


# =============================================================================
# Image Generation
# =============================================================================


async def generate_image(
    prompt: str,
    width: int | None = None,
    height: int | None = None,
    seed: int | None = None,
    nologo: bool = True,
    fallback_url: str | None = None,
) -> str:
    """Build (and cache) the image URL for a prompt.

    Image generation never fails the request: if the URL can't be built the
    fallback URL, or the default placeholder, is returned instead.
    """
    settings = get_settings()
    cache = get_response_cache()
    monitoring = get_monitoring_service()

    cache_key = make_key(
        "ai:image",
        {"prompt": prompt, "width": width, "height": height, "seed": seed, "nologo": nologo},
    )

    cached = cache.get(cache_key)
    if cached is not None:
        monitoring.record_cache_operation("hit", cache_key)
        logger.info("Returning cached image URL")
        return cached
    monitoring.record_cache_operation("miss", cache_key)

    try:
        client = await get_provider_client()
        image_url = client.build_image_url(
            prompt, width=width, height=height, seed=seed, nologo=nologo
        )
    except (ProviderError, ValueError, TypeError) as e:
        log_error(e, service="ai_service", operation="generate_image")
        placeholder = fallback_url or DEFAULT_PLACEHOLDER_IMAGE
        logger.warning("Using fallback image due to AI service error")
        return placeholder

    cache.set(cache_key, image_url, settings.ai_image_cache_ttl)
    monitoring.record_cache_operation("set", cache_key)
    return image_url


# =============================================================================
# Assist Operations
# =============================================================================


async def _generate(system_prompt: str, user_prompt: str, operation: str) -> str:
    options: PromptOptions = build_prompt_options()
    return await generate_text(
        system_prompt,
        user_prompt,
        model=options.model,
        temperature=options.temperature,
        seed=options.seed,
        cache_ttl=options.cache_ttl,
        operation=operation,
    )


async def generate_fit_summary(job: JobData, candidate: CandidateProfile) -> str:
    """Summarise how well a candidate matches a job."""
    return await _generate(
        FIT_SUMMARY_SYSTEM_PROMPT,
        build_fit_summary_user_prompt(job, candidate),
        "fit_summary",
    )


async def generate_cover_letter(job: JobData, candidate: CandidateProfile) -> str:
    """Write a tailored cover letter."""
    return await _generate(
        COVER_LETTER_SYSTEM_PROMPT,
        build_cover_letter_user_prompt(job, candidate),
        "cover_letter",
    )


async def improve_resume_bullets(bullets: list[str]) -> str:
    """Suggest ATS-friendly rewrites of resume bullets."""
    return await _generate(
        RESUME_IMPROVEMENT_SYSTEM_PROMPT,
        build_resume_improvement_user_prompt(bullets),
        "resume_improve",
    )


async def generate_jd(notes: str) -> str:
    """Turn recruiter notes into a structured job description."""
    return await _generate(
        JD_GENERATION_SYSTEM_PROMPT,
        build_jd_generation_user_prompt(notes),
        "jd_generate",
    )


async def rank_candidates(job: JobData, applications: list[Application]) -> str:
    """Rank applicants for a job with rationale."""
    return await _generate(
        CANDIDATE_RANKING_SYSTEM_PROMPT,
        build_candidate_ranking_user_prompt(job, applications),
        "shortlist",
    )


async def generate_screening_questions(job: JobData, candidate: CandidateProfile) -> str:
    """Draft screening questions for a candidate-job pair."""
    return await _generate(
        SCREENING_QUESTIONS_SYSTEM_PROMPT,
        build_screening_questions_user_prompt(job, candidate),
        "screening_questions",
    )
