"""Gateway client for the assist routes.

``AssistClient`` holds the state a copilot panel renders from: whether the
panel is open, the latest response and whether a request is in flight. Every
call resolves to an ``AssistResponse``; failures are folded into its
``error``/``fallback`` fields instead of being raised.

Each call takes a sequence number. Only the most recently started call may
write ``response`` or clear ``is_loading``, so a slow earlier request can't
overwrite a newer one.
"""

from collections.abc import Callable
from typing import Any

import httpx
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from copilot_api.config import get_settings
from copilot_api.models import (
    Application,
    AssistAction,
    AssistResponse,
    CandidateProfile,
    JobData,
)
from copilot_api.outcome import classify, outcome_label

logger = structlog.get_logger()

DEFAULT_ERROR_MESSAGE = "An error occurred"
NETWORK_ERROR_MESSAGE = "Network error"
NETWORK_ERROR_FALLBACK = "Please check your connection and try again"

Listener = Callable[["AssistClient"], None]


def _to_json(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    return value


def network_error_response() -> AssistResponse:
    return AssistResponse(
        summary="", error=NETWORK_ERROR_MESSAGE, fallback=NETWORK_ERROR_FALLBACK
    )


class AssistClient:
    """Client-side state and transport for the copilot panel."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API origin. Defaults to ``settings.api_base_url``.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._base_url = (base_url or get_settings().api_base_url).rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._listeners: list[Listener] = []
        self._sequence = 0

        self.is_open = False
        self.response: AssistResponse | None = None
        self.is_loading = False

    async def __aenter__(self) -> "AssistClient":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # No client-side timeout; the server bounds provider calls.
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=None,
                transport=self._transport,
            )
        return self._client

    # -------------------------------------------------------------------------
    # Panel visibility
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state-change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def toggle(self) -> None:
        self.is_open = not self.is_open
        self._notify()

    def open(self) -> None:
        self.is_open = True
        self._notify()

    def close(self) -> None:
        """Hide the panel. The current response and loading flag are kept."""
        self.is_open = False
        self._notify()

    def clear_response(self) -> None:
        self.response = None
        self._notify()

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def call(
        self,
        action: AssistAction | str,
        data: dict[str, Any],
        token: str | None = None,
    ) -> AssistResponse:
        """POST an assist action and store the result.

        Never raises: HTTP errors and transport failures come back as an
        ``AssistResponse`` with ``error`` set.
        """
        action_name = action.value if isinstance(action, AssistAction) else action
        self._sequence += 1
        sequence = self._sequence

        self.is_loading = True
        self.is_open = True
        self._notify()

        result = await self._send(action_name, data, token)

        if sequence == self._sequence:
            self.response = result
            self.is_loading = False
            self._notify()
        else:
            logger.debug("Discarding superseded assist response", action=action_name)

        logger.info(
            "Assist call completed",
            action=action_name,
            outcome=outcome_label(classify(result)),
            current=sequence == self._sequence,
        )
        return result

    async def _send(
        self, action_name: str, data: dict[str, Any], token: str | None
    ) -> AssistResponse:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._get_client().post(
                f"/api/ai/{action_name}", json=_to_json(data), headers=headers
            )
            body = response.json()
            if not response.is_success:
                if not isinstance(body, dict):
                    body = {}
                return AssistResponse(
                    summary="",
                    error=body.get("error") or DEFAULT_ERROR_MESSAGE,
                    fallback=body.get("fallback"),
                )
            return AssistResponse.model_validate(body)
        except (httpx.HTTPError, ValueError, PydanticValidationError) as e:
            logger.warning("Assist request failed", action=action_name, error=str(e))
            return network_error_response()

    async def generate_fit_summary(
        self,
        job_data: JobData | dict[str, Any],
        candidate_profile: CandidateProfile | dict[str, Any],
        token: str | None = None,
    ) -> AssistResponse:
        return await self.call(
            AssistAction.FIT_SUMMARY,
            {"jobData": job_data, "candidateProfile": candidate_profile},
            token,
        )

    async def generate_cover_letter(
        self,
        job_data: JobData | dict[str, Any],
        candidate_profile: CandidateProfile | dict[str, Any],
        token: str | None = None,
    ) -> AssistResponse:
        return await self.call(
            AssistAction.COVER_LETTER,
            {"jobData": job_data, "candidateProfile": candidate_profile},
            token,
        )

    async def improve_resume(self, bullets: list[str], token: str | None = None) -> AssistResponse:
        return await self.call(AssistAction.RESUME_IMPROVE, {"bullets": bullets}, token)

    async def generate_jd(self, notes: str, token: str | None = None) -> AssistResponse:
        return await self.call(AssistAction.JD_GENERATE, {"notes": notes}, token)

    async def rank_candidates(
        self,
        job_data: JobData | dict[str, Any],
        applications: list[Application] | list[dict[str, Any]],
        token: str | None = None,
    ) -> AssistResponse:
        return await self.call(
            AssistAction.SHORTLIST,
            {"jobData": job_data, "applications": applications},
            token,
        )

    async def generate_screening_questions(
        self,
        job_data: JobData | dict[str, Any],
        candidate_profile: CandidateProfile | dict[str, Any],
        token: str | None = None,
    ) -> AssistResponse:
        return await self.call(
            AssistAction.SCREENING_QUESTIONS,
            {"jobData": job_data, "candidateProfile": candidate_profile},
            token,
        )

    async def generate_image(
        self,
        prompt: str,
        token: str | None = None,
        width: int | None = None,
        height: int | None = None,
        seed: int | None = None,
    ) -> AssistResponse:
        data: dict[str, Any] = {"prompt": prompt}
        if width is not None:
            data["width"] = width
        if height is not None:
            data["height"] = height
        if seed is not None:
            data["seed"] = seed
        return await self.call(AssistAction.IMAGE, data, token)
