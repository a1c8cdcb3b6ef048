"""Tagged outcome variants for assist responses.

The wire format encodes failure and degraded success as optional fields on a
single shape. ``classify`` turns it into exactly one of ``Ok``, ``Degraded`` or
``Failed`` so rendering code can't treat a failure as a success.
"""

from dataclasses import dataclass, field

from copilot_api.models import AssistResponse, CopilotAction


@dataclass(frozen=True)
class Ok:
    """Live successful result."""

    summary: str
    items: list[str] = field(default_factory=list)
    actions: list[CopilotAction] = field(default_factory=list)
    image_url: str | None = None


@dataclass(frozen=True)
class Degraded:
    """Successful result served from a cached copy."""

    summary: str
    reason: str
    items: list[str] = field(default_factory=list)
    actions: list[CopilotAction] = field(default_factory=list)
    image_url: str | None = None


@dataclass(frozen=True)
class Failed:
    """Terminal failure; carries nothing but the message and hint."""

    error: str
    fallback: str | None = None


Outcome = Ok | Degraded | Failed


def classify(response: AssistResponse) -> Outcome:
    """Map a wire response onto its outcome variant.

    A truthy ``error`` wins over everything else and drops any success
    fields sent alongside it.
    """
    if response.error:
        return Failed(error=response.error, fallback=response.fallback or None)

    items = list(response.items or [])
    actions = list(response.actions or [])

    if response.warning:
        return Degraded(
            summary=response.summary,
            reason=response.warning,
            items=items,
            actions=actions,
            image_url=response.image_url or None,
        )

    return Ok(
        summary=response.summary,
        items=items,
        actions=actions,
        image_url=response.image_url or None,
    )


def outcome_label(outcome: Outcome) -> str:
    """Metric/log label for an outcome."""
    if isinstance(outcome, Failed):
        return "error"
    if isinstance(outcome, Degraded):
        return "degraded"
    return "success"
