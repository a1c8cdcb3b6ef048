"""Copilot panel view model.

``CopilotPanel`` turns the client state (``response``, ``is_loading``) into
exactly one of four visual states and a flat ``PanelView`` describing what
is on screen. It owns only per-response UI state: which detail items are
expanded and whether the image failed to load.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from copilot_api.assist_client import AssistClient
from copilot_api.models import AssistResponse
from copilot_api.outcome import Failed, classify

logger = structlog.get_logger()

LOADING_TITLE = "AI is thinking..."
LOADING_SUBTITLE = "This may take a few seconds"
EMPTY_TITLE = "Ready to assist"
EMPTY_PROMPT = "Trigger an AI action to see suggestions and insights here"
WARNING_TITLE = "Using Cached Result"
IMAGE_ALT = "AI generated"
IMAGE_PLACEHOLDER_URL = "https://via.placeholder.com/400x200?text=Image+Failed+to+Load"

ANALYTICS_SOURCE = "copilot_panel"

Tracker = Callable[..., None]
ActionHandler = Callable[[str], None]

_UNSET = object()


class PanelState(str, Enum):
    LOADING = "loading"
    EMPTY = "empty"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class ItemView:
    """One expandable detail entry. ``content`` is None while collapsed."""

    index: int
    label: str
    content: str | None
    expanded: bool


@dataclass(frozen=True)
class ImageView:
    src: str
    alt: str = IMAGE_ALT


@dataclass(frozen=True)
class ActionView:
    label: str
    type: str
    handler: str


@dataclass(frozen=True)
class WarningView:
    title: str
    text: str


@dataclass(frozen=True)
class PanelView:
    """Everything the panel shows for its current state."""

    state: PanelState
    spinner: bool = False
    title: str | None = None
    subtitle: str | None = None
    error_headline: str | None = None
    error_detail: str | None = None
    warning: WarningView | None = None
    summary: str | None = None
    details: list[ItemView] = field(default_factory=list)
    image: ImageView | None = None
    actions: list[ActionView] = field(default_factory=list)


def log_analytics_event(event: str, **properties: Any) -> None:
    """Default tracker: write the event to the structured log."""
    logger.info("analytics_event", analytics_event=event, **properties)


class CopilotPanel:
    """Renders assist responses and dispatches action clicks.

    The panel either follows an ``AssistClient`` (re-syncing on every client
    state change) or is fed directly through ``update``.
    """

    def __init__(
        self,
        client: AssistClient | None = None,
        *,
        response: AssistResponse | None = None,
        is_loading: bool = False,
        is_open: bool = False,
        on_action_click: ActionHandler | None = None,
        tracker: Tracker | None = None,
    ):
        self._client = client
        self._response = response
        self._is_loading = is_loading
        self._is_open = is_open
        self._on_action_click = on_action_click
        self._tracker = tracker or log_analytics_event

        self._expanded: set[int] = set()
        self._image_failed = False
        self._seen_response: AssistResponse | None = None
        self._was_open = False
        self._unsubscribe: Callable[[], None] | None = None

        if client is not None:
            self._unsubscribe = client.subscribe(lambda _client: self._sync())
        self._sync()

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    @property
    def response(self) -> AssistResponse | None:
        return self._client.response if self._client else self._response

    @property
    def is_loading(self) -> bool:
        return self._client.is_loading if self._client else self._is_loading

    @property
    def is_open(self) -> bool:
        return self._client.is_open if self._client else self._is_open

    def update(
        self,
        response: AssistResponse | None | object = _UNSET,
        is_loading: bool | None = None,
    ) -> None:
        """Feed new state to a panel that isn't bound to a client.

        Omitted arguments keep their current value.
        """
        if self._client is not None:
            raise RuntimeError("Panel is bound to a client; update the client instead")
        if response is not _UNSET:
            self._response = response
        if is_loading is not None:
            self._is_loading = is_loading
        self._sync()

    def detach(self) -> None:
        """Stop following the client, keeping its last state as the panel's own."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._client is not None:
            self._response = self._client.response
            self._is_loading = self._client.is_loading
            self._is_open = self._client.is_open
            self._client = None

    def _sync(self) -> None:
        if self.is_open and not self._was_open:
            self._tracker("ai_session_started", source=ANALYTICS_SOURCE)
        self._was_open = self.is_open

        response = self.response
        if response is not self._seen_response:
            self._seen_response = response
            self._expanded.clear()
            self._image_failed = False
            if response is not None and not isinstance(classify(response), Failed):
                self._tracker(
                    "ai_artifact_generated",
                    type="copilot_response",
                    source=ANALYTICS_SOURCE,
                )

    # -------------------------------------------------------------------------
    # State and rendering
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PanelState:
        if self.is_loading:
            return PanelState.LOADING
        response = self.response
        if response is None:
            return PanelState.EMPTY
        if isinstance(classify(response), Failed):
            return PanelState.ERROR
        return PanelState.SUCCESS

    def render(self) -> PanelView:
        state = self.state

        if state is PanelState.LOADING:
            return PanelView(
                state=state, spinner=True, title=LOADING_TITLE, subtitle=LOADING_SUBTITLE
            )
        if state is PanelState.EMPTY:
            return PanelView(state=state, title=EMPTY_TITLE, subtitle=EMPTY_PROMPT)

        outcome = classify(self.response)
        if isinstance(outcome, Failed):
            return PanelView(
                state=state,
                error_headline=outcome.error,
                error_detail=outcome.fallback,
            )

        warning = getattr(outcome, "reason", None)
        details = [
            ItemView(
                index=i,
                label=f"Item {i + 1}",
                content=item if i in self._expanded else None,
                expanded=i in self._expanded,
            )
            for i, item in enumerate(outcome.items)
        ]
        image = None
        if outcome.image_url:
            src = IMAGE_PLACEHOLDER_URL if self._image_failed else outcome.image_url
            image = ImageView(src=src)

        return PanelView(
            state=state,
            warning=WarningView(title=WARNING_TITLE, text=warning) if warning else None,
            summary=outcome.summary,
            details=details,
            image=image,
            actions=[ActionView(a.label, a.type, a.handler) for a in outcome.actions],
        )

    # -------------------------------------------------------------------------
    # Interactions
    # -------------------------------------------------------------------------

    def toggle(self) -> None:
        """Open or close the panel. Never touches the response."""
        if self._client is not None:
            self._client.toggle()
        else:
            self._is_open = not self._is_open
            self._sync()

    def toggle_item(self, index: int) -> None:
        """Expand or collapse one detail item."""
        if self.state is not PanelState.SUCCESS:
            return
        items = self.response.items or []
        if not 0 <= index < len(items):
            raise IndexError(f"No detail item at index {index}")
        if index in self._expanded:
            self._expanded.remove(index)
        else:
            self._expanded.add(index)

    def image_failed(self) -> None:
        """Swap the generated image for the placeholder after a load error."""
        self._image_failed = True

    def click_action(self, index: int) -> None:
        """Report an action click to the host; the panel does nothing else."""
        view = self.render()
        if not view.actions:
            return
        if not 0 <= index < len(view.actions):
            raise IndexError(f"No action at index {index}")
        if self._on_action_click is not None:
            self._on_action_click(view.actions[index].handler)
