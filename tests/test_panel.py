"""Tests for the copilot panel view model."""

import asyncio

import httpx
import pytest

from copilot_api.assist_client import AssistClient
from copilot_api.models import AssistResponse, CopilotAction
from copilot_api.panel import (
    EMPTY_PROMPT,
    EMPTY_TITLE,
    IMAGE_PLACEHOLDER_URL,
    LOADING_SUBTITLE,
    LOADING_TITLE,
    WARNING_TITLE,
    CopilotPanel,
    ItemView,
    PanelState,
    log_analytics_event,
)


class Recorder:
    """Collects tracker events."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event: str, **properties) -> None:
        self.events.append((event, properties))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def _client(handler) -> AssistClient:
    return AssistClient(base_url="http://api.test", transport=httpx.MockTransport(handler))


def _full_response(**overrides) -> AssistResponse:
    fields = {
        "summary": "Summary text",
        "items": ["First", "Second"],
        "actions": [
            CopilotAction(label="Use", type="primary", handler="useThing"),
            CopilotAction(label="Again", type="secondary", handler="regenerateThing"),
        ],
        "image_url": "https://img.test/a.png",
    }
    fields.update(overrides)
    return AssistResponse(**fields)


class TestStates:
    """State derivation and per-state rendering."""

    def test_empty(self) -> None:
        view = CopilotPanel().render()

        assert view.state is PanelState.EMPTY
        assert view.title == EMPTY_TITLE
        assert view.subtitle == EMPTY_PROMPT
        assert view.summary is None
        assert view.error_headline is None

    def test_loading_wins_over_response(self) -> None:
        panel = CopilotPanel(response=_full_response(), is_loading=True)
        view = panel.render()

        assert view.state is PanelState.LOADING
        assert view.spinner is True
        assert view.title == LOADING_TITLE
        assert view.subtitle == LOADING_SUBTITLE
        assert view.details == []
        assert view.actions == []

    def test_success_renders_summary_not_error(self) -> None:
        view = CopilotPanel(response=_full_response()).render()

        assert view.state is PanelState.SUCCESS
        assert view.summary == "Summary text"
        assert view.error_headline is None
        assert view.warning is None
        assert [i.label for i in view.details] == ["Item 1", "Item 2"]
        assert view.image.src == "https://img.test/a.png"
        assert view.image.alt == "AI generated"
        assert [a.handler for a in view.actions] == ["useThing", "regenerateThing"]

    def test_error_suppresses_everything_else(self) -> None:
        response = _full_response(error="Boom", fallback="Try later", warning="cached")
        view = CopilotPanel(response=response).render()

        assert view.state is PanelState.ERROR
        assert view.error_headline == "Boom"
        assert view.error_detail == "Try later"
        assert view.summary is None
        assert view.details == []
        assert view.actions == []
        assert view.image is None
        assert view.warning is None

    def test_error_without_fallback(self) -> None:
        view = CopilotPanel(response=AssistResponse(error="Boom")).render()
        assert view.error_detail is None

    def test_warning_banner_is_not_an_error(self) -> None:
        recorder = Recorder()
        panel = CopilotPanel(
            response=AssistResponse(summary="ok", warning="cached copy"), tracker=recorder
        )
        view = panel.render()

        assert view.state is PanelState.SUCCESS
        assert view.warning.title == WARNING_TITLE
        assert view.warning.text == "cached copy"
        assert view.error_headline is None
        assert "ai_artifact_generated" in recorder.names()

    @pytest.mark.parametrize("items", [None, []])
    def test_no_items_means_no_details(self, items) -> None:
        view = CopilotPanel(response=AssistResponse(summary="ok", items=items)).render()
        assert view.details == []

    def test_empty_actions_render_nothing(self) -> None:
        view = CopilotPanel(response=AssistResponse(summary="ok", actions=[])).render()
        assert view.actions == []


class TestInteractions:
    def test_items_start_collapsed_and_toggle_independently(self) -> None:
        panel = CopilotPanel(response=_full_response())

        panel.toggle_item(1)
        details = panel.render().details

        assert details[0] == ItemView(index=0, label="Item 1", content=None, expanded=False)
        assert details[1] == ItemView(index=1, label="Item 2", content="Second", expanded=True)

        panel.toggle_item(1)
        assert panel.render().details[1].expanded is False

    def test_toggle_unknown_item(self) -> None:
        panel = CopilotPanel(response=_full_response())
        with pytest.raises(IndexError):
            panel.toggle_item(5)

    def test_new_response_resets_expansion(self) -> None:
        panel = CopilotPanel(response=_full_response())
        panel.toggle_item(0)
        panel.image_failed()

        panel.update(response=_full_response())
        view = panel.render()

        assert all(not item.expanded for item in view.details)
        assert view.image.src == "https://img.test/a.png"

    def test_image_failure_shows_placeholder(self) -> None:
        panel = CopilotPanel(response=_full_response())
        panel.image_failed()
        assert panel.render().image.src == IMAGE_PLACEHOLDER_URL

    def test_click_action_reports_handler_only(self) -> None:
        clicked: list[str] = []
        response = _full_response()
        panel = CopilotPanel(response=response, on_action_click=clicked.append)

        panel.click_action(1)

        assert clicked == ["regenerateThing"]
        assert panel.response is response
        assert panel.state is PanelState.SUCCESS

    def test_click_ignored_while_loading(self) -> None:
        clicked: list[str] = []
        panel = CopilotPanel(
            response=_full_response(), is_loading=True, on_action_click=clicked.append
        )
        panel.click_action(0)
        assert clicked == []

    def test_toggle_keeps_response(self) -> None:
        panel = CopilotPanel(response=_full_response())
        panel.toggle()
        panel.toggle()
        assert panel.is_open is False
        assert panel.state is PanelState.SUCCESS

    def test_loading_flag_update_keeps_response(self) -> None:
        response = AssistResponse(summary="kept")
        panel = CopilotPanel(response=response, tracker=Recorder())

        panel.update(is_loading=True)
        assert panel.state is PanelState.LOADING
        panel.update(is_loading=False)

        assert panel.response is response
        assert panel.state is PanelState.SUCCESS
        assert panel.render().summary == "kept"

    def test_update_can_clear_response(self) -> None:
        panel = CopilotPanel(response=AssistResponse(summary="x"), tracker=Recorder())
        panel.update(response=None)
        assert panel.state is PanelState.EMPTY

    def test_bound_panel_rejects_direct_update(self) -> None:
        panel = CopilotPanel(AssistClient(base_url="http://api.test"))
        with pytest.raises(RuntimeError):
            panel.update(response=AssistResponse(summary="x"))


class TestAnalytics:
    def test_default_tracker_logs_events(self) -> None:
        panel = CopilotPanel(response=AssistResponse(summary="ok"))
        panel.toggle()

        assert panel.state is PanelState.SUCCESS
        assert panel.render().summary == "ok"

    def test_default_tracker_signature(self) -> None:
        log_analytics_event("ai_session_started", source="copilot_panel")
        log_analytics_event("ai_artifact_generated", type="copilot_response", source="copilot_panel")

    def test_opening_starts_session(self) -> None:
        recorder = Recorder()
        panel = CopilotPanel(tracker=recorder)

        panel.toggle()
        panel.toggle()
        panel.toggle()

        assert recorder.events == [
            ("ai_session_started", {"source": "copilot_panel"}),
            ("ai_session_started", {"source": "copilot_panel"}),
        ]

    def test_errors_skip_artifact_event(self) -> None:
        recorder = Recorder()
        panel = CopilotPanel(tracker=recorder)

        panel.update(response=AssistResponse(error="Boom"))
        assert recorder.names() == []

        panel.update(response=AssistResponse(summary="ok"))
        assert recorder.events == [
            ("ai_artifact_generated", {"type": "copilot_response", "source": "copilot_panel"})
        ]


class TestWithClient:
    """Panel following a live AssistClient."""

    @pytest.mark.asyncio
    async def test_cover_letter_success_scenario(self) -> None:
        client = _client(
            lambda request: httpx.Response(
                200,
                json={"summary": "Strong match for backend role", "items": ["Draft paragraph 1"]},
            )
        )
        panel = CopilotPanel(client)
        assert panel.state is PanelState.EMPTY

        await client.generate_cover_letter(
            {"title": "Backend Engineer"}, {"skills": ["Node"]}, token="t"
        )
        view = panel.render()

        assert view.state is PanelState.SUCCESS
        assert view.summary == "Strong match for backend role"
        assert view.details == [ItemView(index=0, label="Item 1", content=None, expanded=False)]

    @pytest.mark.asyncio
    async def test_image_failure_scenario(self) -> None:
        client = _client(
            lambda request: httpx.Response(
                503, json={"error": "Provider unavailable", "fallback": "Try again in a minute"}
            )
        )
        panel = CopilotPanel(client)

        await client.generate_image("banner", token="t")
        view = panel.render()

        assert view.state is PanelState.ERROR
        assert view.error_headline == "Provider unavailable"
        assert view.error_detail == "Try again in a minute"
        assert view.image is None

    @pytest.mark.asyncio
    async def test_degraded_shortlist_scenario(self) -> None:
        client = _client(
            lambda request: httpx.Response(
                200,
                json={
                    "summary": "Ranked 3 candidates",
                    "items": ["A", "B", "C"],
                    "warning": "Using cached ranking from 10 minutes ago",
                },
            )
        )
        panel = CopilotPanel(client)

        await client.rank_candidates({"title": "x"}, [{}, {}, {}], token="t")
        view = panel.render()

        assert view.state is PanelState.SUCCESS
        assert view.warning.text == "Using cached ranking from 10 minutes ago"
        assert view.summary == "Ranked 3 candidates"
        assert len(view.details) == 3

    @pytest.mark.asyncio
    async def test_loading_transition_and_network_error(self) -> None:
        release = asyncio.Event()
        states: list[PanelState] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            await release.wait()
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        panel = CopilotPanel(client)
        client.subscribe(lambda _c: states.append(panel.state))

        task = asyncio.create_task(client.generate_jd("notes"))
        await asyncio.sleep(0)
        assert panel.state is PanelState.LOADING
        release.set()
        await task

        assert states == [PanelState.LOADING, PanelState.ERROR]
        assert panel.render().error_headline == "Network error"

    @pytest.mark.asyncio
    async def test_identical_calls_give_identical_state(self) -> None:
        client = _client(
            lambda request: httpx.Response(200, json={"summary": "same", "items": ["x", "y"]})
        )
        panel = CopilotPanel(client)

        await client.generate_jd("notes")
        panel.toggle_item(0)
        first = panel.render()

        await client.generate_jd("notes")
        second = panel.render()

        assert first.details[0].expanded is True
        assert second.details[0].expanded is False
        assert second == CopilotPanel(response=client.response).render()

    @pytest.mark.asyncio
    async def test_detached_panel_stops_tracking(self) -> None:
        recorder = Recorder()
        client = _client(lambda request: httpx.Response(200, json={"summary": "ok"}))
        panel = CopilotPanel(client, tracker=recorder)
        panel.detach()

        await client.generate_jd("notes")

        assert recorder.events == []
        assert panel.state is PanelState.EMPTY
        assert panel.response is None

    @pytest.mark.asyncio
    async def test_detach_keeps_last_state_and_expansion(self) -> None:
        client = _client(
            lambda request: httpx.Response(200, json={"summary": "ok", "items": ["a", "b"]})
        )
        panel = CopilotPanel(client, tracker=Recorder())
        kept = await client.generate_jd("notes")
        panel.toggle_item(1)
        panel.detach()

        await client.generate_jd("other notes")

        assert panel.response is kept
        assert panel.render().details[1].expanded is True

        panel.update(response=AssistResponse(summary="new", items=["x", "y"]))
        assert all(not item.expanded for item in panel.render().details)

    @pytest.mark.asyncio
    async def test_client_open_tracks_session(self) -> None:
        recorder = Recorder()
        client = _client(lambda request: httpx.Response(200, json={"summary": "ok"}))
        CopilotPanel(client, tracker=recorder)

        await client.generate_jd("notes")

        assert recorder.names() == ["ai_session_started", "ai_artifact_generated"]
