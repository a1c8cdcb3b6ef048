"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Iterator

import httpx
import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("JWT_SECRET", "test-secret")
# Increase rate limit for testing
os.environ.setdefault("AI_RATE_LIMIT_PER_MINUTE", "1000")
# No backoff sleeps between provider retries
os.environ.setdefault("AI_RETRY_BASE_DELAY", "0")
# Tests install a MockTransport provider instead of the built-in mock
os.environ.setdefault("MOCK_AI_PROVIDER", "false")

from copilot_api.auth import TokenPayload, create_access_token  # noqa: E402
from copilot_api.config import Settings  # noqa: E402
from copilot_api.provider_client import ProviderClient  # noqa: E402


def _reset_singletons() -> None:
    from copilot_api.ai_service import reset_circuit_breaker
    from copilot_api.auth import reset_session_cache
    from copilot_api.config import get_settings
    from copilot_api.monitoring import reset_monitoring_service
    from copilot_api.provider_client import reset_provider_client
    from copilot_api.response_cache import reset_response_cache

    get_settings.cache_clear()
    reset_circuit_breaker()
    reset_session_cache()
    reset_monitoring_service()
    reset_provider_client()
    reset_response_cache()


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    """Reset cached settings, singletons and the rate limiter before each test."""
    _reset_singletons()

    # Reset rate limiter storage
    try:
        from copilot_api.main import limiter

        if hasattr(limiter, "_storage") and limiter._storage:
            limiter._storage.reset()
    except (ImportError, AttributeError):
        pass

    yield
    _reset_singletons()


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Settings]:
    """Fixture to set test settings."""

    def _mock_settings(**kwargs: str) -> Settings:
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        from copilot_api.config import get_settings

        get_settings.cache_clear()
        return get_settings()

    return _mock_settings


@pytest.fixture
def install_provider() -> Callable[[Callable[[httpx.Request], httpx.Response]], ProviderClient]:
    """Install a global provider client backed by an ``httpx.MockTransport``."""

    def _install(handler: Callable[[httpx.Request], httpx.Response]) -> ProviderClient:
        from copilot_api import provider_client

        client = ProviderClient(transport=httpx.MockTransport(handler))
        provider_client._provider_client = client
        return client

    return _install


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Issue access tokens signed with the test secret."""

    def _make_token(
        user_id: str = "user-1",
        role: str = "candidate",
        expires_minutes: int | None = None,
    ) -> str:
        payload = TokenPayload(user_id=user_id, email=f"{user_id}@example.com", role=role)
        return create_access_token(payload, expires_minutes=expires_minutes)

    return _make_token


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def job_data() -> dict:
    return {
        "title": "Senior Backend Engineer",
        "level": "senior",
        "requirements": ["Python", "PostgreSQL", "AWS"],
        "description": "Build and run the hiring platform APIs.",
    }


@pytest.fixture
def candidate_profile() -> dict:
    return {
        "name": "Sam Rivera",
        "skills": ["Python", "FastAPI", "AWS"],
        "experience": [
            {"company": "Acme", "title": "Backend Engineer", "description": "Built payment APIs"}
        ],
    }
