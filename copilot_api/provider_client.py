"""Generation provider client (Pollinations text and image endpoints)."""

from typing import Any
from urllib.parse import quote, urlencode

import httpx
import structlog

from copilot_api.config import get_settings

logger = structlog.get_logger()


class ProviderError(Exception):
    """Base exception for generation provider errors."""

    pass


class ProviderAuthError(ProviderError):
    """Raised when the provider rejects our credentials."""

    pass


class ProviderRateLimitError(ProviderError):
    """Raised when the provider rate limit is exceeded."""

    pass


class ProviderClient:
    """Async client for the text generation endpoint."""

    def __init__(
        self,
        text_base_url: str | None = None,
        image_base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        seed: int | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the provider client.

        Args:
            text_base_url: Text endpoint base URL. Defaults to config value.
            image_base_url: Image endpoint base URL. Defaults to config value.
            model: Model name used as the path segment. Defaults to config value.
            temperature: Sampling temperature. Defaults to config value.
            seed: Deterministic seed. Defaults to config value.
            timeout: Request timeout in seconds. Defaults to config value.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        settings = get_settings()
        self._text_base_url = (text_base_url or settings.ai_text_base_url).rstrip("/")
        self._image_base_url = (image_base_url or settings.ai_image_base_url).rstrip("/")
        self._model = model or settings.ai_model
        self._temperature = settings.ai_temperature if temperature is None else temperature
        self._seed = settings.ai_seed if seed is None else seed
        self._timeout = timeout or settings.ai_timeout_seconds
        self._transport = transport
        self._mock = settings.mock_ai_provider
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ProviderClient":
        """Enter async context."""
        await self.connect()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        """Exit async context."""
        await self.close()

    @property
    def is_mock(self) -> bool:
        """True when generation is served by the built-in mock."""
        return self._mock

    async def connect(self) -> None:
        """Create the HTTP client.

        In mock mode (MOCK_AI_PROVIDER=true), skips creating a real HTTP client
        since all requests will be served by the mock handler.
        """
        if self._mock:
            logger.info("Provider client in mock mode, skipping HTTP client creation")
            return

        self._client = httpx.AsyncClient(
            base_url=self._text_base_url,
            headers={"Accept": "text/plain"},
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )
        logger.info("Provider client connected", model=self._model)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Provider client closed")

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        seed: int | None = None,
    ) -> str:
        """Generate text for a prompt pair.

        Args:
            system_prompt: System instructions for the model.
            user_prompt: Rendered user prompt.
            model: Model override.
            temperature: Temperature override.
            seed: Seed override.

        Returns:
            The generated text body.

        Raises:
            ProviderError: If the request fails or the provider answers non-2xx.
        """
        if self._mock:
            return self._mock_text(user_prompt)

        if not self._client:
            await self.connect()
        assert self._client is not None

        params = {
            "temperature": str(self._temperature if temperature is None else temperature),
            "seed": str(self._seed if seed is None else seed),
            "system": system_prompt,
            "prompt": user_prompt,
        }

        try:
            response = await self._client.get(f"/{model or self._model}", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise  # Re-raise after logging
        except httpx.HTTPError as e:
            logger.error("Provider request failed", error=str(e), error_type=type(e).__name__)
            raise ProviderError(f"Provider request failed: {e}") from e

        text = response.text
        logger.info("Provider response received", chars=len(text))
        return text

    def build_image_url(
        self,
        prompt: str,
        width: int | None = None,
        height: int | None = None,
        seed: int | None = None,
        nologo: bool = True,
    ) -> str:
        """Build the image URL for a prompt; the image renders when fetched."""
        settings = get_settings()
        params: dict[str, str] = {
            "width": str(width or settings.image_default_width),
            "height": str(height or settings.image_default_height),
            "seed": str(self._seed if seed is None else seed),
        }
        if nologo:
            params["nologo"] = "true"

        return f"{self._image_base_url}/{quote(prompt, safe='')}?{urlencode(params)}"

    def _handle_http_error(self, error: httpx.HTTPStatusError) -> None:
        """Handle HTTP errors from the provider."""
        status = error.response.status_code
        reason = error.response.reason_phrase or ""

        logger.error("Provider API error", status=status, reason=reason)

        if status in (401, 403):
            raise ProviderAuthError(f"Provider rejected request: {status} {reason}".strip())
        elif status == 429:
            raise ProviderRateLimitError(f"Provider rate limit exceeded: {status} {reason}".strip())
        else:
            raise ProviderError(f"Provider API error: {status} {reason}".strip())

    def _mock_text(self, user_prompt: str) -> str:
        """Return a deterministic mock generation for testing."""
        first_line = user_prompt.strip().splitlines()[0] if user_prompt.strip() else ""
        return (
            "This is a mock AI response (MOCK_AI_PROVIDER=true). "
            f"In production, this would be generated for: '{first_line[:60]}'."
        )


# Global client instance
_provider_client: ProviderClient | None = None


async def get_provider_client() -> ProviderClient:
    """Get or create the global provider client instance."""
    global _provider_client
    if _provider_client is None:
        _provider_client = ProviderClient()
        await _provider_client.connect()
    return _provider_client


async def close_provider_client() -> None:
    """Close the global provider client."""
    global _provider_client
    if _provider_client:
        await _provider_client.close()
        _provider_client = None


def reset_provider_client() -> None:
    """Reset the global provider client (for testing)."""
    global _provider_client
    _provider_client = None
