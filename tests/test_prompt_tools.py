"""Tests for prompt optimization and model availability checks."""
import pytest

from canvasgen.generation.model_check import ModelAvailabilityChecker
from canvasgen.generation.optimizer import PromptOptimizer
from canvasgen.generation.prompts import build_image_prompt, build_optimize_prompt
from canvasgen.models.provider import ProviderConfig
from canvasgen.models.result import ErrorKind
from canvasgen.providers.errors import ClassifiedProviderError, MissingCredentialsError
from canvasgen.providers.resolver import CHAT_COMPLETION_TEMPLATES, GENERATE_CONTENT_TEMPLATES, expand_template

from conftest import GEMINI_BASE, FakeProvider, fail_transport, gemini_text_body, respond

PROMPT_MODEL = "gemini-2.5-flash"


def gemini_url(model: str, index: int = 0) -> str:
    return expand_template(GENERATE_CONTENT_TEMPLATES[index], GEMINI_BASE, model)


class TestPrompts:
    """Prompt templates."""

    def test_image_prompt_with_and_without_images(self):
        assert build_image_prompt("a fox", True).startswith(
            "Transform the provided images based on this description: a fox."
        )
        assert build_image_prompt(" a fox ", False) == (
            "Create a photorealistic, high-quality image: a fox. "
            "Generate the actual image, do not provide text descriptions."
        )

    def test_optimize_prompt_quotes_request(self):
        assert '"a fox"' in build_optimize_prompt("a fox")
        assert build_optimize_prompt("a fox", has_images=True).startswith("Analyze these images")


class TestPromptOptimizer:
    """Test suite for PromptOptimizer."""

    @pytest.fixture
    def build(self, make_resolver, normalizer, gemini_config):
        def _build(provider: FakeProvider, config: ProviderConfig = None) -> PromptOptimizer:
            active = config or gemini_config
            return PromptOptimizer(make_resolver(provider), normalizer, lambda: active)
        return _build

    @pytest.mark.asyncio
    async def test_returns_first_text_part(self, build):
        provider = FakeProvider({
            gemini_url(PROMPT_MODEL): respond(200, gemini_text_body("  A red fox in morning fog.  ")),
        })

        result = await build(provider).optimize("fox")

        assert result == "A red fox in morning fog."
        assert PROMPT_MODEL in provider.urls[0]

    @pytest.mark.asyncio
    async def test_chat_provider_sends_text_only_request(self, build):
        base = "https://openrouter.ai/api/v1"
        url = expand_template(CHAT_COMPLETION_TEMPLATES[0], base, PROMPT_MODEL)
        body = {"choices": [{"message": {"content": "Detailed fox"}}]}
        provider = FakeProvider({url: respond(200, body)})
        optimizer = build(provider, ProviderConfig(api_key="k", base_url=base))

        assert await optimizer.optimize("fox") == "Detailed fox"
        sent = provider.bodies()[0]
        assert sent["model"] == PROMPT_MODEL
        assert "modalities" not in sent

    @pytest.mark.asyncio
    async def test_classified_error_raised(self, build):
        provider = FakeProvider({gemini_url(PROMPT_MODEL): respond(503, {"error": {"message": "overloaded"}})})

        with pytest.raises(ClassifiedProviderError) as exc_info:
            await build(provider).optimize("fox")

        assert exc_info.value.kind == ErrorKind.SERVER_ERROR

    @pytest.mark.asyncio
    async def test_missing_key(self, build):
        provider = FakeProvider()

        with pytest.raises(MissingCredentialsError):
            await build(provider, ProviderConfig(api_key="")).optimize("fox")
        assert provider.calls == []


class TestModelAvailabilityChecker:
    """Test suite for ModelAvailabilityChecker."""

    MODEL = "gemini-2.5-flash-image-preview"

    @pytest.fixture
    def build(self, make_resolver, gemini_config):
        def _build(provider: FakeProvider, config: ProviderConfig = None) -> ModelAvailabilityChecker:
            active = config or gemini_config
            return ModelAvailabilityChecker(make_resolver(provider), lambda: active)
        return _build

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,message,available,reason", [
        (200, None, True, "ok"),
        (400, "API key not valid. Please pass a valid API key.", False, "invalid_api_key"),
        (400, "models/foo is not found for API version v1beta", False, "model_not_found"),
        (400, "Invalid JSON payload received.", True, "request_rejected"),
        (401, "unauthenticated", False, "auth_failed"),
        (403, "forbidden", False, "auth_failed"),
        (500, "internal", False, "unexpected_status"),
    ])
    async def test_status_interpretation(self, build, status_code, message, available, reason):
        body = gemini_text_body("ok") if message is None else {"error": {"message": message}}
        provider = FakeProvider({gemini_url(self.MODEL): respond(status_code, body)})

        result = await build(provider).check(self.MODEL)

        assert result.available is available
        assert result.reason == reason
        assert result.model == self.MODEL

    @pytest.mark.asyncio
    async def test_every_path_404_is_unavailable(self, build):
        result = await build(FakeProvider()).check(self.MODEL)

        assert result.available is False
        assert result.reason == "endpoint_unavailable"

    @pytest.mark.asyncio
    async def test_transport_failure_is_unavailable(self, build):
        routes = {gemini_url(self.MODEL, i): fail_transport for i in range(len(GENERATE_CONTENT_TEMPLATES))}

        result = await build(FakeProvider(routes)).check(self.MODEL)

        assert result.available is False

    @pytest.mark.asyncio
    async def test_missing_key_skips_network(self, build):
        provider = FakeProvider()

        result = await build(provider, ProviderConfig(api_key="")).check(self.MODEL)

        assert result.reason == "missing_api_key"
        assert provider.calls == []
