"""Provider configuration and request models."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from canvasgen.config import DEFAULT_BASE_URL, DEFAULT_IMAGE_MODEL, DEFAULT_PROMPT_MODEL


class ProviderKind(str, Enum):
    """Backend families, distinguished by request shape and auth convention."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"
    OPENAI = "openai"
    GENERIC_PROXY = "generic_proxy"

    @property
    def uses_chat_shape(self) -> bool:
        """True when the provider takes an OpenAI-style `messages` body."""
        return self in (ProviderKind.OPENROUTER, ProviderKind.OPENAI)


class ProviderConfig(BaseModel):
    """Externally supplied provider settings. Never mutated by the core."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    image_model: str = DEFAULT_IMAGE_MODEL
    prompt_model: str = DEFAULT_PROMPT_MODEL

    def masked(self) -> dict:
        """Dump for display, with the API key reduced to its last 4 chars."""
        data = self.model_dump()
        if self.api_key:
            data["api_key"] = f"****{self.api_key[-4:]}"
        return data


class ProviderRequest(BaseModel):
    """A provider-specific request, ready for dispatch."""

    kind: ProviderKind
    headers: dict[str, str]
    body: dict
    candidate_templates: list[str] = Field(
        ...,
        description="URL templates in probe order, with {baseUrl}/{model} placeholders",
    )
