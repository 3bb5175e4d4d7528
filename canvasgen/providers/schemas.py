"""Pydantic models for provider response bodies.

Providers answer in one of three shapes:
- vendor-native `candidates[].content.parts[]` (Gemini and proxies of it)
- OpenAI-style chat completion `choices[].message`, optionally with the
  `images` extension used by OpenRouter
- a bare `{"error": {...}}` envelope

The body carries no explicit tag, so the discriminator looks at which
top-level key is present and each variant gets its own parser.
"""
from typing import Annotated, Any, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
)


class _Lenient(BaseModel):
    """Base for wire models: unknown keys are ignored, both casings accepted."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# Shared
# =============================================================================

class ApiErrorBody(_Lenient):
    code: Optional[Union[int, str]] = None
    message: Optional[str] = None
    status: Optional[str] = None


# =============================================================================
# Vendor-native (candidates)
# =============================================================================

class InlineData(_Lenient):
    mime_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("mimeType", "mime_type")
    )
    data: Optional[str] = None


class ContentPart(_Lenient):
    text: Optional[str] = None
    inline_data: Optional[InlineData] = Field(
        None, validation_alias=AliasChoices("inlineData", "inline_data")
    )


class CandidateContent(_Lenient):
    parts: list[ContentPart] = Field(default_factory=list)


class Candidate(_Lenient):
    content: Optional[CandidateContent] = None
    finish_reason: Optional[str] = Field(
        None, validation_alias=AliasChoices("finishReason", "finish_reason")
    )


class PromptFeedback(_Lenient):
    block_reason: Optional[str] = Field(
        None, validation_alias=AliasChoices("blockReason", "block_reason")
    )


class GenerateContentResponse(_Lenient):
    candidates: list[Candidate] = Field(default_factory=list)
    prompt_feedback: Optional[PromptFeedback] = Field(
        None, validation_alias=AliasChoices("promptFeedback", "prompt_feedback")
    )
    error: Optional[ApiErrorBody] = None


# =============================================================================
# Chat completion
# =============================================================================

class ImageUrl(_Lenient):
    url: str


class ChatContentPart(_Lenient):
    type: Optional[str] = None
    text: Optional[str] = None
    image_url: Optional[Union[ImageUrl, str]] = None

    @property
    def image_link(self) -> Optional[str]:
        if isinstance(self.image_url, ImageUrl):
            return self.image_url.url
        return self.image_url


class ImageAttachment(_Lenient):
    type: Optional[str] = None
    image_url: Union[ImageUrl, str]

    @property
    def url(self) -> str:
        if isinstance(self.image_url, ImageUrl):
            return self.image_url.url
        return self.image_url


class ChatMessage(_Lenient):
    role: Optional[str] = None
    content: Optional[Union[str, list[ChatContentPart]]] = None
    images: list[ImageAttachment] = Field(default_factory=list)

    def text_segments(self) -> list[str]:
        if isinstance(self.content, str):
            return [self.content] if self.content else []
        if not self.content:
            return []
        return [part.text for part in self.content if part.text]


class ChatChoice(_Lenient):
    message: Optional[ChatMessage] = None
    finish_reason: Optional[str] = None
    native_finish_reason: Optional[str] = None


class ChatCompletionResponse(_Lenient):
    choices: list[ChatChoice] = Field(default_factory=list)
    error: Optional[ApiErrorBody] = None


# =============================================================================
# Error envelope
# =============================================================================

class ErrorEnvelope(_Lenient):
    error: Union[ApiErrorBody, str]

    @property
    def body(self) -> ApiErrorBody:
        if isinstance(self.error, str):
            return ApiErrorBody(message=self.error)
        return self.error


# =============================================================================
# Tagged union
# =============================================================================

CANDIDATES_TAG = "candidates"
CHAT_TAG = "chat"
ERROR_TAG = "error"


def response_tag(value: Any) -> Optional[str]:
    """Pick the response variant from the keys present in the body."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)
    if not isinstance(value, dict):
        return None
    if "candidates" in value or "promptFeedback" in value or "prompt_feedback" in value:
        return CANDIDATES_TAG
    if "choices" in value:
        return CHAT_TAG
    if "error" in value:
        return ERROR_TAG
    return None


ProviderResponse = Annotated[
    Union[
        Annotated[GenerateContentResponse, Tag(CANDIDATES_TAG)],
        Annotated[ChatCompletionResponse, Tag(CHAT_TAG)],
        Annotated[ErrorEnvelope, Tag(ERROR_TAG)],
    ],
    Discriminator(response_tag),
]

provider_response_adapter: TypeAdapter[ProviderResponse] = TypeAdapter(ProviderResponse)
