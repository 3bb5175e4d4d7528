"""Canonical results of a provider round trip."""
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Stable tags for classified generation failures.

    Callers branch on these values, never on message text.
    """
    AUTH_ERROR = "AuthError"
    RATE_LIMITED = "RateLimited"
    SERVER_ERROR = "ServerError"
    CLIENT_ERROR = "ClientError"
    SAFETY_BLOCKED = "SafetyBlocked"
    CONTENT_PROHIBITED = "ContentProhibited"
    TEXT_ONLY_RESPONSE = "TextOnlyResponse"
    MALFORMED_RESPONSE = "MalformedResponse"
    ENDPOINT_UNAVAILABLE = "EndpointUnavailable"
    UNEXPECTED = "Unexpected"


class ArtifactSource(str, Enum):
    """Which extraction rule produced an artifact."""
    INLINE_PART = "inline_part"
    IMAGE_ATTACHMENT = "image_attachment"
    TEXT_DATA_URI = "text_data_uri"
    TEXT_HOSTED_URL = "text_hosted_url"


class GeneratedArtifact(BaseModel):
    """A generated image, as an embedded data URI or a hosted URL."""

    uri: str
    media_type: Optional[str] = None
    source: ArtifactSource


class ClassifiedError(BaseModel):
    """A failure mapped onto the error taxonomy."""

    kind: ErrorKind
    message: str
    status_code: Optional[int] = None
    excerpt: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


ParseResult = Union[GeneratedArtifact, ClassifiedError]
TextResult = Union[str, ClassifiedError]
