"""Normalization of provider responses.

Turns a raw HTTP response from any supported provider into either a
GeneratedArtifact or a ClassifiedError. Classification happens in this order:
HTTP status, error envelope, stop reason, then artifact extraction.
"""
import json
import re
from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from canvasgen.models.provider import ProviderKind
from canvasgen.models.result import (
    ArtifactSource,
    ClassifiedError,
    ErrorKind,
    GeneratedArtifact,
    ParseResult,
    TextResult,
)
from canvasgen.providers.schemas import (
    ApiErrorBody,
    ChatCompletionResponse,
    GenerateContentResponse,
    provider_response_adapter,
)

logger = structlog.get_logger()


EXCERPT_LENGTH = 200
DEFAULT_MEDIA_TYPE = "image/png"

# Explicit policy refusals, kept apart from generic safety stops
PROHIBITED_REASONS = {"PROHIBITED_CONTENT", "IMAGE_PROHIBITED_CONTENT"}
SAFETY_REASONS = {"SAFETY", "IMAGE_SAFETY", "BLOCKLIST", "SPII", "CONTENT_FILTER"}

# Status strings some providers put in error.status
STATUS_NAME_KINDS = {
    "UNAUTHENTICATED": ErrorKind.AUTH_ERROR,
    "PERMISSION_DENIED": ErrorKind.AUTH_ERROR,
    "RESOURCE_EXHAUSTED": ErrorKind.RATE_LIMITED,
    "INTERNAL": ErrorKind.SERVER_ERROR,
    "UNAVAILABLE": ErrorKind.SERVER_ERROR,
}

INVALID_KEY_RE = re.compile(r"api[ _-]?key not valid|invalid api[ _-]?key", re.IGNORECASE)
DATA_URI_RE = re.compile(r"data:(image/[\w.+-]+);base64,([A-Za-z0-9+/=]+)")
MARKDOWN_IMAGE_RE = re.compile(r"!\[[^\]]*\]\((https?://[^\s)]+)\)")
HOSTED_IMAGE_RE = re.compile(
    r"https?://[^\s)\"'<>]+?\.(?:png|jpe?g|gif|webp)(?:\?[^\s)\"'<>]*)?",
    re.IGNORECASE,
)


def excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    return text[:length]


def classify_status(status_code: int, message: str = "") -> Optional[ErrorKind]:
    """Map an HTTP status onto the error taxonomy.

    Returns None for non-error statuses.
    """
    if status_code in (401, 403):
        return ErrorKind.AUTH_ERROR
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    if status_code == 400 and INVALID_KEY_RE.search(message or ""):
        return ErrorKind.AUTH_ERROR
    if 400 <= status_code < 500:
        return ErrorKind.CLIENT_ERROR
    return None


def classify_stop_reason(reason: Optional[str]) -> Optional[ErrorKind]:
    if not reason:
        return None
    normalized = reason.upper()
    if normalized in PROHIBITED_REASONS:
        return ErrorKind.CONTENT_PROHIBITED
    if normalized in SAFETY_REASONS:
        return ErrorKind.SAFETY_BLOCKED
    return None


def data_uri(media_type: Optional[str], data: str) -> str:
    return f"data:{media_type or DEFAULT_MEDIA_TYPE};base64,{data}"


def media_type_of(uri: str) -> Optional[str]:
    if uri.startswith("data:"):
        return uri[5:].split(";", 1)[0] or None
    return None


class ResponseNormalizer:
    """Parses provider responses into artifacts or classified errors."""

    # =========================================================================
    # Public API
    # =========================================================================

    def parse(self, kind: ProviderKind, response: httpx.Response) -> ParseResult:
        """Parse an image-generation response.

        Args:
            kind: Provider family the request was built for
            response: Raw HTTP response returned by dispatch

        Returns:
            GeneratedArtifact on success, ClassifiedError otherwise
        """
        decoded = self._decode(response)
        if isinstance(decoded, ClassifiedError):
            self._log_error(kind, decoded)
            return decoded

        if isinstance(decoded, GenerateContentResponse):
            result = self._parse_candidates(decoded)
        elif isinstance(decoded, ChatCompletionResponse):
            result = self._parse_chat(decoded)
        else:
            result = self._classify_body_error(decoded.body, response.status_code)

        if isinstance(result, ClassifiedError):
            self._log_error(kind, result)
        else:
            logger.info("artifact_extracted", provider=kind.value, source=result.source.value)
        return result

    def parse_text(self, kind: ProviderKind, response: httpx.Response) -> TextResult:
        """Parse a text-generation response and return its first text part."""
        decoded = self._decode(response)
        if isinstance(decoded, ClassifiedError):
            self._log_error(kind, decoded)
            return decoded

        result: TextResult
        if isinstance(decoded, GenerateContentResponse):
            result = self._text_from_candidates(decoded)
        elif isinstance(decoded, ChatCompletionResponse):
            result = self._text_from_chat(decoded)
        else:
            result = self._classify_body_error(decoded.body, response.status_code)

        if isinstance(result, ClassifiedError):
            self._log_error(kind, result)
        return result

    # =========================================================================
    # Decoding and status classification
    # =========================================================================

    def _decode(self, response: httpx.Response):
        """Decode the body into a response variant, or classify the failure."""
        status_code = response.status_code

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None

        if status_code >= 400:
            message = self._error_message(payload) or excerpt(response.text) or f"HTTP {status_code}"
            error_kind = classify_status(status_code, message) or ErrorKind.CLIENT_ERROR
            return ClassifiedError(
                kind=error_kind,
                message=f"HTTP {status_code}: {message}",
                status_code=status_code,
            )

        if payload is None:
            return ClassifiedError(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message="Response body is not valid JSON",
                status_code=status_code,
                excerpt=excerpt(response.text),
            )

        try:
            return provider_response_adapter.validate_python(payload)
        except ValidationError as e:
            logger.debug("response_schema_mismatch", error=str(e))
            return ClassifiedError(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message="Response matched no known schema",
                status_code=status_code,
                excerpt=excerpt(json.dumps(payload)),
            )

    @staticmethod
    def _error_message(payload) -> Optional[str]:
        if not isinstance(payload, dict):
            return None
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or None
        if isinstance(error, str):
            return error or None
        return payload.get("message") or None

    @staticmethod
    def _classify_body_error(error: ApiErrorBody, status_code: int) -> ClassifiedError:
        """Classify an error object delivered with a success status."""
        message = error.message or "Provider returned an error"
        error_kind: Optional[ErrorKind] = None

        code = error.code
        if isinstance(code, str) and code.isdigit():
            code = int(code)
        if isinstance(code, int):
            error_kind = classify_status(code, message)
        if error_kind is None and error.status:
            error_kind = STATUS_NAME_KINDS.get(error.status.upper())
        if error_kind is None and INVALID_KEY_RE.search(message):
            error_kind = ErrorKind.AUTH_ERROR

        return ClassifiedError(
            kind=error_kind or ErrorKind.CLIENT_ERROR,
            message=message,
            status_code=code if isinstance(code, int) else status_code,
        )

    @staticmethod
    def _stop_error(reason: Optional[str]) -> Optional[ClassifiedError]:
        error_kind = classify_stop_reason(reason)
        if error_kind is None:
            return None
        if error_kind == ErrorKind.CONTENT_PROHIBITED:
            message = f"Request refused by content policy ({reason})"
        else:
            message = f"Generation blocked by safety filter ({reason})"
        return ClassifiedError(kind=error_kind, message=message)

    # =========================================================================
    # Vendor-native candidates
    # =========================================================================

    def _candidates_gate(self, body: GenerateContentResponse) -> Optional[ClassifiedError]:
        if body.error is not None:
            return self._classify_body_error(body.error, 200)

        block_reason = body.prompt_feedback.block_reason if body.prompt_feedback else None
        if block_reason:
            return self._stop_error(block_reason) or ClassifiedError(
                kind=ErrorKind.SAFETY_BLOCKED,
                message=f"Prompt blocked ({block_reason})",
            )

        if not body.candidates:
            return ClassifiedError(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message="Response contained no candidates",
            )

        return self._stop_error(body.candidates[0].finish_reason)

    def _parse_candidates(self, body: GenerateContentResponse) -> ParseResult:
        gate = self._candidates_gate(body)
        if gate is not None:
            return gate

        content = body.candidates[0].content
        parts = content.parts if content else []

        for part in parts:
            if part.inline_data is not None and part.inline_data.data:
                media_type = part.inline_data.mime_type or DEFAULT_MEDIA_TYPE
                return GeneratedArtifact(
                    uri=data_uri(media_type, part.inline_data.data),
                    media_type=media_type,
                    source=ArtifactSource.INLINE_PART,
                )

        texts = [part.text for part in parts if part.text]
        return self._from_text(texts)

    def _text_from_candidates(self, body: GenerateContentResponse) -> TextResult:
        gate = self._candidates_gate(body)
        if gate is not None:
            return gate

        content = body.candidates[0].content
        for part in content.parts if content else []:
            if part.text:
                return part.text
        return ClassifiedError(
            kind=ErrorKind.MALFORMED_RESPONSE,
            message="Response contained no text part",
        )

    # =========================================================================
    # Chat completion
    # =========================================================================

    def _chat_gate(self, body: ChatCompletionResponse) -> Optional[ClassifiedError]:
        if body.error is not None:
            return self._classify_body_error(body.error, 200)

        if not body.choices or body.choices[0].message is None:
            return ClassifiedError(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message="Response contained no message",
            )

        choice = body.choices[0]
        # Native reasons are more specific, so they are checked first
        return self._stop_error(choice.native_finish_reason) or self._stop_error(choice.finish_reason)

    def _parse_chat(self, body: ChatCompletionResponse) -> ParseResult:
        gate = self._chat_gate(body)
        if gate is not None:
            return gate

        message = body.choices[0].message

        for image in message.images:
            if image.url:
                return GeneratedArtifact(
                    uri=image.url,
                    media_type=media_type_of(image.url),
                    source=ArtifactSource.IMAGE_ATTACHMENT,
                )

        if isinstance(message.content, list):
            for part in message.content:
                link = part.image_link
                if link:
                    return GeneratedArtifact(
                        uri=link,
                        media_type=media_type_of(link),
                        source=ArtifactSource.IMAGE_ATTACHMENT,
                    )

        return self._from_text(message.text_segments())

    def _text_from_chat(self, body: ChatCompletionResponse) -> TextResult:
        gate = self._chat_gate(body)
        if gate is not None:
            return gate

        segments = body.choices[0].message.text_segments()
        if segments:
            return segments[0]
        return ClassifiedError(
            kind=ErrorKind.MALFORMED_RESPONSE,
            message="Response contained no text part",
        )

    # =========================================================================
    # Text fallbacks
    # =========================================================================

    @staticmethod
    def _from_text(texts: list[str]) -> ParseResult:
        """Look for an image reference in text, else report a text-only reply."""
        if not texts:
            return ClassifiedError(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message="Response contained neither an image nor text",
            )

        text = "\n".join(texts)

        match = DATA_URI_RE.search(text)
        if match:
            return GeneratedArtifact(
                uri=match.group(0),
                media_type=match.group(1),
                source=ArtifactSource.TEXT_DATA_URI,
            )

        match = MARKDOWN_IMAGE_RE.search(text) or HOSTED_IMAGE_RE.search(text)
        if match:
            url = match.group(1) if match.re is MARKDOWN_IMAGE_RE else match.group(0)
            return GeneratedArtifact(
                uri=url,
                source=ArtifactSource.TEXT_HOSTED_URL,
            )

        snippet = excerpt(text)
        return ClassifiedError(
            kind=ErrorKind.TEXT_ONLY_RESPONSE,
            message=f"Model returned text instead of an image: {snippet}",
            excerpt=snippet,
        )

    @staticmethod
    def _log_error(kind: ProviderKind, error: ClassifiedError) -> None:
        logger.warning(
            "response_classified_error",
            provider=kind.value,
            error_kind=error.kind.value,
            status_code=error.status_code,
        )
