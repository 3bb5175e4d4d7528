"""Provider resolution, request building and endpoint probing.

Handles:
- Classifying a configured base URL into a provider family
- Building the provider-specific headers and JSON body
- Dispatching with path probing: the cached template first, then every
  candidate template in a fixed order. The first response that is not a 404
  wins and its template is cached for the base URL.
"""
from typing import Optional

import httpx
import structlog

from canvasgen.config import Settings, get_settings
from canvasgen.models.provider import ProviderKind, ProviderRequest
from canvasgen.models.task import SelectedImage
from canvasgen.providers.endpoint_cache import EndpointCache
from canvasgen.providers.errors import EndpointExhaustedError

logger = structlog.get_logger()


# Substring of the base URL -> provider family. Checked in order.
PROVIDER_DOMAINS: list[tuple[str, ProviderKind]] = [
    ("googleapis.com", ProviderKind.GEMINI),
    ("openrouter.ai", ProviderKind.OPENROUTER),
    ("api.openai.com", ProviderKind.OPENAI),
]

# Vendor-native path first, then versioned variants, then a generic fallback.
GENERATE_CONTENT_TEMPLATES = [
    "{baseUrl}/models/{model}:generateContent",
    "{baseUrl}/v1beta/models/{model}:generateContent",
    "{baseUrl}/v1/models/{model}:generateContent",
    "{baseUrl}/{model}:generateContent",
    "{baseUrl}/api/generate",
]

CHAT_COMPLETION_TEMPLATES = [
    "{baseUrl}/chat/completions",
    "{baseUrl}/v1/chat/completions",
    "{baseUrl}/api/v1/chat/completions",
    "{baseUrl}/api/generate",
]


def normalize_base_url(base_url: str) -> str:
    return base_url.strip().rstrip("/")


def expand_template(template: str, base_url: str, model: str) -> str:
    """Substitute the literal {baseUrl} and {model} placeholders."""
    return template.replace("{baseUrl}", normalize_base_url(base_url)).replace("{model}", model)


class ProviderResolver:
    """Classifies providers, builds requests and probes endpoint paths."""

    def __init__(
        self,
        cache: EndpointCache,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.http_timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Classification
    # =========================================================================

    @staticmethod
    def classify(base_url: str) -> ProviderKind:
        """Classify a base URL by known vendor domains.

        Anything unmatched is treated as a generic proxy that takes bearer
        authorization.
        """
        lowered = base_url.lower()
        for domain, kind in PROVIDER_DOMAINS:
            if domain in lowered:
                return kind
        return ProviderKind.GENERIC_PROXY

    # =========================================================================
    # Request building
    # =========================================================================

    def build_request(
        self,
        kind: ProviderKind,
        prompt: str,
        images: list[SelectedImage],
        model: str,
        api_key: str,
        want_image: bool = True,
    ) -> ProviderRequest:
        """Build headers, body and candidate path templates for a provider.

        Args:
            kind: Provider family from `classify`
            prompt: Final prompt text
            images: Reference images, sent before the text
            model: Model name; chat-shaped bodies carry it, path-based
                providers get it through the template
            api_key: Credential for the auth header
            want_image: Ask chat providers for an image modality

        Returns:
            ProviderRequest ready for `dispatch`
        """
        headers = {"Content-Type": "application/json"}

        if kind == ProviderKind.GEMINI:
            headers["x-goog-api-key"] = api_key
        else:
            headers["Authorization"] = f"Bearer {api_key}"

        if kind == ProviderKind.OPENROUTER:
            headers["HTTP-Referer"] = self.settings.openrouter_referer
            headers["X-Title"] = self.settings.openrouter_title

        if kind.uses_chat_shape:
            body = self._chat_body(prompt, images, model, want_image)
            templates = list(CHAT_COMPLETION_TEMPLATES)
        else:
            body = self._contents_body(prompt, images)
            templates = list(GENERATE_CONTENT_TEMPLATES)

        return ProviderRequest(
            kind=kind,
            headers=headers,
            body=body,
            candidate_templates=templates,
        )

    @staticmethod
    def _contents_body(prompt: str, images: list[SelectedImage]) -> dict:
        parts: list[dict] = [
            {
                "inline_data": {
                    "mime_type": image.media_type,
                    "data": image.encoded_bytes,
                }
            }
            for image in images
        ]
        parts.append({"text": prompt})
        return {"contents": [{"parts": parts}]}

    @staticmethod
    def _chat_body(
        prompt: str,
        images: list[SelectedImage],
        model: str,
        want_image: bool,
    ) -> dict:
        content: list[dict] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{image.media_type};base64,{image.encoded_bytes}"},
            })

        body: dict = {
            "model": model,
            "messages": [{"role": "user", "content": content}],
        }
        if want_image:
            body["modalities"] = ["image", "text"]
        return body

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _post(self, url: str, headers: dict[str, str], body: dict) -> httpx.Response:
        return await self.client.post(url, headers=headers, json=body)

    async def dispatch(
        self,
        base_url: str,
        model: str,
        headers: dict[str, str],
        body: dict,
        candidate_templates: list[str],
    ) -> httpx.Response:
        """Send a request, probing path templates until a route exists.

        A 404 is the only "route absent" signal. Any other status, success or
        provider error, means the path exists and the response is returned
        for normalization.

        Raises:
            EndpointExhaustedError: every candidate 404'd or failed in transport
        """
        base = normalize_base_url(base_url)

        cached = self.cache.get(base)
        if cached:
            url = expand_template(cached, base, model)
            try:
                response = await self._post(url, headers, body)
            except httpx.HTTPError as e:
                logger.warning("dispatch_cached_transport_error", url=url, error=str(e))
            else:
                logger.debug("dispatch_cached_path", url=url, status_code=response.status_code)
                if response.status_code != 404:
                    return response
                # Stale entry stays until a probe succeeds and overwrites it
                logger.warning("dispatch_cached_path_404", base_url=base, template=cached)

        attempted: list[str] = []
        last_error: Optional[BaseException] = None
        last_status: Optional[int] = None

        for template in candidate_templates:
            url = expand_template(template, base, model)
            attempted.append(url)
            try:
                response = await self._post(url, headers, body)
            except httpx.HTTPError as e:
                logger.info("dispatch_probe_transport_error", url=url, error=str(e))
                last_error = e
                continue

            logger.debug("dispatch_probe", url=url, status_code=response.status_code)
            if response.status_code == 404:
                last_status = 404
                continue

            try:
                self.cache.set(base, template)
            except Exception as e:
                logger.warning("endpoint_cache_write_failed", base_url=base, template=template, error=str(e))
            return response

        logger.error(
            "dispatch_paths_exhausted",
            base_url=base,
            attempted=len(attempted),
            last_status=last_status,
            last_error=str(last_error) if last_error else None,
        )
        raise EndpointExhaustedError(
            base,
            attempted,
            last_error=last_error,
            last_status=last_status,
        )
