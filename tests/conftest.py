"""Shared fixtures: settings, in-memory stores and a faked provider transport."""
import json
from typing import Callable, Optional

import httpx
import pytest

from canvasgen.canvas.placeholders import PlaceholderSync
from canvasgen.canvas.surface import InMemoryDocumentSurface
from canvasgen.config import Settings
from canvasgen.models.canvas import NodeDescriptor, NodeRole, Point
from canvasgen.models.provider import ProviderConfig
from canvasgen.providers.endpoint_cache import EndpointCache
from canvasgen.providers.normalizer import ResponseNormalizer
from canvasgen.providers.resolver import ProviderResolver
from canvasgen.store.kv import InMemoryKeyValueStore
from canvasgen.store.tasks import TaskStore

GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"
PROXY_BASE = "https://proxy.example.com"
PIXEL = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


def gemini_image_body(data: str = PIXEL, mime_type: str = "image/png", camel: bool = True) -> dict:
    if camel:
        part = {"inlineData": {"mimeType": mime_type, "data": data}}
    else:
        part = {"inline_data": {"mime_type": mime_type, "data": data}}
    return {"candidates": [{"content": {"parts": [part]}, "finishReason": "STOP"}]}


def gemini_text_body(text: str, finish_reason: str = "STOP") -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish_reason}]}


class FakeProvider:
    """Routes requests to canned responses by URL and records every call."""

    def __init__(self, routes: Optional[dict[str, Callable[[httpx.Request], httpx.Response]]] = None):
        self.routes = routes or {}
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get(str(request.url))
        if handler is None:
            return httpx.Response(404, json={"error": {"message": "Not Found"}})
        return handler(request)

    @property
    def urls(self) -> list[str]:
        return [str(call.url) for call in self.calls]

    def bodies(self) -> list[dict]:
        return [json.loads(call.content) for call in self.calls]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def respond(status_code: int = 200, body=None) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=body)
    return handler


def fail_transport(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class ReadOnlyKeyValueStore(InMemoryKeyValueStore):
    """Store that serves reads but fails every write."""

    def set(self, key, value):
        raise OSError("disk full")


@pytest.fixture
def settings():
    return Settings(
        kv_backend="memory",
        provider_api_key="",
        connector_settle_delay_s=0.0,
        refresh_placeholders=True,
        supabase_url="",
        supabase_service_key="",
    )


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def endpoint_cache(kv_store):
    return EndpointCache(kv_store)


@pytest.fixture
def surface():
    return InMemoryDocumentSurface()


@pytest.fixture
def placeholders(surface):
    return PlaceholderSync(surface)


@pytest.fixture
def task_store():
    return TaskStore()


@pytest.fixture
def normalizer():
    return ResponseNormalizer()


@pytest.fixture
def gemini_config():
    return ProviderConfig(api_key="test-key-1234", base_url=GEMINI_BASE)


@pytest.fixture
def make_resolver(endpoint_cache, settings):
    def _make(provider: FakeProvider) -> ProviderResolver:
        return ProviderResolver(endpoint_cache, provider.client(), settings)
    return _make


def add_image(surface: InMemoryDocumentSurface, x: float, y: float, width: float = 100, height: float = 80) -> str:
    return surface.insert_node(
        NodeDescriptor(role=NodeRole.USER, url="https://img.example.com/a.png", width=width, height=height),
        Point(x=x, y=y),
    )
