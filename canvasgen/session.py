"""Generation session - wires one instance of every component together."""
from typing import Optional

import httpx
import structlog

from canvasgen.canvas.placeholders import PlaceholderSync
from canvasgen.canvas.surface import DocumentSurface, InMemoryDocumentSurface
from canvasgen.config import Settings, get_settings
from canvasgen.generation.model_check import ModelAvailabilityChecker
from canvasgen.generation.optimizer import PromptOptimizer
from canvasgen.generation.worker import GenerationWorker, UpdateCallback
from canvasgen.models.canvas import Point
from canvasgen.models.task import GenerationTask, SelectedImage, TaskStatus
from canvasgen.providers.config_store import ProviderConfigStore
from canvasgen.providers.endpoint_cache import EndpointCache
from canvasgen.providers.normalizer import ResponseNormalizer
from canvasgen.providers.resolver import ProviderResolver
from canvasgen.store.kv import KeyValueStore, build_kv_store
from canvasgen.store.tasks import TaskStore

logger = structlog.get_logger()


class GenerationSession:
    """Per-session service object.

    The task store, placeholder registry, endpoint cache and the worker's
    in-flight set are all scoped to one session.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        kv_store: Optional[KeyValueStore] = None,
        surface: Optional[DocumentSurface] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.kv_store = kv_store if kv_store is not None else build_kv_store(self.settings)
        self.surface = surface if surface is not None else InMemoryDocumentSurface()

        self.config_store = ProviderConfigStore(self.kv_store, self.settings)
        self.endpoint_cache = EndpointCache(self.kv_store)
        self.tasks = TaskStore()
        self.resolver = ProviderResolver(self.endpoint_cache, http_client, self.settings)
        self.normalizer = ResponseNormalizer()
        self.placeholders = PlaceholderSync(
            self.surface,
            max_age_s=self.settings.placeholder_max_age_s,
        )
        self.worker = GenerationWorker(
            self.tasks,
            self.resolver,
            self.normalizer,
            self.placeholders,
            self.config_store.load,
            self.settings,
        )
        self.optimizer = PromptOptimizer(self.resolver, self.normalizer, self.config_store.load)
        self.model_checker = ModelAvailabilityChecker(self.resolver, self.config_store.load)

    def generate(
        self,
        prompt: str,
        images: Optional[list[SelectedImage]] = None,
        source_node_ids: Optional[list[str]] = None,
        anchor_hint: Optional[Point] = None,
        size: Optional[tuple[float, float]] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> GenerationTask:
        """Accept a request: create the task and its placeholder, then start the worker.

        Must be called from a running event loop. Returns the pending task
        immediately; the outcome arrives through `on_update` and the store.
        """
        self.placeholders.cleanup_expired()

        task = self.tasks.create(prompt, images, source_node_ids)
        node_id = self.placeholders.create(task.id, prompt, anchor_hint=anchor_hint, size=size)
        task = self.tasks.update(task.id, TaskStatus.PENDING, placeholder_node_id=node_id) or task

        self.worker.start(task, on_update)
        return task

    def discard(self, task_id: str) -> bool:
        """Forget a task and remove its placeholders."""
        node_ids = self.placeholders.all_nodes_for(task_id)
        if node_ids:
            self.surface.remove_nodes(node_ids)
            for node_id in node_ids:
                self.placeholders.unregister(node_id)
        return self.tasks.remove(task_id)

    async def aclose(self) -> None:
        await self.resolver.aclose()


_session: Optional[GenerationSession] = None


def get_session() -> GenerationSession:
    """Get or create the process-wide session used by the HTTP API."""
    global _session
    if _session is None:
        _session = GenerationSession()
        logger.info("generation_session_created")
    return _session


def set_session(session: Optional[GenerationSession]) -> None:
    """Replace the process-wide session (None resets it)."""
    global _session
    _session = session
