"""Generation Worker - drives one image-generation task to completion.

The worker coordinates:
1. TaskStore - lifecycle and progress bookkeeping
2. ProviderResolver - provider classification, request shape, path probing
3. ResponseNormalizer - artifact extraction and error classification
4. PlaceholderSync - placeholder progress, artifact swap, refusal visual

Each task id is single-flighted: a second submit while the first is still
running is ignored. `submit` never raises; every failure ends the task in
the `error` state with a classified message.
"""
import asyncio
import inspect
from typing import Awaitable, Callable, Optional, Union

import structlog

from canvasgen.canvas.connectors import create_connectors
from canvasgen.canvas.placeholders import PlaceholderSync
from canvasgen.config import Settings, get_settings
from canvasgen.generation.prompts import build_image_prompt
from canvasgen.models.provider import ProviderConfig
from canvasgen.models.result import ClassifiedError, ErrorKind
from canvasgen.models.task import GenerationTask, ProgressStage, TaskStatus
from canvasgen.providers.errors import (
    ClassifiedProviderError,
    MissingCredentialsError,
    ProviderError,
)
from canvasgen.providers.normalizer import ResponseNormalizer
from canvasgen.providers.resolver import ProviderResolver
from canvasgen.store.tasks import TaskStore

logger = structlog.get_logger()

UpdateCallback = Callable[[str, TaskStatus, dict], Union[None, Awaitable[None]]]
ConfigSource = Callable[[], ProviderConfig]


class TaskAbandoned(Exception):
    """The task record disappeared while the worker was suspended."""


class GenerationWorker:
    """Runs generation tasks against the configured provider."""

    def __init__(
        self,
        tasks: TaskStore,
        resolver: ProviderResolver,
        normalizer: ResponseNormalizer,
        placeholders: PlaceholderSync,
        config_source: ConfigSource,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.tasks = tasks
        self.resolver = resolver
        self.normalizer = normalizer
        self.placeholders = placeholders
        self.config_source = config_source
        self.settle_delay_s = settings.connector_settle_delay_s
        self.refresh_placeholders = settings.refresh_placeholders

        self._in_flight: set[str] = set()
        self._background: set[asyncio.Task] = set()

    # =========================================================================
    # Public API
    # =========================================================================

    def processing_count(self) -> int:
        return len(self._in_flight)

    def is_processing(self, task_id: str) -> bool:
        return task_id in self._in_flight

    def start(self, task: GenerationTask, on_update: Optional[UpdateCallback] = None) -> asyncio.Task:
        """Schedule `submit` in the background and return its handle.

        Must be called from a running event loop. Completion is observable
        through `on_update` and the TaskStore.
        """
        handle = asyncio.create_task(self.submit(task, on_update), name=f"generate-{task.id}")
        self._background.add(handle)
        handle.add_done_callback(self._background.discard)
        return handle

    async def submit(self, task: GenerationTask, on_update: Optional[UpdateCallback] = None) -> None:
        """Run a task to a terminal state.

        Args:
            task: Task to run; added to the TaskStore if not already there
            on_update: Called as on_update(task_id, status, fields) on every
                state change. May be a plain function or a coroutine function.
        """
        if task.id in self._in_flight:
            logger.info("submit_ignored_in_flight", task_id=task.id)
            return

        existing = self.tasks.get(task.id)
        if existing is not None and existing.status.is_terminal:
            logger.info("submit_ignored_terminal", task_id=task.id, status=existing.status.value)
            return

        self._in_flight.add(task.id)
        try:
            await self._run(task, on_update)
        except TaskAbandoned:
            logger.info("task_abandoned", task_id=task.id)
        except ProviderError as e:
            await self._fail(task.id, e.to_classified(), on_update)
        except Exception as e:
            logger.error("generation_unexpected_error", task_id=task.id, error=str(e), exc_info=True)
            await self._fail(
                task.id,
                ClassifiedError(kind=ErrorKind.UNEXPECTED, message=str(e) or type(e).__name__),
                on_update,
            )
        finally:
            self._in_flight.discard(task.id)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run(self, task: GenerationTask, on_update: Optional[UpdateCallback]) -> None:
        self.tasks.add(task)
        logger.info(
            "generation_start",
            task_id=task.id,
            prompt_length=len(task.prompt),
            image_count=len(task.selected_images),
        )

        await self._checkpoint(task.id, ProgressStage.INITIALIZE, on_update)

        config = self.config_source()
        if not config.api_key:
            raise MissingCredentialsError("API key is not configured")

        kind = self.resolver.classify(config.base_url)
        await self._checkpoint(task.id, ProgressStage.CONNECT, on_update)

        request = self.resolver.build_request(
            kind,
            build_image_prompt(task.prompt, bool(task.selected_images)),
            task.selected_images,
            config.image_model,
            config.api_key,
        )
        await self._checkpoint(task.id, ProgressStage.DISPATCH, on_update)

        response = await self.resolver.dispatch(
            config.base_url,
            config.image_model,
            request.headers,
            request.body,
            request.candidate_templates,
        )
        await self._checkpoint(task.id, ProgressStage.RECEIVE, on_update)

        result = self.normalizer.parse(kind, response)
        if isinstance(result, ClassifiedError):
            raise ClassifiedProviderError(result)

        await self._checkpoint(task.id, ProgressStage.FINALIZE, on_update)
        await self._complete(task, result.uri, on_update)

    async def _checkpoint(
        self,
        task_id: str,
        stage: ProgressStage,
        on_update: Optional[UpdateCallback],
    ) -> None:
        if self.tasks.get(task_id) is None:
            raise TaskAbandoned(task_id)

        await self._notify(
            task_id,
            TaskStatus.GENERATING,
            {"progress": stage.progress, "progress_stage": stage.value},
            on_update,
        )

        if self.refresh_placeholders:
            try:
                self.placeholders.update_progress(task_id, stage.progress, stage.value)
            except Exception as e:
                logger.warning("placeholder_refresh_failed", task_id=task_id, stage=stage.value, error=str(e))

    async def _notify(
        self,
        task_id: str,
        status: TaskStatus,
        fields: dict,
        on_update: Optional[UpdateCallback],
    ) -> bool:
        """Record a status change and report it to the caller.

        The callback only hears about changes the store accepted.
        """
        if self.tasks.update(task_id, status, **fields) is None:
            return False
        if on_update is None:
            return True
        try:
            outcome = on_update(task_id, status, dict(fields))
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("status_callback_failed", task_id=task_id, status=status.value, error=str(e))
        return True

    async def _complete(
        self,
        task: GenerationTask,
        artifact_uri: str,
        on_update: Optional[UpdateCallback],
    ) -> None:
        applied = await self._notify(
            task.id,
            TaskStatus.COMPLETED,
            {"result_artifact_uri": artifact_uri, "progress": 1.0},
            on_update,
        )
        if not applied:
            raise TaskAbandoned(task.id)
        logger.info("generation_completed", task_id=task.id)

        # The task stays completed whatever happens on the surface from here
        try:
            node_id = self.placeholders.replace(task.id, artifact_uri)
        except Exception as e:
            logger.error("artifact_placement_failed", task_id=task.id, error=str(e))
            return
        if node_id is None or not task.source_node_ids:
            return

        await asyncio.sleep(self.settle_delay_s)

        try:
            # The artifact may have been removed while we slept
            if self.placeholders.surface.get_node(node_id) is None:
                logger.warning("connector_target_removed", task_id=task.id, node_id=node_id)
                return
            create_connectors(self.placeholders.surface, task.source_node_ids, node_id)
        except Exception as e:
            logger.error("connectors_failed", task_id=task.id, error=str(e))

    async def _fail(
        self,
        task_id: str,
        error: ClassifiedError,
        on_update: Optional[UpdateCallback],
    ) -> None:
        logger.warning(
            "generation_failed",
            task_id=task_id,
            error_kind=error.kind.value,
            status_code=error.status_code,
        )
        try:
            applied = await self._notify(
                task_id,
                TaskStatus.ERROR,
                {"error_kind": error.kind, "error_message": error.message},
                on_update,
            )
            if applied and error.kind == ErrorKind.CONTENT_PROHIBITED:
                self.placeholders.render_refusal(task_id, error.message)
        except Exception as e:
            logger.error("generation_fail_handling_error", task_id=task_id, error=str(e))
