"""In-process lifecycle bookkeeping for generation tasks."""
import itertools
import time
from typing import Any, Optional

import structlog

from canvasgen.models.result import ErrorKind
from canvasgen.models.task import (
    GenerationTask,
    SelectedImage,
    TaskStatus,
    utcnow,
)

logger = structlog.get_logger()

# Fields that are set once at creation and never changed afterwards
WRITE_ONCE_FIELDS = frozenset({"id", "created_at"})

# Outcome fields only meaningful in one terminal state
COMPLETED_ONLY_FIELDS = frozenset({"result_artifact_uri"})
ERROR_ONLY_FIELDS = frozenset({"error_kind", "error_message"})


class TaskStore:
    """Holds every task of a session and enforces its lifecycle.

    Reads never raise for an unknown id. Updates to an unknown id, illegal
    status changes and writes to write-once fields are logged and ignored.
    """

    def __init__(self):
        self._tasks: dict[str, GenerationTask] = {}
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"ai-gen-{int(time.time() * 1000)}-{next(self._counter)}"

    def create(
        self,
        prompt: str,
        images: Optional[list[SelectedImage]] = None,
        source_node_ids: Optional[list[str]] = None,
    ) -> GenerationTask:
        """Create a new task in `pending`."""
        task = GenerationTask(
            id=self._next_id(),
            prompt=prompt,
            selected_images=list(images or []),
            source_node_ids=list(source_node_ids or []),
        )
        self._tasks[task.id] = task

        logger.info(
            "task_created",
            task_id=task.id,
            image_count=len(task.selected_images),
            source_count=len(task.source_node_ids),
        )
        return task

    def add(self, task: GenerationTask) -> GenerationTask:
        """Track a task built elsewhere. An existing id keeps its record."""
        existing = self._tasks.get(task.id)
        if existing is not None:
            return existing
        self._tasks[task.id] = task
        return task

    def get(self, task_id: str) -> Optional[GenerationTask]:
        return self._tasks.get(task_id)

    def update(
        self,
        task_id: str,
        status: TaskStatus,
        **fields: Any,
    ) -> Optional[GenerationTask]:
        """Merge `fields` into a task and move it to `status`.

        Returns:
            The updated task, or None when nothing was applied
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.warning("task_update_unknown_id", task_id=task_id, status=status.value)
            return None

        if not task.can_transition_to(status):
            logger.warning(
                "task_update_illegal_transition",
                task_id=task_id,
                from_status=task.status.value,
                to_status=status.value,
            )
            return None

        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if name in WRITE_ONCE_FIELDS:
                logger.warning("task_update_write_once_field", task_id=task_id, field=name)
                continue
            if name not in GenerationTask.model_fields:
                logger.warning("task_update_unknown_field", task_id=task_id, field=name)
                continue
            if name in COMPLETED_ONLY_FIELDS and status != TaskStatus.COMPLETED:
                continue
            if name in ERROR_ONLY_FIELDS and status != TaskStatus.ERROR:
                continue
            changes[name] = value

        if "error_kind" in changes and changes["error_kind"] is not None:
            changes["error_kind"] = ErrorKind(changes["error_kind"])

        if "progress" in changes:
            progress = min(1.0, max(0.0, float(changes["progress"])))
            # Progress never moves backwards while generating
            if task.status == TaskStatus.GENERATING and progress < task.progress:
                logger.debug(
                    "task_progress_regression_ignored",
                    task_id=task_id,
                    current=task.progress,
                    requested=progress,
                )
                progress = task.progress
            changes["progress"] = progress

        changes["status"] = status
        if status.is_terminal and task.completed_at is None:
            changes["completed_at"] = utcnow()

        updated = task.model_copy(update=changes)
        self._tasks[task_id] = updated

        if status != task.status:
            logger.info(
                "task_status_changed",
                task_id=task_id,
                from_status=task.status.value,
                to_status=status.value,
            )
        return updated

    def list_by_status(self, status: Optional[TaskStatus] = None) -> list[GenerationTask]:
        """All tasks in creation order, optionally filtered by status."""
        tasks = sorted(self._tasks.values(), key=lambda t: t.created_at)
        if status is None:
            return tasks
        return [task for task in tasks if task.status == status]

    def pending(self) -> list[GenerationTask]:
        return self.list_by_status(TaskStatus.PENDING)

    def generating(self) -> list[GenerationTask]:
        return self.list_by_status(TaskStatus.GENERATING)

    def remove(self, task_id: str) -> bool:
        """Forget a task. Returns False for an unknown id."""
        removed = self._tasks.pop(task_id, None)
        if removed is not None:
            logger.info("task_removed", task_id=task_id, status=removed.status.value)
        return removed is not None

    def __len__(self) -> int:
        return len(self._tasks)
