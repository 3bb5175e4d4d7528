"""Placeholder visuals for in-flight generation tasks.

Handles:
- Creating a placeholder next to the selected images
- Reflecting progress, in place when the surface allows it and by
  delete+recreate otherwise
- Swapping placeholders for the generated artifact or a refusal visual
- Removing placeholders that outlived their task
"""
from datetime import timedelta
from typing import Optional

import structlog

from canvasgen.canvas.registry import PlaceholderRegistry
from canvasgen.canvas.surface import DocumentSurface
from canvasgen.models.canvas import (
    NodeDescriptor,
    NodeGeometry,
    NodeKind,
    NodeRole,
    Point,
    SurfaceNode,
)
from canvasgen.models.task import utcnow

logger = structlog.get_logger()


DEFAULT_SIZE = (200.0, 200.0)
DEFAULT_ANCHOR = Point(x=300, y=200)
HORIZONTAL_GAP = 150.0
PROMPT_DISPLAY_LIMIT = 50
DEFAULT_MAX_AGE_S = 300


def display_prompt(prompt: str) -> str:
    if len(prompt) > PROMPT_DISPLAY_LIMIT:
        return prompt[:PROMPT_DISPLAY_LIMIT - 3] + "..."
    return prompt


def _is_image(node: SurfaceNode) -> bool:
    return node.kind == NodeKind.IMAGE and node.geometry is not None


class PlaceholderSync:
    """Keeps placeholder nodes on the surface in step with task state."""

    def __init__(
        self,
        surface: DocumentSurface,
        registry: Optional[PlaceholderRegistry] = None,
        max_age_s: int = DEFAULT_MAX_AGE_S,
    ):
        self.surface = surface
        self.registry = registry or PlaceholderRegistry()
        self.max_age_s = max_age_s
        self._prompts: dict[str, str] = {}

    # =========================================================================
    # Registry access
    # =========================================================================

    def register(self, node_id: str, task_id: str) -> None:
        self.registry.register(node_id, task_id)

    def unregister(self, node_id: str) -> None:
        record = self.registry.unregister(node_id)
        if record and not self.registry.nodes_for(record.task_id):
            self._prompts.pop(record.task_id, None)

    def lookup(self, node_id: str) -> Optional[str]:
        """Task id for a placeholder node, pruning the record if the node is gone."""
        record = self.registry.get(node_id)
        if record is None:
            return None
        if self.surface.get_node(node_id) is None:
            logger.info("placeholder_pruned", node_id=node_id, task_id=record.task_id)
            self.registry.unregister(node_id)
            return None
        return record.task_id

    def all_nodes_for(self, task_id: str) -> list[str]:
        """Live placeholder node ids for a task, oldest first."""
        return [node_id for node_id in self.registry.nodes_for(task_id) if self.lookup(node_id)]

    # =========================================================================
    # Create / update
    # =========================================================================

    def _descriptor(
        self,
        task_id: str,
        width: float,
        height: float,
        progress: float,
        stage: Optional[str] = None,
    ) -> NodeDescriptor:
        return NodeDescriptor(
            role=NodeRole.PLACEHOLDER,
            width=width,
            height=height,
            metadata={
                "task_id": task_id,
                "prompt": display_prompt(self._prompts.get(task_id, "")),
                "progress": max(0.0, min(1.0, progress)),
                "stage": stage,
            },
        )

    def _layout(
        self,
        anchor_hint: Optional[Point],
        size: Optional[tuple[float, float]],
    ) -> tuple[Point, tuple[float, float]]:
        selected = [node for node in self.surface.get_selected_nodes() if _is_image(node)]
        last_selected: Optional[NodeGeometry] = selected[-1].geometry if selected else None

        if size is None:
            if last_selected is not None:
                size = (last_selected.width, last_selected.height)
            else:
                size = DEFAULT_SIZE

        if anchor_hint is not None:
            return anchor_hint, size

        reference = last_selected
        if reference is None:
            images = self.surface.find_nodes(_is_image)
            reference = images[-1].geometry if images else None

        if reference is None:
            return DEFAULT_ANCHOR, size
        return reference.top_left.offset(dx=reference.width + HORIZONTAL_GAP), size

    def create(
        self,
        task_id: str,
        prompt: str,
        anchor_hint: Optional[Point] = None,
        size: Optional[tuple[float, float]] = None,
        progress: float = 0.0,
    ) -> str:
        """Insert and register a placeholder node for a task.

        Args:
            task_id: Task the placeholder stands for
            prompt: Prompt shown on the placeholder (truncated for display)
            anchor_hint: Explicit top-left corner
            size: Explicit (width, height)
            progress: Initial progress in [0, 1]

        Returns:
            Id of the inserted node
        """
        self._prompts[task_id] = prompt
        anchor, (width, height) = self._layout(anchor_hint, size)

        node_id = self.surface.insert_node(
            self._descriptor(task_id, width, height, progress),
            anchor,
        )
        self.register(node_id, task_id)

        logger.info(
            "placeholder_created",
            task_id=task_id,
            node_id=node_id,
            x=anchor.x,
            y=anchor.y,
            width=width,
            height=height,
        )
        return node_id

    def update_progress(self, task_id: str, progress: float, stage: Optional[str] = None) -> Optional[str]:
        """Show new progress on the task's placeholder.

        Returns:
            Id of the node now showing progress, or None when the task has
            no live placeholder
        """
        node_ids = self.all_nodes_for(task_id)
        if not node_ids:
            logger.debug("placeholder_missing_for_progress", task_id=task_id)
            return None

        latest = node_ids[-1]
        geometry = self.surface.get_geometry(latest)
        if geometry is None:
            return None

        descriptor = self._descriptor(task_id, geometry.width, geometry.height, progress, stage)

        if self.surface.supports_in_place_update and self.surface.update_node(latest, descriptor):
            stale = node_ids[:-1]
            if stale:
                self._remove_and_unregister(stale)
            return latest

        new_id = self.surface.insert_node(descriptor, geometry.top_left)
        self.register(new_id, task_id)
        self._remove_and_unregister(node_ids)

        logger.debug("placeholder_recreated", task_id=task_id, old_node_ids=node_ids, node_id=new_id)
        return new_id

    # =========================================================================
    # Terminal swaps
    # =========================================================================

    def _remove_best_effort(self, node_ids: list[str]) -> list[str]:
        """Remove nodes, returning the ids that were actually removed."""
        try:
            self.surface.remove_nodes(node_ids)
            return list(node_ids)
        except Exception as e:
            logger.warning("placeholder_batch_remove_failed", node_ids=node_ids, error=str(e))

        removed = []
        for node_id in node_ids:
            try:
                self.surface.remove_nodes([node_id])
                removed.append(node_id)
            except Exception as e:
                logger.warning("placeholder_remove_failed", node_id=node_id, error=str(e))
        return removed

    def _remove_and_unregister(self, node_ids: list[str]) -> None:
        # Nodes that survive removal stay registered and are retried next time
        for node_id in self._remove_best_effort(node_ids):
            self.registry.unregister(node_id)

    def _swap(self, task_id: str, descriptor: NodeDescriptor) -> Optional[str]:
        node_ids = self.registry.nodes_for(task_id)
        if not node_ids:
            logger.warning("placeholder_not_found", task_id=task_id)
            return None

        geometry: Optional[NodeGeometry] = None
        for node_id in reversed(node_ids):
            geometry = self.surface.get_geometry(node_id)
            if geometry is not None:
                break

        new_id: Optional[str] = None
        if geometry is None:
            logger.warning("placeholder_nodes_gone", task_id=task_id, node_ids=node_ids)
        else:
            descriptor = descriptor.model_copy(update={
                "width": geometry.width,
                "height": geometry.height,
            })
            try:
                new_id = self.surface.insert_node(descriptor, geometry.top_left)
            except Exception as e:
                logger.error("placeholder_swap_insert_failed", task_id=task_id, error=str(e))

        if new_id is not None:
            self._remove_best_effort(node_ids)

        for node_id in node_ids:
            self.registry.unregister(node_id)
        self._prompts.pop(task_id, None)
        return new_id

    def replace(self, task_id: str, artifact_uri: str) -> Optional[str]:
        """Swap every placeholder of a task for the generated artifact.

        The artifact takes the position and size of the most recent
        placeholder. Returns the artifact node id, or None when the task has
        no placeholder.
        """
        new_id = self._swap(
            task_id,
            NodeDescriptor(
                role=NodeRole.ARTIFACT,
                url=artifact_uri,
                metadata={"task_id": task_id},
            ),
        )
        if new_id:
            logger.info("placeholder_replaced", task_id=task_id, node_id=new_id)
        return new_id

    def render_refusal(self, task_id: str, message: str) -> Optional[str]:
        """Swap the placeholders for a visual marking a refused request."""
        new_id = self._swap(
            task_id,
            NodeDescriptor(
                role=NodeRole.REFUSAL,
                metadata={
                    "task_id": task_id,
                    "prompt": display_prompt(self._prompts.get(task_id, "")),
                    "message": message,
                },
            ),
        )
        if new_id:
            logger.info("refusal_rendered", task_id=task_id, node_id=new_id)
        return new_id

    def cleanup_expired(self, max_age_seconds: Optional[float] = None) -> int:
        """Remove placeholders registered longer ago than `max_age_seconds`.

        Returns:
            Number of records removed
        """
        max_age = self.max_age_s if max_age_seconds is None else max_age_seconds
        cutoff = utcnow() - timedelta(seconds=max_age)

        expired = [r for r in self.registry.records() if r.registered_at < cutoff]
        if not expired:
            return 0

        self._remove_best_effort([r.node_id for r in expired])
        for record in expired:
            self.unregister(record.node_id)

        logger.info("placeholders_expired", count=len(expired), max_age_s=max_age)
        return len(expired)
