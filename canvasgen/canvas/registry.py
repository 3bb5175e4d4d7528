"""Side-table linking placeholder nodes to generation tasks."""
from datetime import datetime
from itertools import count
from typing import Optional

from pydantic import BaseModel, Field

from canvasgen.models.task import utcnow


class PlaceholderRecord(BaseModel):
    node_id: str
    task_id: str
    registered_at: datetime = Field(default_factory=utcnow)
    sequence: int = 0


class PlaceholderRegistry:
    """Bidirectional node <-> task index.

    Surface nodes cannot carry the task id themselves, so this registry is
    the only place the relationship is recorded.
    """

    def __init__(self):
        self._by_node: dict[str, PlaceholderRecord] = {}
        self._by_task: dict[str, list[str]] = {}
        self._sequence = count()

    def __len__(self) -> int:
        return len(self._by_node)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._by_node

    def register(self, node_id: str, task_id: str) -> PlaceholderRecord:
        if node_id in self._by_node:
            self.unregister(node_id)
        record = PlaceholderRecord(
            node_id=node_id,
            task_id=task_id,
            sequence=next(self._sequence),
        )
        self._by_node[node_id] = record
        self._by_task.setdefault(task_id, []).append(node_id)
        return record

    def unregister(self, node_id: str) -> Optional[PlaceholderRecord]:
        record = self._by_node.pop(node_id, None)
        if record is None:
            return None
        node_ids = self._by_task.get(record.task_id, [])
        if node_id in node_ids:
            node_ids.remove(node_id)
        if not node_ids:
            self._by_task.pop(record.task_id, None)
        return record

    def get(self, node_id: str) -> Optional[PlaceholderRecord]:
        return self._by_node.get(node_id)

    def nodes_for(self, task_id: str) -> list[str]:
        """Node ids registered for a task, oldest first."""
        return list(self._by_task.get(task_id, []))

    def records(self) -> list[PlaceholderRecord]:
        return sorted(self._by_node.values(), key=lambda r: r.sequence)

