"""Document Surface protocol and an in-memory implementation.

The real rendering surface lives in the host application. The engine only
talks to it through `DocumentSurface`. `InMemoryDocumentSurface` backs the
HTTP service and the test suite.
"""
from itertools import count
from typing import Callable, Optional, Protocol, Union, runtime_checkable

import structlog

from canvasgen.models.canvas import (
    ConnectorDescriptor,
    NodeDescriptor,
    NodeGeometry,
    NodeKind,
    Point,
    SurfaceNode,
)

logger = structlog.get_logger()

Descriptor = Union[NodeDescriptor, ConnectorDescriptor]
NodePredicate = Callable[[SurfaceNode], bool]


@runtime_checkable
class DocumentSurface(Protocol):
    """Operations the engine needs from a visual document."""

    supports_in_place_update: bool

    def insert_node(self, descriptor: Descriptor, anchor: Point) -> str: ...

    def remove_nodes(self, node_ids: list[str]) -> None: ...

    def find_nodes(self, predicate: NodePredicate) -> list[SurfaceNode]: ...

    def get_selected_nodes(self) -> list[SurfaceNode]: ...

    def get_geometry(self, node_id: str) -> Optional[NodeGeometry]: ...

    def get_node(self, node_id: str) -> Optional[SurfaceNode]: ...

    def update_node(self, node_id: str, descriptor: NodeDescriptor) -> bool: ...


class InMemoryDocumentSurface:
    """Ordered node map with a selection, standing in for a real canvas.

    Node ids are never reused. Nodes are kept in insertion order so "last
    image on the surface" is well defined.
    """

    def __init__(self, supports_in_place_update: bool = False, id_prefix: str = "node"):
        self.supports_in_place_update = supports_in_place_update
        self._nodes: dict[str, SurfaceNode] = {}
        self._selection: list[str] = []
        self._ids = count(1)
        self._id_prefix = id_prefix

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes(self) -> list[SurfaceNode]:
        return list(self._nodes.values())

    def insert_node(self, descriptor: Descriptor, anchor: Point) -> str:
        node_id = f"{self._id_prefix}-{next(self._ids)}"

        if isinstance(descriptor, ConnectorDescriptor):
            xs = [p.x for p in descriptor.points]
            ys = [p.y for p in descriptor.points]
            node = SurfaceNode(
                id=node_id,
                kind=NodeKind.CONNECTOR,
                role=descriptor.role,
                geometry=NodeGeometry(
                    top_left=Point(x=min(xs), y=min(ys)),
                    bottom_right=Point(x=max(xs), y=max(ys)),
                ),
                connector=descriptor,
            )
        else:
            node = SurfaceNode(
                id=node_id,
                kind=descriptor.kind,
                role=descriptor.role,
                url=descriptor.url,
                geometry=NodeGeometry.from_anchor(anchor, descriptor.width, descriptor.height),
                metadata=dict(descriptor.metadata),
            )

        self._nodes[node_id] = node
        return node_id

    def update_node(self, node_id: str, descriptor: NodeDescriptor) -> bool:
        node = self._nodes.get(node_id)
        if node is None or not self.supports_in_place_update:
            return False
        self._nodes[node_id] = node.model_copy(update={
            "url": descriptor.url,
            "role": descriptor.role,
            "metadata": dict(descriptor.metadata),
        })
        return True

    def remove_nodes(self, node_ids: list[str]) -> None:
        for node_id in node_ids:
            self._nodes.pop(node_id, None)
        self._selection = [i for i in self._selection if i in self._nodes]

    def find_nodes(self, predicate: NodePredicate) -> list[SurfaceNode]:
        return [node for node in self._nodes.values() if predicate(node)]

    def get_node(self, node_id: str) -> Optional[SurfaceNode]:
        return self._nodes.get(node_id)

    def get_geometry(self, node_id: str) -> Optional[NodeGeometry]:
        node = self._nodes.get(node_id)
        return node.geometry if node else None

    def select(self, node_ids: list[str]) -> None:
        """Replace the selection; unknown ids are ignored."""
        self._selection = [i for i in node_ids if i in self._nodes]

    def get_selected_nodes(self) -> list[SurfaceNode]:
        return [self._nodes[i] for i in self._selection if i in self._nodes]
