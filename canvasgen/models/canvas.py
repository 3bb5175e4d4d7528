"""Canvas node models shared with the Document Surface."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Point(BaseModel):
    """A canvas coordinate."""

    x: float
    y: float

    def offset(self, dx: float = 0.0, dy: float = 0.0) -> "Point":
        return Point(x=self.x + dx, y=self.y + dy)


class NodeGeometry(BaseModel):
    """Two opposing corners of a node's bounding box."""

    top_left: Point
    bottom_right: Point

    @classmethod
    def from_anchor(cls, anchor: Point, width: float, height: float) -> "NodeGeometry":
        return cls(top_left=anchor, bottom_right=anchor.offset(width, height))

    @property
    def width(self) -> float:
        return self.bottom_right.x - self.top_left.x

    @property
    def height(self) -> float:
        return self.bottom_right.y - self.top_left.y

    @property
    def center(self) -> Point:
        return Point(
            x=(self.top_left.x + self.bottom_right.x) / 2,
            y=(self.top_left.y + self.bottom_right.y) / 2,
        )

    def relative_point(self, rx: float, ry: float) -> Point:
        """Point at a relative position, (0, 0) top-left to (1, 1) bottom-right."""
        return Point(
            x=self.top_left.x + self.width * rx,
            y=self.top_left.y + self.height * ry,
        )


class NodeKind(str, Enum):
    IMAGE = "image"
    CONNECTOR = "connector"


class NodeRole(str, Enum):
    """What a node stands for in the generation flow."""
    PLACEHOLDER = "placeholder"
    ARTIFACT = "artifact"
    REFUSAL = "refusal"
    CONNECTOR = "connector"
    USER = "user"


class NodeDescriptor(BaseModel):
    """What to insert into the surface. The surface decides how to draw it."""

    kind: NodeKind = NodeKind.IMAGE
    role: NodeRole = NodeRole.USER
    url: Optional[str] = None
    width: float = 200.0
    height: float = 200.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConnectionHandle(BaseModel):
    """One end of a bound connector."""

    bound_node_id: str
    connection: tuple[float, float] = Field(
        ...,
        description="Relative attach point on the bound node",
    )
    marker: str = "none"


class ConnectorDescriptor(BaseModel):
    """A connector edge bound to two nodes."""

    kind: NodeKind = NodeKind.CONNECTOR
    role: NodeRole = NodeRole.CONNECTOR
    shape: str = "curve"
    source: ConnectionHandle
    target: ConnectionHandle
    points: list[Point]
    stroke_color: str = "#0ea5e9"
    stroke_width: int = 2


class SurfaceNode(BaseModel):
    """A node as reported by the surface."""

    id: str
    kind: NodeKind
    role: NodeRole = NodeRole.USER
    url: Optional[str] = None
    geometry: Optional[NodeGeometry] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    connector: Optional[ConnectorDescriptor] = None
