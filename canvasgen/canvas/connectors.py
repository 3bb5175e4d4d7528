"""Connector edges from source images to a generated artifact."""
from typing import Optional

import structlog

from canvasgen.canvas.surface import DocumentSurface
from canvasgen.models.canvas import (
    ConnectionHandle,
    ConnectorDescriptor,
    NodeGeometry,
    NodeKind,
)

logger = structlog.get_logger()

Connection = tuple[float, float]


def connection_points(source: NodeGeometry, target: NodeGeometry) -> tuple[Connection, Connection]:
    """Pick facing edge midpoints from the dominant direction between centers.

    Returns:
        (source_connection, target_connection) as relative positions
    """
    dx = target.center.x - source.center.x
    dy = target.center.y - source.center.y

    if abs(dx) > abs(dy):
        if dx > 0:
            return (1.0, 0.5), (0.0, 0.5)
        return (0.0, 0.5), (1.0, 0.5)

    if dy > 0:
        return (0.5, 1.0), (0.5, 0.0)
    return (0.5, 0.0), (0.5, 1.0)


def build_connector(
    source_id: str,
    source: NodeGeometry,
    target_id: str,
    target: NodeGeometry,
) -> ConnectorDescriptor:
    source_connection, target_connection = connection_points(source, target)
    return ConnectorDescriptor(
        source=ConnectionHandle(
            bound_node_id=source_id,
            connection=source_connection,
            marker="none",
        ),
        target=ConnectionHandle(
            bound_node_id=target_id,
            connection=target_connection,
            marker="arrow",
        ),
        points=[
            source.relative_point(*source_connection),
            target.relative_point(*target_connection),
        ],
    )


def _image_geometry(surface: DocumentSurface, node_id: str) -> Optional[NodeGeometry]:
    node = surface.get_node(node_id)
    if node is None or node.kind != NodeKind.IMAGE:
        return None
    return node.geometry


def create_connectors(
    surface: DocumentSurface,
    source_node_ids: list[str],
    target_node_id: str,
) -> list[str]:
    """Insert one bound connector per source image.

    Each edge is attempted independently; a failure is logged and does not
    stop the others.

    Returns:
        Ids of the connectors that were inserted
    """
    if not source_node_ids:
        return []

    target = _image_geometry(surface, target_node_id)
    if target is None:
        logger.warning("connector_target_missing", target_node_id=target_node_id)
        return []

    created = []
    for source_id in source_node_ids:
        try:
            source = _image_geometry(surface, source_id)
            if source is None:
                logger.warning("connector_source_missing", source_node_id=source_id)
                continue
            descriptor = build_connector(source_id, source, target_node_id, target)
            created.append(surface.insert_node(descriptor, descriptor.points[0]))
        except Exception as e:
            logger.error(
                "connector_create_failed",
                source_node_id=source_id,
                target_node_id=target_node_id,
                error=str(e),
            )

    logger.info(
        "connectors_created",
        target_node_id=target_node_id,
        requested=len(source_node_ids),
        created=len(created),
    )
    return created
