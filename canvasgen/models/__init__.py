"""Pydantic models for the canvas generation engine."""
from canvasgen.models.task import (
    GenerationTask,
    TaskStatus,
    ProgressStage,
    SelectedImage,
    STAGE_PROGRESS,
)
from canvasgen.models.result import (
    ErrorKind,
    ArtifactSource,
    GeneratedArtifact,
    ClassifiedError,
    ParseResult,
)
from canvasgen.models.provider import (
    ProviderKind,
    ProviderConfig,
    ProviderRequest,
)
from canvasgen.models.canvas import (
    Point,
    NodeGeometry,
    NodeKind,
    NodeRole,
    NodeDescriptor,
    ConnectorDescriptor,
    ConnectionHandle,
    SurfaceNode,
)

__all__ = [
    "GenerationTask",
    "TaskStatus",
    "ProgressStage",
    "SelectedImage",
    "STAGE_PROGRESS",
    "ErrorKind",
    "ArtifactSource",
    "GeneratedArtifact",
    "ClassifiedError",
    "ParseResult",
    "ProviderKind",
    "ProviderConfig",
    "ProviderRequest",
    "Point",
    "NodeGeometry",
    "NodeKind",
    "NodeRole",
    "NodeDescriptor",
    "ConnectorDescriptor",
    "ConnectionHandle",
    "SurfaceNode",
]
