"""Generation task models.

A task is the unit of work for one image-generation request, from the
moment the request is accepted until it reaches a terminal state.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from canvasgen.models.result import ErrorKind


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Lifecycle status of a generation task."""
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.ERROR)


# Allowed status changes; a status may always be re-stated to merge fields.
ALLOWED_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.PENDING, TaskStatus.GENERATING},
    TaskStatus.GENERATING: {TaskStatus.GENERATING, TaskStatus.COMPLETED, TaskStatus.ERROR},
    TaskStatus.COMPLETED: set(),
    TaskStatus.ERROR: set(),
}


class ProgressStage(str, Enum):
    """Fixed worker checkpoints, in execution order."""
    INITIALIZE = "initialize"
    CONNECT = "connect"
    DISPATCH = "dispatch"
    RECEIVE = "receive"
    FINALIZE = "finalize"

    @property
    def progress(self) -> float:
        return STAGE_PROGRESS[self]


STAGE_PROGRESS: dict[ProgressStage, float] = {
    ProgressStage.INITIALIZE: 0.2,
    ProgressStage.CONNECT: 0.4,
    ProgressStage.DISPATCH: 0.6,
    ProgressStage.RECEIVE: 0.9,
    ProgressStage.FINALIZE: 1.0,
}


class SelectedImage(BaseModel):
    """A reference image sent along with the prompt."""

    uri: str = Field(..., description="Where the image came from (canvas URL or data URI)")
    encoded_bytes: str = Field(..., description="Base64 payload without the data: prefix")
    media_type: str = Field("image/png", description="MIME type of the payload")

    @classmethod
    def from_data_uri(cls, uri: str) -> "SelectedImage":
        """Build from a `data:<mime>;base64,<payload>` URI."""
        header, sep, payload = uri.partition(",")
        if not sep or not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("Expected a base64 data URI")
        media_type = header[len("data:"):-len(";base64")] or "image/png"
        return cls(uri=uri, encoded_bytes=payload, media_type=media_type)


class GenerationTask(BaseModel):
    """A single image-generation request and its lifecycle state."""

    id: str
    status: TaskStatus = TaskStatus.PENDING
    prompt: str

    selected_images: list[SelectedImage] = Field(default_factory=list)
    source_node_ids: list[str] = Field(
        default_factory=list,
        description="Canvas nodes the result will be connected from",
    )
    placeholder_node_id: Optional[str] = None

    # Outcome
    result_artifact_uri: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    # Progress
    progress: float = Field(0.0, ge=0.0, le=1.0)
    progress_stage: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def can_transition_to(self, status: TaskStatus) -> bool:
        """Check whether moving to `status` respects the lifecycle."""
        return status in ALLOWED_TRANSITIONS[self.status]
