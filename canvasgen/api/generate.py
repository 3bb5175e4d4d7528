"""Generation API endpoints - submission, task status and canvas state."""
from typing import Optional

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, model_validator

from canvasgen.models.canvas import Point, SurfaceNode
from canvasgen.models.task import GenerationTask, SelectedImage, TaskStatus
from canvasgen.session import get_session

logger = structlog.get_logger()

router = APIRouter()


class ImageInput(BaseModel):
    """A reference image, either as a data URI or as uri + base64 payload."""

    uri: str = Field(..., description="Canvas URL or data URI of the image")
    encoded_bytes: Optional[str] = Field(
        None,
        description="Base64 payload; derived from `uri` when it is a data URI",
    )
    media_type: str = "image/png"

    @model_validator(mode="after")
    def _require_payload(self) -> "ImageInput":
        if self.encoded_bytes is None and not self.uri.startswith("data:"):
            raise ValueError("encoded_bytes is required unless uri is a data URI")
        return self

    def to_selected(self) -> SelectedImage:
        if self.encoded_bytes is None:
            return SelectedImage.from_data_uri(self.uri)
        return SelectedImage(uri=self.uri, encoded_bytes=self.encoded_bytes, media_type=self.media_type)


class GenerateRequest(BaseModel):
    """Request body for image generation."""

    prompt: str = Field(
        ...,
        description="Description of the image to generate",
        min_length=1,
        max_length=5000,
    )
    images: list[ImageInput] = Field(
        default_factory=list,
        description="Reference images, sent before the prompt",
    )
    source_node_ids: list[str] = Field(
        default_factory=list,
        description="Canvas nodes to connect to the generated image",
    )
    anchor: Optional[Point] = Field(None, description="Top-left corner for the placeholder")
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)


class GenerateResponse(BaseModel):
    task_id: str
    placeholder_node_id: Optional[str] = None
    status: TaskStatus


class TaskListResponse(BaseModel):
    tasks: list[GenerationTask]
    processing: int


@router.post("/generate", response_model=GenerateResponse, status_code=202)
async def generate_image(request: GenerateRequest) -> GenerateResponse:
    """
    Accept an image-generation request.

    Creates the task and its placeholder, starts the worker in the
    background and returns immediately. Poll `/api/tasks/{task_id}` for the
    outcome.
    """
    logger.info(
        "generate_request",
        prompt_length=len(request.prompt),
        image_count=len(request.images),
        source_count=len(request.source_node_ids),
    )

    try:
        images = [image.to_selected() for image in request.images]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    size = None
    if request.width and request.height:
        size = (request.width, request.height)

    try:
        session = get_session()
        task = session.generate(
            request.prompt,
            images=images,
            source_node_ids=request.source_node_ids,
            anchor_hint=request.anchor,
            size=size,
        )
    except Exception as e:
        logger.error("generate_request_error", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return GenerateResponse(
        task_id=task.id,
        placeholder_node_id=task.placeholder_node_id,
        status=task.status,
    )


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(status: Optional[TaskStatus] = None) -> TaskListResponse:
    """List tasks of the current session, optionally filtered by status."""
    session = get_session()
    return TaskListResponse(
        tasks=session.tasks.list_by_status(status),
        processing=session.worker.processing_count(),
    )


@router.get("/tasks/{task_id}", response_model=GenerationTask)
async def get_task(task_id: str) -> GenerationTask:
    task = get_session().tasks.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return task


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str) -> dict:
    """Forget a task and remove its placeholders."""
    if not get_session().discard(task_id):
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return {"task_id": task_id, "deleted": True}


@router.get("/canvas/nodes", response_model=list[SurfaceNode])
async def list_canvas_nodes() -> list[SurfaceNode]:
    """Nodes currently on the canvas, in insertion order."""
    return get_session().surface.find_nodes(lambda node: True)
