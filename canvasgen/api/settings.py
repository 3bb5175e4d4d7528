"""Provider settings, model checks and prompt optimization endpoints."""
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from canvasgen.generation.model_check import ModelAvailability
from canvasgen.models.provider import ProviderConfig
from canvasgen.providers.errors import ProviderError
from canvasgen.session import get_session

logger = structlog.get_logger()

router = APIRouter()


class SettingsUpdate(BaseModel):
    """Partial provider settings. Omitted fields keep their current value."""

    api_key: Optional[str] = None
    base_url: Optional[str] = Field(None, min_length=1)
    image_model: Optional[str] = Field(None, min_length=1)
    prompt_model: Optional[str] = Field(None, min_length=1)


class ModelCheckRequest(BaseModel):
    model: Optional[str] = Field(None, description="Model name; defaults to the configured one")
    model_type: Literal["image", "prompt"] = "image"


class OptimizeRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=5000)


class OptimizeResponse(BaseModel):
    prompt: str


@router.get("/settings")
async def get_provider_settings() -> dict:
    """Current provider settings, with the API key masked."""
    return get_session().config_store.load().masked()


@router.put("/settings")
async def update_provider_settings(update: SettingsUpdate) -> dict:
    session = get_session()
    current = session.config_store.load()
    changes = update.model_dump(exclude_none=True)
    config = ProviderConfig(**{**current.model_dump(), **changes})

    try:
        session.config_store.save(config)
    except Exception as e:
        logger.error("settings_save_error", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return config.masked()


@router.post("/models/check", response_model=ModelAvailability)
async def check_model(request: ModelCheckRequest) -> ModelAvailability:
    """Probe whether a model is reachable with the configured credential."""
    session = get_session()
    model = request.model
    if not model:
        config = session.config_store.load()
        model = config.image_model if request.model_type == "image" else config.prompt_model

    try:
        return await session.model_checker.check(model)
    except Exception as e:
        logger.error("model_check_error", model=model, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/prompt/optimize", response_model=OptimizeResponse)
async def optimize_prompt(request: OptimizeRequest) -> OptimizeResponse:
    """Rewrite a prompt into a more detailed one using the prompt model."""
    try:
        optimized = await get_session().optimizer.optimize(request.prompt)
    except ProviderError as e:
        error = e.to_classified()
        raise HTTPException(
            status_code=502,
            detail={"kind": error.kind.value, "message": error.message},
        )
    except Exception as e:
        logger.error("prompt_optimize_error", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return OptimizeResponse(prompt=optimized)
