"""Generation pipeline: worker, prompt optimization and model checks."""
from canvasgen.generation.model_check import ModelAvailability, ModelAvailabilityChecker
from canvasgen.generation.optimizer import PromptOptimizer
from canvasgen.generation.prompts import build_image_prompt, build_optimize_prompt
from canvasgen.generation.worker import GenerationWorker, UpdateCallback

__all__ = [
    "ModelAvailability",
    "ModelAvailabilityChecker",
    "PromptOptimizer",
    "build_image_prompt",
    "build_optimize_prompt",
    "GenerationWorker",
    "UpdateCallback",
]
