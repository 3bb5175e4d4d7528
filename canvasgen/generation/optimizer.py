"""Prompt Optimizer - rewrites a short prompt into a detailed one."""
from typing import Optional

import structlog

from canvasgen.generation.prompts import build_optimize_prompt
from canvasgen.generation.worker import ConfigSource
from canvasgen.models.result import ClassifiedError
from canvasgen.models.task import SelectedImage
from canvasgen.providers.errors import ClassifiedProviderError, MissingCredentialsError
from canvasgen.providers.normalizer import ResponseNormalizer
from canvasgen.providers.resolver import ProviderResolver

logger = structlog.get_logger()


class PromptOptimizer:
    """Uses the configured prompt model to enrich an image prompt."""

    def __init__(
        self,
        resolver: ProviderResolver,
        normalizer: ResponseNormalizer,
        config_source: ConfigSource,
    ):
        self.resolver = resolver
        self.normalizer = normalizer
        self.config_source = config_source

    async def optimize(self, prompt: str, images: Optional[list[SelectedImage]] = None) -> str:
        """Return an optimized version of `prompt`.

        Raises:
            MissingCredentialsError: no API key configured
            EndpointExhaustedError: no candidate path answered
            ClassifiedProviderError: the provider answered with an error
        """
        images = list(images or [])
        config = self.config_source()
        if not config.api_key:
            raise MissingCredentialsError("API key is not configured")

        kind = self.resolver.classify(config.base_url)
        request = self.resolver.build_request(
            kind,
            build_optimize_prompt(prompt, bool(images)),
            images,
            config.prompt_model,
            config.api_key,
            want_image=False,
        )

        logger.info("prompt_optimize_start", provider=kind.value, model=config.prompt_model)
        response = await self.resolver.dispatch(
            config.base_url,
            config.prompt_model,
            request.headers,
            request.body,
            request.candidate_templates,
        )

        result = self.normalizer.parse_text(kind, response)
        if isinstance(result, ClassifiedError):
            raise ClassifiedProviderError(result)

        optimized = result.strip()
        logger.info("prompt_optimized", original_length=len(prompt), optimized_length=len(optimized))
        return optimized
