"""Model availability checks against the configured provider."""
import json
import re
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel

from canvasgen.generation.worker import ConfigSource
from canvasgen.providers.errors import EndpointExhaustedError
from canvasgen.providers.normalizer import INVALID_KEY_RE
from canvasgen.providers.resolver import ProviderResolver

logger = structlog.get_logger()

PROBE_TEXT = "test"
MODEL_NOT_FOUND_RE = re.compile(r"model.*not found", re.IGNORECASE | re.DOTALL)


class ModelAvailability(BaseModel):
    """Outcome of a model availability check."""

    model: str
    available: bool
    reason: str
    status_code: Optional[int] = None


class ModelAvailabilityChecker:
    """Sends a minimal request to tell whether a model can be used.

    A 400 that is not about the key or the model still counts as available:
    the route and the model exist, only the probe payload was rejected.
    """

    def __init__(self, resolver: ProviderResolver, config_source: ConfigSource):
        self.resolver = resolver
        self.config_source = config_source

    async def check(self, model: str) -> ModelAvailability:
        config = self.config_source()
        if not config.api_key:
            return ModelAvailability(model=model, available=False, reason="missing_api_key")

        kind = self.resolver.classify(config.base_url)
        request = self.resolver.build_request(
            kind,
            PROBE_TEXT,
            [],
            model,
            config.api_key,
            want_image=False,
        )

        try:
            response = await self.resolver.dispatch(
                config.base_url,
                model,
                request.headers,
                request.body,
                request.candidate_templates,
            )
        except EndpointExhaustedError as e:
            logger.warning("model_check_no_endpoint", model=model, error=e.message)
            return ModelAvailability(
                model=model,
                available=False,
                reason="endpoint_unavailable",
                status_code=e.last_status,
            )

        result = self.interpret(model, response)
        logger.info(
            "model_checked",
            model=model,
            available=result.available,
            reason=result.reason,
            status_code=result.status_code,
        )
        return result

    @staticmethod
    def interpret(model: str, response: httpx.Response) -> ModelAvailability:
        status_code = response.status_code

        def outcome(available: bool, reason: str) -> ModelAvailability:
            return ModelAvailability(
                model=model,
                available=available,
                reason=reason,
                status_code=status_code,
            )

        if 200 <= status_code < 300:
            return outcome(True, "ok")
        if status_code in (401, 403):
            return outcome(False, "auth_failed")
        if status_code == 404:
            return outcome(False, "model_not_found")

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            payload = None

        error = payload.get("error") if isinstance(payload, dict) else None
        message = error.get("message", "") if isinstance(error, dict) else ""

        if status_code == 400:
            if INVALID_KEY_RE.search(message):
                return outcome(False, "invalid_api_key")
            if MODEL_NOT_FOUND_RE.search(message):
                return outcome(False, "model_not_found")
            return outcome(True, "request_rejected")

        return outcome(False, "unexpected_status")
