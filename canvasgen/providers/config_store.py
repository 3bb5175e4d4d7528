"""Loading and saving the provider configuration."""
from typing import Optional

import structlog
from pydantic import ValidationError

from canvasgen.config import Settings, get_settings
from canvasgen.models.provider import ProviderConfig
from canvasgen.store.kv import KeyValueStore

logger = structlog.get_logger()

SETTINGS_STORAGE_KEY = "settings"


class ProviderConfigStore:
    """ProviderConfig persisted in a KeyValueStore.

    Until a configuration has been saved, the environment defaults from
    `Settings` are used. Blank saved fields also fall back to them.
    """

    def __init__(self, store: KeyValueStore, settings: Optional[Settings] = None):
        self._store = store
        self._settings = settings or get_settings()

    def _defaults(self) -> ProviderConfig:
        return ProviderConfig(
            api_key=self._settings.provider_api_key,
            base_url=self._settings.provider_base_url,
            image_model=self._settings.image_model,
            prompt_model=self._settings.prompt_model,
        )

    def load(self) -> ProviderConfig:
        defaults = self._defaults()
        saved = self._store.get(SETTINGS_STORAGE_KEY)
        if not isinstance(saved, dict):
            return defaults

        merged = defaults.model_dump()
        merged.update({k: v for k, v in saved.items() if k in merged and v})
        try:
            return ProviderConfig(**merged)
        except ValidationError as e:
            logger.error("provider_config_invalid", error=str(e))
            return defaults

    def save(self, config: ProviderConfig) -> None:
        self._store.set(SETTINGS_STORAGE_KEY, config.model_dump())
        logger.info(
            "provider_config_saved",
            base_url=config.base_url,
            image_model=config.image_model,
            prompt_model=config.prompt_model,
            has_api_key=bool(config.api_key),
        )
