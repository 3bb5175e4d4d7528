"""Application configuration using Pydantic Settings."""
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_PROMPT_MODEL = "gemini-2.5-flash"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App settings
    app_name: str = "Canvas Image Generation Engine"
    debug: bool = False

    # Default provider configuration
    # Used until a ProviderConfig has been saved to the key-value store
    provider_api_key: str = ""
    provider_base_url: str = DEFAULT_BASE_URL
    image_model: str = DEFAULT_IMAGE_MODEL
    prompt_model: str = DEFAULT_PROMPT_MODEL

    # OpenRouter attribution headers
    openrouter_referer: str = "https://github.com/canvasgen/canvasgen-engine"
    openrouter_title: str = "canvasgen"

    # Key-value persistence (endpoint cache, provider settings)
    kv_backend: Literal["memory", "file", "supabase"] = "file"
    kv_file_path: str = ".canvasgen/kv_store.json"
    kv_table: str = "kv_store"

    # Supabase Configuration
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Transport
    http_timeout_s: float = 120.0

    # Worker behaviour
    connector_settle_delay_s: float = 0.1
    refresh_placeholders: bool = True
    placeholder_max_age_s: int = 300

    def has_provider_key(self) -> bool:
        """Check if a default provider API key is configured."""
        return bool(self.provider_api_key)

    def supabase_configured(self) -> bool:
        """Check whether both Supabase URL and service key are present."""
        return bool(self.supabase_url and self.supabase_service_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
