"""Provider resolution, dispatch and response normalization."""
from canvasgen.providers.config_store import ProviderConfigStore
from canvasgen.providers.endpoint_cache import EndpointCache
from canvasgen.providers.errors import (
    ClassifiedProviderError,
    EndpointExhaustedError,
    MissingCredentialsError,
    ProviderError,
)
from canvasgen.providers.normalizer import ResponseNormalizer
from canvasgen.providers.resolver import ProviderResolver

__all__ = [
    "ProviderConfigStore",
    "EndpointCache",
    "ClassifiedProviderError",
    "EndpointExhaustedError",
    "MissingCredentialsError",
    "ProviderError",
    "ResponseNormalizer",
    "ProviderResolver",
]
