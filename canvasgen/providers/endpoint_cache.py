"""Cache of working endpoint path templates, keyed by base URL."""
from typing import Optional

import structlog

from canvasgen.store.kv import KeyValueStore

logger = structlog.get_logger()

PATH_CACHE_KEY = "api_path_cache"


class EndpointCache:
    """baseUrl -> template map persisted under one key of a KeyValueStore.

    Templates keep their literal `{baseUrl}` and `{model}` placeholders; they
    are only substituted at dispatch time.
    """

    def __init__(self, store: KeyValueStore, key: str = PATH_CACHE_KEY):
        self._store = store
        self._key = key

    def _load(self) -> dict[str, str]:
        try:
            data = self._store.get(self._key)
        except Exception as e:
            logger.warning("endpoint_cache_read_failed", error=str(e))
            return {}
        return dict(data) if isinstance(data, dict) else {}

    def get(self, base_url: str) -> Optional[str]:
        return self._load().get(base_url)

    def set(self, base_url: str, template: str) -> None:
        cache = self._load()
        previous = cache.get(base_url)
        cache[base_url] = template
        self._store.set(self._key, cache)
        logger.info(
            "endpoint_cache_written",
            base_url=base_url,
            template=template,
            replaced=previous if previous != template else None,
        )

    def invalidate(self, base_url: str) -> None:
        cache = self._load()
        if cache.pop(base_url, None) is not None:
            self._store.set(self._key, cache)

    def all(self) -> dict[str, str]:
        return self._load()
