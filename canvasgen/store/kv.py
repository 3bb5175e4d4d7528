"""Persistent key-value stores.

The endpoint cache and the saved provider settings live here. Values are
JSON-compatible objects. Every backend is synchronous: on a single event loop
each call is atomic with respect to other tasks.
"""
import json
from pathlib import Path
from typing import Any, Optional, Protocol

import structlog

from canvasgen.config import Settings, get_settings
from canvasgen.store.supabase import SupabaseClient, get_supabase_client

logger = structlog.get_logger()


class KeyValueStore(Protocol):
    """Host-provided persistent key-value store."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store. Contents are lost on exit."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Store backed by a single JSON document on disk.

    A missing or unreadable file reads as empty; the next write recreates it.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("kv_file_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


class SupabaseKeyValueStore:
    """Store backed by a Supabase table with `key` (unique) and `value` (jsonb) columns."""

    def __init__(self, client: SupabaseClient, table: str = "kv_store"):
        self._client = client
        self.table = table

    def get(self, key: str) -> Optional[Any]:
        rows = self._client.select(self.table, columns="value", filters={"key": key}, limit=1)
        return rows[0].get("value") if rows else None

    def set(self, key: str, value: Any) -> None:
        self._client.upsert(self.table, {"key": key, "value": value}, on_conflict="key")

    def delete(self, key: str) -> None:
        self._client.delete(self.table, filters={"key": key})


def build_kv_store(settings: Optional[Settings] = None) -> KeyValueStore:
    """Build the configured key-value backend.

    Falls back to the JSON file store when Supabase is selected but not
    configured.
    """
    settings = settings or get_settings()

    if settings.kv_backend == "memory":
        return InMemoryKeyValueStore()

    if settings.kv_backend == "supabase":
        client = get_supabase_client()
        if client is not None:
            logger.info("kv_store_backend", backend="supabase", table=settings.kv_table)
            return SupabaseKeyValueStore(client, table=settings.kv_table)
        logger.warning("kv_store_supabase_unavailable", fallback="file")

    logger.info("kv_store_backend", backend="file", path=settings.kv_file_path)
    return JsonFileKeyValueStore(settings.kv_file_path)
