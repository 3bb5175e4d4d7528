"""Task bookkeeping and key-value persistence."""
from canvasgen.store.kv import (
    KeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    SupabaseKeyValueStore,
    build_kv_store,
)
from canvasgen.store.tasks import TaskStore

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "SupabaseKeyValueStore",
    "build_kv_store",
    "TaskStore",
]
