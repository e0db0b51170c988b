"""Object store adapters consumed by the bulk folder scanner."""

from gdprguard.core.adapters.bunny_storage import BunnyStorageAdapter
from gdprguard.core.adapters.memory_store import InMemoryObjectStore
from gdprguard.core.adapters.object_store import FetchError, ListError, ObjectStore, StoreEntry

__all__ = [
    "BunnyStorageAdapter",
    "FetchError",
    "InMemoryObjectStore",
    "ListError",
    "ObjectStore",
    "StoreEntry",
]
