"""Abstract interface for remote object stores scanned by GDPR Guard.

The bulk folder scanner depends only on :class:`ObjectStore`; concrete
backends (the storage HTTP API, an in-memory store for tests) can be swapped
without touching scanner code.

**Failure contract**

* :meth:`ObjectStore.list` raises :class:`ListError` when a folder cannot be
  enumerated (network failure, non-2xx status, malformed payload).  A folder
  that does not exist is *not* an error; it lists as empty.
* :meth:`ObjectStore.get` returns ``None`` when the object cannot be served
  (non-2xx status).  Transport-level failures, including timeouts, raise
  :class:`FetchError` so the caller can record them against the file.

Usage::

    from gdprguard.core.adapters.object_store import ObjectStore, StoreEntry

    class MyStore(ObjectStore):
        async def list(self, folder_path: str) -> list[StoreEntry]: ...
        async def get(self, object_path: str) -> bytes | None: ...
        def backend_name(self) -> str: ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


class ListError(Exception):
    """Raised when a folder cannot be enumerated.

    The original cause is chained via ``__cause__``.

    Attributes:
        folder_path: The folder that failed to list.
    """

    def __init__(self, folder_path: str, message: str) -> None:
        super().__init__(f"Cannot list folder {folder_path!r}: {message}")
        self.folder_path = folder_path


class FetchError(Exception):
    """Raised when an object fetch fails at the transport level."""

    def __init__(self, object_path: str, message: str) -> None:
        super().__init__(f"Cannot fetch object {object_path!r}: {message}")
        self.object_path = object_path


@dataclass(frozen=True)
class StoreEntry:
    """One entry returned by :meth:`ObjectStore.list`.

    Attributes:
        object_path: Full path of the entry inside the store, without a
            leading or trailing slash (e.g. ``"hr/2024/payroll.csv"``).
        is_directory: ``True`` for sub-folders.
        size_bytes: Object size; ``0`` for folders or when unknown.
        last_modified: Last modification time reported by the store.
    """

    object_path: str
    is_directory: bool
    size_bytes: int = 0
    last_modified: datetime | None = None

    @property
    def name(self) -> str:
        return self.object_path.rstrip("/").rsplit("/", 1)[-1]


class ObjectStore(ABC):
    """Path-addressed blob store with list and get operations."""

    @abstractmethod
    async def list(self, folder_path: str) -> list[StoreEntry]:
        """Return the direct children of *folder_path*.

        Raises:
            :class:`ListError`: If the folder cannot be enumerated.
        """

    @abstractmethod
    async def get(self, object_path: str) -> bytes | None:
        """Return the raw bytes of *object_path*, or ``None`` if unavailable.

        Raises:
            :class:`FetchError`: On transport failure or timeout.
        """

    @abstractmethod
    def backend_name(self) -> str:
        """Return a short identifier used in log output, e.g. ``"bunny"``."""

    async def aclose(self) -> None:
        """Release any held resources.  The default implementation does nothing."""
