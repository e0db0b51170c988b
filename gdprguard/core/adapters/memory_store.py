"""InMemoryObjectStore: dict-backed :class:`ObjectStore` for tests and local runs.

Objects are keyed by their full path; folders are implied by path prefixes.
Individual folders or objects can be configured to fail so that error
isolation in the bulk scanner can be exercised without a network.

Usage::

    store = InMemoryObjectStore({"hr/staff.csv": b"name,email\\n"})
    entries = await store.list("hr")
"""

from __future__ import annotations

from datetime import datetime, timezone

from gdprguard.core.adapters.object_store import FetchError, ListError, ObjectStore, StoreEntry


class InMemoryObjectStore(ObjectStore):
    """Object store held entirely in a ``{path: bytes}`` mapping.

    Args:
        objects: Initial objects keyed by path (leading/trailing slashes are
            ignored).
        failing_folders: Folder paths whose :meth:`list` raises
            :class:`ListError`.
        failing_objects: Object paths whose :meth:`get` raises
            :class:`FetchError`.
        sizes: Optional reported sizes overriding ``len(data)``.
    """

    def __init__(
        self,
        objects: dict[str, bytes] | None = None,
        *,
        failing_folders: set[str] | None = None,
        failing_objects: set[str] | None = None,
        sizes: dict[str, int] | None = None,
    ) -> None:
        self._objects: dict[str, bytes] = {
            path.strip("/"): data for path, data in (objects or {}).items()
        }
        self._failing_folders = {p.strip("/") for p in (failing_folders or set())}
        self._failing_objects = {p.strip("/") for p in (failing_objects or set())}
        self._sizes = {p.strip("/"): s for p, s in (sizes or {}).items()}
        self._modified = datetime.now(tz=timezone.utc)
        self.get_calls: list[str] = []
        self.list_calls: list[str] = []

    def put(self, object_path: str, data: bytes) -> None:
        self._objects[object_path.strip("/")] = data

    def backend_name(self) -> str:
        return "memory"

    async def list(self, folder_path: str) -> list[StoreEntry]:
        folder = folder_path.strip("/")
        self.list_calls.append(folder)
        if folder in self._failing_folders:
            raise ListError(folder_path, "configured to fail")

        prefix = f"{folder}/" if folder else ""
        files: list[StoreEntry] = []
        subfolders: dict[str, StoreEntry] = {}

        for path, data in self._objects.items():
            if not path.startswith(prefix):
                continue
            remainder = path[len(prefix):]
            head, sep, _ = remainder.partition("/")
            if sep:
                subfolders.setdefault(
                    head, StoreEntry(object_path=f"{prefix}{head}", is_directory=True)
                )
            else:
                files.append(
                    StoreEntry(
                        object_path=path,
                        is_directory=False,
                        size_bytes=self._sizes.get(path, len(data)),
                        last_modified=self._modified,
                    )
                )

        return sorted(subfolders.values(), key=lambda e: e.object_path) + sorted(
            files, key=lambda e: e.object_path
        )

    async def get(self, object_path: str) -> bytes | None:
        path = object_path.strip("/")
        self.get_calls.append(path)
        if path in self._failing_objects:
            raise FetchError(object_path, "configured to fail")
        return self._objects.get(path)
