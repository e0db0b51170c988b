"""BunnyStorageAdapter: :class:`ObjectStore` over the storage zone HTTP API.

Listing a folder issues ``GET {base_url}/{zone}/{folder}/`` with the
``AccessKey`` header and parses the JSON array response::

    [
        {"ObjectName": "reports", "IsDirectory": true, "Length": 0, ...},
        {"ObjectName": "q1.csv", "IsDirectory": false, "Length": 2048,
         "LastChanged": "2026-03-01T10:15:00.000"}
    ]

Fetching an object issues ``GET {base_url}/{zone}/{path}``.

Status handling:

* ``list``: 404 → empty folder; any other non-2xx → :class:`ListError`.
* ``get``: non-2xx → ``None``; optional Content-Type gating → ``None`` for
  non-text payloads; transport errors and timeouts → :class:`FetchError`.

The adapter never retries.  Callers that want retry-with-backoff wrap it.

Usage::

    async with BunnyStorageAdapter.from_settings(get_settings()) as store:
        entries = await store.list("hr/")
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

import httpx

from gdprguard.config import Settings
from gdprguard.core.adapters.object_store import FetchError, ListError, ObjectStore, StoreEntry

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0


def _folder_url_path(folder_path: str) -> str:
    folder = folder_path.strip("/")
    return f"{folder}/" if folder else ""


def _parse_timestamp(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_size(raw: Any) -> int:
    try:
        return max(int(raw or 0), 0)
    except (TypeError, ValueError):
        logger.debug("Unparseable Length %r in listing, using 0", raw)
        return 0


class BunnyStorageAdapter(ObjectStore):
    """Async HTTP client for a single storage zone.

    Args:
        storage_zone: Zone name, the first URL path segment.
        api_key: Value of the ``AccessKey`` header.
        base_url: Storage API endpoint.
        timeout: Per-request timeout in seconds.
        text_content_types: When given, :meth:`get` returns ``None`` for
            responses whose ``Content-Type`` contains none of these
            fragments.  A missing header is accepted.
        http_client: Optional shared :class:`httpx.AsyncClient`.  When
            ``None`` the adapter owns a client and closes it in
            :meth:`aclose`.
    """

    def __init__(
        self,
        storage_zone: str,
        api_key: str,
        *,
        base_url: str = "https://storage.bunnycdn.com",
        timeout: float = _DEFAULT_TIMEOUT,
        text_content_types: Sequence[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not storage_zone:
            raise ValueError("storage_zone must not be empty")
        self._zone = storage_zone.strip("/")
        self._base_url = base_url.rstrip("/")
        self._headers = {"AccessKey": api_key}
        self._text_content_types = (
            tuple(t.lower() for t in text_content_types) if text_content_types else None
        )
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "BunnyStorageAdapter":
        return cls(
            settings.storage_zone,
            settings.storage_api_key,
            base_url=settings.storage_base_url,
            timeout=settings.storage_timeout_seconds,
            text_content_types=settings.scan_text_content_types,
            http_client=http_client,
        )

    async def __aenter__(self) -> "BunnyStorageAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def backend_name(self) -> str:
        return "bunny"

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def list(self, folder_path: str) -> list[StoreEntry]:
        folder = _folder_url_path(folder_path)
        url = f"{self._base_url}/{self._zone}/{folder}"

        try:
            response = await self._client.get(
                url, headers={**self._headers, "Accept": "application/json"}
            )
        except httpx.RequestError as exc:
            raise ListError(folder_path, f"network error: {exc}") from exc

        if response.status_code == 404:
            logger.debug("BunnyStorageAdapter.list: %s not found, treating as empty", folder)
            return []

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ListError(folder_path, f"HTTP {response.status_code}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ListError(folder_path, "response is not valid JSON") from exc

        if not isinstance(payload, list):
            raise ListError(folder_path, f"expected a JSON array, got {type(payload).__name__}")

        entries: list[StoreEntry] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            name = str(item.get("ObjectName") or "").strip("/")
            if not name:
                continue
            entries.append(
                StoreEntry(
                    object_path=f"{folder}{name}",
                    is_directory=bool(item.get("IsDirectory")),
                    size_bytes=_parse_size(item.get("Length")),
                    last_modified=_parse_timestamp(item.get("LastChanged")),
                )
            )

        logger.debug(
            "BunnyStorageAdapter.list: folder=%s entries=%d", folder or "/", len(entries)
        )
        return entries

    async def get(self, object_path: str) -> bytes | None:
        url = f"{self._base_url}/{self._zone}/{object_path.lstrip('/')}"

        try:
            response = await self._client.get(url, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise FetchError(object_path, f"timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise FetchError(object_path, f"network error: {exc}") from exc

        if not response.is_success:
            logger.warning(
                "BunnyStorageAdapter.get: HTTP %d for %s", response.status_code, object_path
            )
            return None

        if self._text_content_types is not None:
            content_type = response.headers.get("content-type", "").lower()
            if content_type and not any(t in content_type for t in self._text_content_types):
                logger.debug(
                    "BunnyStorageAdapter.get: skipping %s with content-type %s",
                    object_path,
                    content_type,
                )
                return None

        return response.content
