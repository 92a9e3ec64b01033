from __future__ import annotations

import asyncio
import copy
import json
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from .errors import StorageError
from .log import get_logger

logger = get_logger(__name__)

IGNORED_HOSTS = "ignoredHosts"
ENABLE_EXTENSION = "enableExtension"
PROXY_SERVER_URI = "proxyServerURI"
CUSTOM_PROXY_SERVER_URI = "customProxyServerURI"
PROXY_PING_URI = "proxyPingURI"
USE_PROXY = "useProxy"
PROXY_IS_ALIVE = "proxyIsAlive"
BAD_PROXIES = "badProxies"
PRIVATE_BROWSING_REQUIRED = "privateBrowsingPermissionsRequired"
DOMAINS = "domains"
DISTRIBUTORS = "distributors"
LAST_SYNC_TIMESTAMP = "lastSyncTimestamp"


class StateStore(Protocol):
    async def get(self, key: str, default: Any = None) -> Any:
        ...

    async def set(self, values: Mapping[str, Any]) -> None:
        ...


class MemoryStore:
    """Process-local store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return copy.deepcopy(default)
        return copy.deepcopy(self._data[key])

    async def set(self, values: Mapping[str, Any]) -> None:
        self._data.update(copy.deepcopy(dict(values)))

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore:
    """Key/value state kept in a single JSON document on disk.

    The file is read lazily on first access and rewritten in full on every
    ``set``. Writes go to a sibling temp file which is then renamed over the
    original, so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: Optional[dict[str, Any]] = None
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"cannot read {self.path}: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            self._quarantine(str(exc))
            return {}
        if not isinstance(data, dict):
            self._quarantine("not a JSON object")
            return {}
        return data

    def _quarantine(self, reason: str) -> None:
        bad_path = self.path.with_suffix(self.path.suffix + ".bad")
        try:
            self.path.replace(bad_path)
        except OSError as exc:
            raise StorageError(f"cannot move aside corrupt {self.path}: {exc}") from exc
        logger.warning(
            "Corrupt state file %s (%s), moved to %s; starting empty",
            self.path,
            reason,
            bad_path,
        )

    def _write(self, data: dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(data, ensure_ascii=True, indent=2), encoding="utf-8"
            )
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            if self._data is None:
                self._data = self._load()
            if key not in self._data:
                return copy.deepcopy(default)
            return copy.deepcopy(self._data[key])

    async def set(self, values: Mapping[str, Any]) -> None:
        async with self._lock:
            if self._data is None:
                self._data = self._load()
            updated = dict(self._data)
            updated.update(copy.deepcopy(dict(values)))
            self._write(updated)
            self._data = updated
            logger.debug("State saved: %s", ", ".join(sorted(values)))
