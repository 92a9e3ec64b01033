from __future__ import annotations

import asyncio
from typing import Iterable, Optional

import httpx

from .config import Settings
from .errors import StorageError, TransportError
from .hostnames import extract_host, is_localhost, is_special_purpose_ip
from .log import get_logger
from .remote import fetch_string_list
from .scheduler import PeriodicTask
from .storage import IGNORED_HOSTS, StateStore

logger = get_logger(__name__)


def _merge(existing: Iterable[str], extra: Iterable[str]) -> list[str]:
    merged: list[str] = []
    seen: set[str] = set()
    for host in list(existing) + list(extra):
        if host and host not in seen:
            seen.add(host)
            merged.append(host)
    return merged


class IgnoreStore:
    """Hosts that must never be proxied.

    ``durable`` hosts live in storage under ``ignoredHosts``; ``transient``
    hosts only last for the lifetime of the process. All writes to the durable
    set and to storage go through ``self._lock``.
    """

    def __init__(
        self,
        settings: Settings,
        storage: StateStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.transport = transport
        self._durable: set[str] = set()
        self._transient: set[str] = set()
        self._lock = asyncio.Lock()
        self._tasks = [
            PeriodicTask(
                "ignore-refresh",
                settings.ignore.fetch_interval_s,
                self.refresh_from_remote,
            ),
            PeriodicTask(
                "ignore-persist",
                settings.ignore.save_interval_s,
                self.persist,
            ),
        ]

    @property
    def durable(self) -> frozenset[str]:
        return frozenset(self._durable)

    @property
    def transient(self) -> frozenset[str]:
        return frozenset(self._transient)

    async def start(self) -> None:
        try:
            stored = await self.storage.get(IGNORED_HOSTS, [])
        except StorageError as exc:
            logger.warning("Ignored hosts could not be loaded: %s", exc)
            stored = []
        async with self._lock:
            self._durable.update(stored)
        for task in self._tasks:
            task.start()

    async def shutdown(self) -> None:
        for task in self._tasks:
            await task.stop()

    async def refresh_from_remote(self) -> bool:
        try:
            domains = await fetch_string_list(
                self.settings.ignore.endpoint,
                self.settings.http_timeout_s,
                self.transport,
            )
        except TransportError as exc:
            logger.warning("Fetching ignored domains failed: %s", exc)
            return False

        async with self._lock:
            try:
                stored = await self.storage.get(IGNORED_HOSTS, [])
                merged = _merge(stored, domains)
                await self.storage.set({IGNORED_HOSTS: merged})
            except StorageError as exc:
                logger.warning("Fetched ignored domains could not be saved: %s", exc)
                return False
            self._durable.update(merged)
        logger.info("Fetched %d ignored domains", len(domains))
        return True

    async def persist(self) -> bool:
        async with self._lock:
            try:
                stored = await self.storage.get(IGNORED_HOSTS, [])
                merged = _merge(stored, sorted(self._durable))
                await self.storage.set({IGNORED_HOSTS: merged})
            except StorageError as exc:
                logger.warning("Ignored hosts could not be saved: %s", exc)
                return False
            self._durable.update(merged)
        logger.debug("All ignored domains saved")
        return True

    async def clear(self) -> None:
        async with self._lock:
            self._durable.clear()
            self._transient.clear()
            await self.storage.set({IGNORED_HOSTS: []})
        logger.warning("Ignore list cleared")

    async def add(self, url: str, temporary: bool = False) -> str:
        hostname = extract_host(url)
        if not hostname:
            raise ValueError(f"Cannot extract hostname from {url!r}")

        logger.warning("Added to ignore: %s", url)
        if temporary:
            self._transient.add(hostname)
            return hostname

        async with self._lock:
            stored = await self.storage.get(IGNORED_HOSTS, [])
            if hostname not in stored:
                stored.append(hostname)
                logger.warning("Adding %s to ignore", hostname)
                await self.storage.set({IGNORED_HOSTS: stored})
            self._durable.update(stored)
        return hostname

    def contains(self, url: str) -> bool:
        hostname = extract_host(url)
        if not hostname:
            return False
        if hostname in self._durable or hostname in self._transient or is_localhost(hostname):
            logger.debug("Ignoring host: %s", hostname)
            return True
        return is_special_purpose_ip(hostname)
