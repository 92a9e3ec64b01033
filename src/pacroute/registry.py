from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

import httpx

from .config import Settings
from .errors import StorageError, TransportError
from .hostnames import clean_hostname, second_level_domain
from .log import get_logger
from .remote import fetch_json, fetch_string_list
from .storage import DISTRIBUTORS, DOMAINS, LAST_SYNC_TIMESTAMP, StateStore

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%d/%m/%Y, %H:%M:%S"


class DomainRegistry(Protocol):
    async def get_domains(self) -> list[str]:
        ...

    async def check_domains(self, hostname: str) -> bool:
        ...

    async def check_distributors(self, hostname: str) -> Optional[bool]:
        ...

    async def get_last_sync_timestamp(self) -> str:
        ...

    async def sync(self) -> bool:
        ...


def _candidates(hostname: str) -> set[str]:
    host = clean_hostname(hostname)
    return {host, second_level_domain(host)}


class HttpDomainRegistry:
    """Registry client that keeps the last good copy of the lists in storage."""

    def __init__(
        self,
        settings: Settings,
        storage: StateStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.transport = transport

    async def _fetch_distributors(self) -> list[dict]:
        data = await fetch_json(
            self.settings.registry.distributors_url,
            self.settings.http_timeout_s,
            self.transport,
        )
        if not isinstance(data, list):
            raise TransportError("distributors payload is not a list")
        distributors = []
        for item in data:
            if not isinstance(item, dict) or not item.get("url"):
                continue
            distributors.append(
                {
                    "url": clean_hostname(str(item["url"])),
                    "cooperationRefused": bool(item.get("cooperationRefused", False)),
                }
            )
        return distributors

    async def sync(self) -> bool:
        try:
            domains = await fetch_string_list(
                self.settings.registry.domains_url,
                self.settings.http_timeout_s,
                self.transport,
            )
            distributors = await self._fetch_distributors()
        except TransportError as exc:
            logger.warning("Registry sync failed: %s", exc)
            return False

        timestamp = datetime.now().strftime(TIMESTAMP_FORMAT)
        try:
            await self.storage.set(
                {
                    DOMAINS: sorted(set(domains)),
                    DISTRIBUTORS: distributors,
                    LAST_SYNC_TIMESTAMP: timestamp,
                }
            )
        except StorageError as exc:
            logger.warning("Registry cache could not be saved: %s", exc)
            return False
        logger.info(
            "Registry synced: %d domains, %d distributors", len(domains), len(distributors)
        )
        return True

    async def get_domains(self) -> list[str]:
        return list(await self.storage.get(DOMAINS, []))

    async def check_domains(self, hostname: str) -> bool:
        domains = set(await self.get_domains())
        return bool(_candidates(hostname) & domains)

    async def check_distributors(self, hostname: str) -> Optional[bool]:
        candidates = _candidates(hostname)
        for item in await self.storage.get(DISTRIBUTORS, []):
            if item.get("url") in candidates:
                return bool(item.get("cooperationRefused"))
        return None

    async def get_last_sync_timestamp(self) -> str:
        return str(await self.storage.get(LAST_SYNC_TIMESTAMP, ""))
