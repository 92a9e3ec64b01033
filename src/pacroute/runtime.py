from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from .config import Settings
from .errors import StorageError
from .hostnames import clean_hostname, display_hostname, extract_host, is_valid_hostname
from .ignore import IgnoreStore
from .log import get_logger
from .models import DomainStatus, StateResponse
from .pac import DIRECT, find_proxy_for_host, prepare_blocklist
from .platform import LocalProxyPlatform, ProxyPlatform, get_installer
from .proxy import ProxyPolicyEngine
from .registry import DomainRegistry, HttpDomainRegistry
from .scheduler import PeriodicTask
from .storage import ENABLE_EXTENSION, PRIVATE_BROWSING_REQUIRED, JsonFileStore, StateStore

logger = get_logger(__name__)


class Runtime:
    """Owns every long-lived component and their start/stop order."""

    def __init__(
        self,
        settings: Settings,
        storage: Optional[StateStore] = None,
        registry: Optional[DomainRegistry] = None,
        platform: Optional[ProxyPlatform] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings
        if storage is None:
            state_path = Path(settings.state_path)
            if base_dir and not state_path.is_absolute():
                state_path = base_dir / state_path
            storage = JsonFileStore(state_path)
        self.storage = storage
        self.registry = registry or HttpDomainRegistry(settings, storage, transport=transport)
        self.platform = platform or LocalProxyPlatform(
            settings.extension_name, allow_incognito=settings.allow_incognito
        )
        self.installer = get_installer(settings.platform, self.platform, storage)
        self.ignore = IgnoreStore(settings, storage, transport=transport)
        self.proxies = ProxyPolicyEngine(
            settings, storage, self.registry, self.platform, self.installer, transport=transport
        )
        self._registry_sync = PeriodicTask(
            "registry-sync",
            settings.registry.sync_interval_s,
            self._sync_registry,
            run_immediately=True,
        )
        self.started = False

    async def start(self) -> None:
        if self.started:
            return
        await self.ignore.start()
        await self.apply_policy()
        self._registry_sync.start()
        self.started = True
        logger.info("pacroute started (platform=%s)", self.installer.name)

    async def shutdown(self) -> None:
        if not self.started:
            return
        await self._registry_sync.stop()
        await self.ignore.shutdown()
        await self.proxies.shutdown()
        self.started = False
        logger.info("pacroute stopped")

    async def _sync_registry(self) -> None:
        if await self.registry.sync():
            await self.apply_policy()

    async def apply_policy(self) -> bool:
        """Reinstall the PAC script unless the extension is switched off."""
        try:
            if not await self.is_extension_enabled():
                return False
        except StorageError as exc:
            logger.error("Policy not applied, state unavailable: %s", exc)
            return False
        return await self.proxies.set_proxy()

    async def is_extension_enabled(self) -> bool:
        return bool(await self.storage.get(ENABLE_EXTENSION, True))

    async def enable_extension(self) -> bool:
        await self.storage.set({ENABLE_EXTENSION: True})
        logger.info("Extension enabled.")
        return await self.proxies.set_proxy()

    async def disable_extension(self) -> None:
        await self.proxies.remove_proxy()
        await self.storage.set({ENABLE_EXTENSION: False})
        logger.warning("Extension disabled.")

    async def state(self) -> StateResponse:
        proxy_state = await self.proxies.get_state()
        return StateResponse(
            state=proxy_state.label,
            proxy=proxy_state,
            extension_enabled=await self.is_extension_enabled(),
            endpoint=await self.proxies.get_proxy_server_uri(),
            private_browsing_permissions_required=bool(
                await self.storage.get(PRIVATE_BROWSING_REQUIRED, False)
            ),
        )

    async def domain_status(self, url: str) -> DomainStatus:
        hostname = extract_host(url)
        if not hostname:
            raise ValueError(f"Cannot extract hostname from {url!r}")
        host = clean_hostname(hostname)
        enabled = await self.is_extension_enabled()

        route = DIRECT
        endpoint = await self.proxies.get_proxy_server_uri()
        ignored = self.ignore.contains(url)
        if enabled and endpoint and not ignored:
            blocklist = prepare_blocklist(await self.registry.get_domains())
            route = find_proxy_for_host(blocklist, host, endpoint)

        last_sync = await self.registry.get_last_sync_timestamp()
        return DomainStatus(
            hostname=host,
            display_hostname=display_hostname(host),
            valid=is_valid_hostname(host),
            ignored=ignored,
            blocked=await self.registry.check_domains(host),
            cooperation_refused=await self.registry.check_distributors(host),
            route=route,
            last_sync=last_sync.replace("/", ".") if last_sync else None,
            extension_enabled=enabled,
        )
