from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from .config import Settings
from .errors import EmptyPolicyError, StorageError, TransportError
from .log import get_logger
from .models import LEVEL_CONTROLLED_BY_OTHERS, LEVEL_CONTROLLED_BY_THIS, ProxyState
from .pac import render_pac_script
from .platform import PlatformProxyInstaller, ProxyPlatform
from .registry import DomainRegistry
from .remote import post_json
from .storage import (
    BAD_PROXIES,
    CUSTOM_PROXY_SERVER_URI,
    PROXY_IS_ALIVE,
    PROXY_PING_URI,
    PROXY_SERVER_URI,
    USE_PROXY,
    StateStore,
)

logger = get_logger(__name__)


class ProxyPolicyEngine:
    def __init__(
        self,
        settings: Settings,
        storage: StateStore,
        registry: DomainRegistry,
        platform: ProxyPlatform,
        installer: PlatformProxyInstaller,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.registry = registry
        self.platform = platform
        self.installer = installer
        self.transport = transport
        self._config_lock = asyncio.Lock()
        self._pings: set[asyncio.Task] = set()

    async def get_proxy_server_uri(self) -> Optional[str]:
        custom = await self.storage.get(CUSTOM_PROXY_SERVER_URI) or self.settings.proxy.custom_server_uri
        if custom:
            logger.warning("Using custom proxy for PAC.")
            return custom
        if self.settings.proxy.default_server_uri:
            return self.settings.proxy.default_server_uri
        return await self.storage.get(PROXY_SERVER_URI)

    async def generate_proxy_auto_config_data(self) -> Optional[str]:
        domains = await self.registry.get_domains()
        if not domains:
            return None

        endpoint = await self.get_proxy_server_uri()
        if not endpoint:
            logger.error("No proxy server URI configured, cannot build PAC.")
            return None
        await self.storage.set({PROXY_SERVER_URI: endpoint})

        try:
            return render_pac_script(domains, endpoint)
        except EmptyPolicyError:
            return None
        except ValueError as exc:
            logger.error("PAC could not be rendered: %s", exc)
            return None

    async def set_proxy(self) -> bool:
        async with self._config_lock:
            try:
                return await self._set_proxy()
            except StorageError as exc:
                logger.error("PAC could not be set, state unavailable: %s", exc)
                return False

    async def _set_proxy(self) -> bool:
        pac_data = await self.generate_proxy_auto_config_data()
        if not pac_data:
            await self._remove_proxy()
            await self.disable_proxy()
            return False

        endpoint = await self.storage.get(PROXY_SERVER_URI)
        config = self.installer.build_config(pac_data, endpoint)
        try:
            await self.platform.set_proxy_settings(config.platform_payload())
        except Exception as exc:
            logger.error("PAC could not be set: %s", exc)
            await self.disable_proxy()
            await self.installer.request_incognito_access()
            return False

        await self.enable_proxy()
        await self.installer.grant_incognito_access()
        logger.warning("PAC has been set successfully!")
        return True

    async def remove_proxy(self) -> None:
        async with self._config_lock:
            await self._remove_proxy()

    async def _remove_proxy(self) -> None:
        await self.platform.clear_proxy_settings()
        logger.warning("Proxy settings removed.")

    async def alive(self) -> bool:
        return bool(await self.storage.get(PROXY_IS_ALIVE, True))

    def ping(self) -> None:
        """Fire a liveness ping at the proxy and forget about it.

        Nothing is returned and nothing is recorded: the ping only lets the
        proxy side notice the client.
        """
        task = asyncio.create_task(self._send_ping())
        self._pings.add(task)
        task.add_done_callback(self._pings.discard)

    async def _send_ping(self) -> None:
        target = await self.storage.get(PROXY_PING_URI) or self.settings.proxy.ping_uri
        if not target:
            target = await self.get_proxy_server_uri()
        if not target:
            return
        try:
            await post_json(
                f"http://{target}",
                {"type": "ping"},
                self.settings.http_timeout_s,
                self.transport,
            )
        except TransportError:
            pass
        logger.info("Pinged %s!", target)

    async def is_enabled(self) -> bool:
        return bool(await self.storage.get(USE_PROXY, True))

    async def enable_proxy(self) -> None:
        logger.info("Proxying enabled.")
        await self.storage.set({USE_PROXY: True, PROXY_IS_ALIVE: True})

    async def disable_proxy(self) -> None:
        logger.warning("Proxying disabled.")
        await self.storage.set({USE_PROXY: False})

    async def controlled_by_other_extensions(self) -> bool:
        return await self.platform.get_level_of_control() == LEVEL_CONTROLLED_BY_OTHERS

    async def controlled_by_this_extension(self) -> bool:
        return await self.platform.get_level_of_control() == LEVEL_CONTROLLED_BY_THIS

    async def take_control(self) -> list[str]:
        me = await self.platform.get_self()
        disabled = []
        for ext in await self.platform.get_all():
            if "proxy" not in ext.permissions or ext.name == me.name:
                continue
            logger.warning("Disabling %s...", ext.name)
            try:
                await self.platform.set_enabled(ext.id, False)
            except Exception:
                logger.exception("Could not disable %s", ext.name)
                continue
            disabled.append(ext.name)
        return disabled

    async def add_bad_proxy(self, uri: str) -> None:
        bad = await self.storage.get(BAD_PROXIES, [])
        bad.append(uri)
        await self.storage.set({BAD_PROXIES: bad, PROXY_IS_ALIVE: False})
        logger.warning("Proxy %s reported as unreachable", uri)

    async def remove_bad_proxies(self) -> None:
        await self.storage.set({BAD_PROXIES: []})

    async def get_bad_proxies(self) -> list[str]:
        return list(await self.storage.get(BAD_PROXIES, []))

    async def get_state(self) -> ProxyState:
        level = await self.platform.get_level_of_control()
        if level == LEVEL_CONTROLLED_BY_THIS:
            controlled_by = "self"
        elif level == LEVEL_CONTROLLED_BY_OTHERS:
            controlled_by = "otherExtension"
        else:
            controlled_by = "none"
        return ProxyState(
            enabled=await self.is_enabled(),
            alive=await self.alive(),
            controlled_by=controlled_by,
        )

    async def shutdown(self) -> None:
        for task in list(self._pings):
            task.cancel()
        if self._pings:
            await asyncio.gather(*self._pings, return_exceptions=True)
        self._pings.clear()
