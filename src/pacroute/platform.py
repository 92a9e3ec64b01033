from __future__ import annotations

from typing import Any, Optional, Protocol
from uuid import uuid4

from .errors import ConfigurationError
from .log import get_logger
from .models import (
    LEVEL_CONTROLLABLE,
    LEVEL_CONTROLLED_BY_OTHERS,
    LEVEL_CONTROLLED_BY_THIS,
    ExtensionInfo,
    ProxyConfig,
)
from .pac import PAC_MIME_TYPE
from .storage import PRIVATE_BROWSING_REQUIRED, StateStore

logger = get_logger(__name__)

BADGE_WARNING = "✕"


class ProxyPlatform(Protocol):
    """Host APIs the engine depends on: proxy settings, management, badge."""

    async def set_proxy_settings(self, payload: dict[str, Any]) -> None:
        ...

    async def clear_proxy_settings(self) -> None:
        ...

    async def get_level_of_control(self) -> str:
        ...

    async def is_allowed_incognito_access(self) -> bool:
        ...

    async def set_badge_text(self, text: str) -> None:
        ...

    def create_object_url(self, data: str, mime_type: str) -> str:
        ...

    def revoke_object_url(self, url: str) -> None:
        ...

    async def get_self(self) -> ExtensionInfo:
        ...

    async def get_all(self) -> list[ExtensionInfo]:
        ...

    async def set_enabled(self, extension_id: str, enabled: bool) -> None:
        ...


class LocalProxyPlatform:
    """In-process platform used when pacroute runs as a standalone service.

    The installed configuration is kept in memory and served back over HTTP;
    other proxy-controlling agents can be registered to exercise arbitration.
    """

    def __init__(self, extension_name: str, allow_incognito: bool = True) -> None:
        self.self_info = ExtensionInfo(
            id=uuid4().hex, name=extension_name, permissions=["proxy", "storage"]
        )
        self.allow_incognito = allow_incognito
        self.badge_text = ""
        self.settings: Optional[dict[str, Any]] = None
        self._blobs: dict[str, str] = {}
        self._extensions: dict[str, ExtensionInfo] = {self.self_info.id: self.self_info}
        self._controller: Optional[str] = None

    def register_extension(self, info: ExtensionInfo, controls_proxy: bool = False) -> None:
        self._extensions[info.id] = info
        if controls_proxy and info.enabled:
            self._controller = info.id

    async def set_proxy_settings(self, payload: dict[str, Any]) -> None:
        value = payload.get("value") or {}
        if self._controller and self._controller != self.self_info.id:
            self._release(value)
            raise ConfigurationError("proxy settings are controlled by another extension")
        if not (value.get("pacScript", {}).get("data") or value.get("autoConfigUrl")):
            raise ConfigurationError("proxy config carries no PAC script")
        if self.settings and self.settings.get("value") != value:
            self._release(self.settings.get("value") or {})
        self.settings = payload
        self._controller = self.self_info.id

    async def clear_proxy_settings(self) -> None:
        if self._controller == self.self_info.id:
            self._controller = None
        if self.settings:
            self._release(self.settings.get("value") or {})
        self.settings = None

    def _release(self, value: dict[str, Any]) -> None:
        url = value.get("autoConfigUrl")
        if url:
            self.revoke_object_url(url)

    async def get_level_of_control(self) -> str:
        if self._controller == self.self_info.id:
            return LEVEL_CONTROLLED_BY_THIS
        if self._controller:
            return LEVEL_CONTROLLED_BY_OTHERS
        return LEVEL_CONTROLLABLE

    async def is_allowed_incognito_access(self) -> bool:
        return self.allow_incognito

    async def set_badge_text(self, text: str) -> None:
        self.badge_text = text

    def create_object_url(self, data: str, mime_type: str) -> str:
        url = f"blob:{self.self_info.name}/{uuid4()}"
        self._blobs[url] = data
        return url

    def revoke_object_url(self, url: str) -> None:
        self._blobs.pop(url, None)

    def installed_pac(self) -> Optional[str]:
        if not self.settings:
            return None
        value = self.settings.get("value") or {}
        if "autoConfigUrl" in value:
            return self._blobs.get(value["autoConfigUrl"])
        return value.get("pacScript", {}).get("data")

    async def get_self(self) -> ExtensionInfo:
        return self.self_info

    async def get_all(self) -> list[ExtensionInfo]:
        return list(self._extensions.values())

    async def set_enabled(self, extension_id: str, enabled: bool) -> None:
        info = self._extensions.get(extension_id)
        if info is None:
            raise KeyError(extension_id)
        self._extensions[extension_id] = info.model_copy(update={"enabled": enabled})
        if not enabled and self._controller == extension_id:
            self._controller = None


class PlatformProxyInstaller(Protocol):
    name: str

    def build_config(self, pac_payload: str, endpoint_uri: str) -> ProxyConfig:
        ...

    async def request_incognito_access(self) -> None:
        ...

    async def grant_incognito_access(self) -> None:
        ...


class ChromiumProxyInstaller:
    name = "chromium"

    def __init__(self, platform: ProxyPlatform, storage: StateStore) -> None:
        self.platform = platform
        self.storage = storage

    def build_config(self, pac_payload: str, endpoint_uri: str) -> ProxyConfig:
        return ProxyConfig(
            mode="pacScript",
            endpoint_uri=endpoint_uri,
            pac_payload=pac_payload,
            scope="regular",
            value={
                "mode": "pac_script",
                "pacScript": {"data": pac_payload, "mandatory": False},
            },
        )

    async def request_incognito_access(self) -> None:
        return None

    async def grant_incognito_access(self) -> None:
        return None


class FirefoxProxyInstaller:
    name = "firefox"

    def __init__(self, platform: ProxyPlatform, storage: StateStore) -> None:
        self.platform = platform
        self.storage = storage

    def build_config(self, pac_payload: str, endpoint_uri: str) -> ProxyConfig:
        return ProxyConfig(
            mode="autoConfig",
            endpoint_uri=endpoint_uri,
            pac_payload=pac_payload,
            value={
                "proxyType": "autoConfig",
                "autoConfigUrl": self.platform.create_object_url(pac_payload, PAC_MIME_TYPE),
            },
        )

    async def request_incognito_access(self) -> None:
        if await self.platform.is_allowed_incognito_access():
            return
        await self.platform.set_badge_text(BADGE_WARNING)
        await self.storage.set({PRIVATE_BROWSING_REQUIRED: True})
        logger.info("Private browsing permissions requested.")

    async def grant_incognito_access(self) -> None:
        await self.platform.set_badge_text("")
        await self.storage.set({PRIVATE_BROWSING_REQUIRED: False})


INSTALLERS = {
    ChromiumProxyInstaller.name: ChromiumProxyInstaller,
    FirefoxProxyInstaller.name: FirefoxProxyInstaller,
}


def get_installer(name: str, platform: ProxyPlatform, storage: StateStore) -> PlatformProxyInstaller:
    try:
        factory = INSTALLERS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unsupported platform: {name}") from None
    return factory(platform, storage)
