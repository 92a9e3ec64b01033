import asyncio

import httpx

from pacroute.config import RegistryConfig, Settings
from pacroute.registry import HttpDomainRegistry
from pacroute.storage import DOMAINS, MemoryStore


def _settings() -> Settings:
    return Settings(
        registry=RegistryConfig(
            domains_url="https://registry.test/domains",
            distributors_url="https://registry.test/distributors",
        )
    )


def _transport(fail: bool = False) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if fail:
            return httpx.Response(503)
        if request.url.path == "/domains":
            return httpx.Response(200, json=["Blocked.com", "other.org", "blocked.com"])
        return httpx.Response(
            200,
            json=[
                {"url": "refuser.net", "cooperationRefused": True},
                {"url": "friendly.net", "cooperationRefused": False},
                {"name": "missing url"},
            ],
        )

    return httpx.MockTransport(handler)


def test_sync_caches_domains_and_distributors() -> None:
    storage = MemoryStore()
    registry = HttpDomainRegistry(_settings(), storage, transport=_transport())

    async def run() -> None:
        assert await registry.sync() is True
        assert await registry.get_domains() == ["blocked.com", "other.org"]
        assert await registry.check_domains("www.blocked.com") is True
        assert await registry.check_domains("unrelated.com") is False
        assert await registry.check_distributors("cdn.refuser.net") is True
        assert await registry.check_distributors("friendly.net") is False
        assert await registry.check_distributors("unknown.net") is None
        assert "/" in await registry.get_last_sync_timestamp()

    asyncio.run(run())


def test_failed_sync_keeps_previous_cache() -> None:
    storage = MemoryStore({DOMAINS: ["cached.com"]})
    registry = HttpDomainRegistry(_settings(), storage, transport=_transport(fail=True))

    async def run() -> None:
        assert await registry.sync() is False
        assert await registry.get_domains() == ["cached.com"]
        assert await registry.get_last_sync_timestamp() == ""

    asyncio.run(run())
