import asyncio
from pathlib import Path
from typing import Optional

from fastapi.testclient import TestClient

from pacroute.config import ProxyConfigSettings, Settings
from pacroute.platform import LocalProxyPlatform
from pacroute.runtime import Runtime
from pacroute.service import create_app
from pacroute.storage import MemoryStore


class FakeRegistry:
    def __init__(self) -> None:
        self.domains = ["blocked.com", "refuser.net"]
        self.synced = 0

    async def get_domains(self) -> list[str]:
        return list(self.domains)

    async def check_domains(self, hostname: str) -> bool:
        return hostname.split(".", hostname.count(".") - 1)[-1] in self.domains

    async def check_distributors(self, hostname: str) -> Optional[bool]:
        return True if hostname.endswith("refuser.net") else None

    async def get_last_sync_timestamp(self) -> str:
        return "16/10/2026, 12:00:00"

    async def sync(self) -> bool:
        self.synced += 1
        return True


def _client() -> tuple[TestClient, Runtime]:
    settings = Settings(proxy=ProxyConfigSettings(default_server_uri="proxy.example:443"))
    runtime = Runtime(settings, storage=MemoryStore(), registry=FakeRegistry())
    return TestClient(create_app(settings, runtime=runtime)), runtime


def test_startup_syncs_and_installs_pac() -> None:
    client, runtime = _client()
    with client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.post("/v1/registry/sync").json()["ok"] is True
        state = client.get("/v1/state").json()
        assert state["state"] == "Enabled·Alive"
        assert state["proxy"]["controlled_by"] == "self"
        assert state["endpoint"] == "proxy.example:443"
        resp = client.get("/proxy.pac")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/x-ns-proxy-autoconfig")
        assert '"blocked.com"' in resp.text
    assert runtime.started is False


def test_extension_toggle_removes_and_restores_pac() -> None:
    client, _ = _client()
    with client:
        client.post("/v1/proxy/set")
        assert client.post("/v1/extension/disable").json()["ok"] is True
        assert client.get("/proxy.pac").status_code == 404
        assert client.get("/v1/state").json()["extension_enabled"] is False
        assert client.post("/v1/extension/enable").json()["ok"] is True
        assert client.get("/proxy.pac").status_code == 200


def test_ignore_endpoints() -> None:
    client, _ = _client()
    with client:
        resp = client.post("/v1/ignore", json={"url": "https://bank.example/login"})
        assert resp.json()["hostname"] == "bank.example"
        check = client.get("/v1/ignore/contains", params={"url": "https://bank.example"})
        assert check.json()["ignored"] is True
        assert client.post("/v1/ignore", json={"url": "about:blank"}).status_code == 400
        assert client.delete("/v1/ignore").json()["ok"] is True
        check = client.get("/v1/ignore/contains", params={"url": "https://bank.example"})
        assert check.json()["ignored"] is False


def test_domain_status_reports_route_and_cooperation() -> None:
    client, runtime = _client()
    with client:
        data = client.get(
            "/v1/domain_status", params={"url": "https://www.blocked.com/page"}
        ).json()
        assert data["display_hostname"] == "blocked.com"
        assert data["blocked"] is True
        assert data["route"] == "HTTPS proxy.example:443;"
        assert data["cooperation_refused"] is None
        assert data["last_sync"] == "16.10.2026, 12:00:00"

        data = client.get("/v1/domain_status", params={"url": "http://cdn.refuser.net"}).json()
        assert data["cooperation_refused"] is True

        data = client.get("/v1/domain_status", params={"url": "http://10.0.0.5/"}).json()
        assert data["ignored"] is True
        assert data["route"] == "DIRECT"


def test_bad_proxy_endpoints() -> None:
    client, _ = _client()
    with client:
        client.post("/v1/proxy/bad_proxies", json={"uri": "proxy.example:443"})
        assert client.get("/v1/proxy/bad_proxies").json() == {
            "bad_proxies": ["proxy.example:443"]
        }
        assert client.get("/v1/state").json()["proxy"]["alive"] is False
        client.delete("/v1/proxy/bad_proxies")
        assert client.get("/v1/proxy/bad_proxies").json() == {"bad_proxies": []}


def test_domain_status_is_direct_while_extension_disabled() -> None:
    client, _ = _client()
    with client:
        client.post("/v1/extension/disable")
        data = client.get(
            "/v1/domain_status", params={"url": "https://www.blocked.com/page"}
        ).json()
        assert data["blocked"] is True
        assert data["extension_enabled"] is False
        assert data["route"] == "DIRECT"

        client.post("/v1/extension/enable")
        data = client.get(
            "/v1/domain_status", params={"url": "https://www.blocked.com/page"}
        ).json()
        assert data["route"] == "HTTPS proxy.example:443;"


def test_startup_recovers_from_corrupt_state_file(tmp_path: Path) -> None:
    state_path = tmp_path / "state.json"
    state_path.write_text("{not json", encoding="utf-8")
    settings = Settings(
        state_path=str(state_path),
        proxy=ProxyConfigSettings(default_server_uri="proxy.example:443"),
    )
    platform = LocalProxyPlatform("pacroute")
    runtime = Runtime(settings, registry=FakeRegistry(), platform=platform)

    async def run() -> None:
        await runtime.start()
        try:
            assert runtime.started is True
            assert await runtime.is_extension_enabled() is True
        finally:
            await runtime.shutdown()

    asyncio.run(run())
    assert '"blocked.com"' in platform.installed_pac()
    assert (tmp_path / "state.json.bad").read_text(encoding="utf-8") == "{not json"
