import asyncio
import json
from pathlib import Path

import pytest

from pacroute.config import load_config
from pacroute.errors import StorageError
from pacroute.storage import IGNORED_HOSTS, USE_PROXY, JsonFileStore


def test_json_store_survives_restart(tmp_path: Path) -> None:
    path = tmp_path / "state" / "state.json"

    async def write() -> None:
        store = JsonFileStore(path)
        await store.set({IGNORED_HOSTS: ["a.example"], USE_PROXY: False})

    async def read() -> tuple:
        store = JsonFileStore(path)
        return await store.get(IGNORED_HOSTS, []), await store.get(USE_PROXY, True)

    asyncio.run(write())
    assert asyncio.run(read()) == (["a.example"], False)


def test_json_store_returns_copies_of_defaults(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "state.json")

    async def run() -> None:
        hosts = await store.get(IGNORED_HOSTS, [])
        hosts.append("leak.example")
        assert await store.get(IGNORED_HOSTS, []) == []

    asyncio.run(run())


def test_json_store_moves_corrupt_file_aside(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    async def run() -> None:
        store = JsonFileStore(path)
        assert await store.get(USE_PROXY, True) is True
        await store.set({USE_PROXY: False})

    asyncio.run(run())
    assert (tmp_path / "state.json.bad").read_text(encoding="utf-8") == "{not json"
    assert json.loads(path.read_text(encoding="utf-8")) == {USE_PROXY: False}


def test_json_store_moves_non_object_document_aside(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert asyncio.run(JsonFileStore(path).get(IGNORED_HOSTS, [])) == []
    assert (tmp_path / "state.json.bad").exists()
    assert not path.exists()


def test_json_store_unreadable_path_raises(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.mkdir()
    with pytest.raises(StorageError):
        asyncio.run(JsonFileStore(path).get(USE_PROXY))


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    cfg = tmp_path / "pacroute.yaml"
    cfg.write_text(
        "platform: firefox\n"
        "ignore:\n"
        "  fetch_interval_s: 60\n"
        "proxy:\n"
        "  default_server_uri: proxy.example:443\n",
        encoding="utf-8",
    )
    settings = load_config(str(cfg))
    assert settings.platform == "firefox"
    assert settings.ignore.fetch_interval_s == 60
    assert settings.ignore.save_interval_s == 1800
    assert settings.proxy.default_server_uri == "proxy.example:443"


def test_load_config_defaults_when_missing(tmp_path: Path) -> None:
    assert load_config(None).platform == "chromium"
    assert load_config(str(tmp_path / "absent.yaml")).ignore.fetch_interval_s == 900
