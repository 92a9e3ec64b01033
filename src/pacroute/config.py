from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class IgnoreConfig(BaseModel):
    endpoint: str = "https://app.censortracker.org/api/ignore/"
    fetch_interval_s: float = 15 * 60
    save_interval_s: float = 30 * 60


class RegistryConfig(BaseModel):
    domains_url: str = "https://app.censortracker.org/api/domains/"
    distributors_url: str = "https://app.censortracker.org/api/ori/refused/"
    sync_interval_s: float = 60 * 60


class ProxyConfigSettings(BaseModel):
    default_server_uri: Optional[str] = None
    custom_server_uri: Optional[str] = None
    ping_uri: Optional[str] = None


class Settings(BaseModel):
    extension_name: str = "pacroute"
    platform: str = "chromium"
    allow_incognito: bool = True

    state_path: str = "state/state.json"
    http_timeout_s: float = 10.0
    log_level: str = "INFO"

    ignore: IgnoreConfig = Field(default_factory=IgnoreConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    proxy: ProxyConfigSettings = Field(default_factory=ProxyConfigSettings)


def load_config(path: Optional[str] = None) -> Settings:
    if not path:
        return Settings()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return Settings()
    data = yaml.safe_load(cfg_path.read_text()) or {}
    return Settings(**data)
