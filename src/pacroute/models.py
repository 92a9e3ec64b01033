from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

ControllingParty = Literal["self", "otherExtension", "none"]

LEVEL_CONTROLLED_BY_THIS = "controlled_by_this_extension"
LEVEL_CONTROLLED_BY_OTHERS = "controlled_by_other_extensions"
LEVEL_CONTROLLABLE = "controllable_by_this_extension"


class ProxyConfig(BaseModel):
    mode: Literal["autoConfig", "pacScript"]
    endpoint_uri: str
    pac_payload: str
    value: dict[str, Any] = Field(default_factory=dict)
    scope: Optional[str] = None

    def platform_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"value": self.value}
        if self.scope:
            payload["scope"] = self.scope
        return payload


class ProxyState(BaseModel):
    enabled: bool
    alive: bool
    controlled_by: ControllingParty

    @property
    def label(self) -> str:
        if not self.enabled:
            return "Disabled"
        return "Enabled·Alive" if self.alive else "Enabled·Dead"


class ExtensionInfo(BaseModel):
    id: str
    name: str
    permissions: list[str] = Field(default_factory=list)
    enabled: bool = True


class DomainStatus(BaseModel):
    hostname: str
    display_hostname: str
    valid: bool
    ignored: bool
    blocked: bool
    cooperation_refused: Optional[bool] = None
    route: str
    last_sync: Optional[str] = None
    extension_enabled: bool


class IgnoreRequest(BaseModel):
    url: str
    temporary: bool = False

    @model_validator(mode="after")
    def validate_url(self) -> "IgnoreRequest":
        if not self.url.strip():
            raise ValueError("url must not be empty")
        return self


class BadProxyRequest(BaseModel):
    uri: str


class OperationResponse(BaseModel):
    status: str
    ok: bool
    message: Optional[str] = None


class StateResponse(BaseModel):
    state: str
    proxy: ProxyState
    extension_enabled: bool
    endpoint: Optional[str] = None
    private_browsing_permissions_required: bool = False
