import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from .config import Settings, load_config
from .log import configure_logging
from .models import (
    BadProxyRequest,
    DomainStatus,
    IgnoreRequest,
    OperationResponse,
    StateResponse,
)
from .pac import PAC_MIME_TYPE
from .platform import LocalProxyPlatform
from .runtime import Runtime

BASE_DIR = Path(__file__).resolve().parents[2]


def create_app(settings: Settings, runtime: Optional[Runtime] = None) -> FastAPI:
    runtime = runtime or Runtime(settings, base_dir=BASE_DIR)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        configure_logging(settings.log_level)
        await runtime.start()
        try:
            yield
        finally:
            await runtime.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/proxy.pac")
    async def proxy_pac() -> Response:
        pac = None
        if isinstance(runtime.platform, LocalProxyPlatform):
            pac = runtime.platform.installed_pac()
        if not pac:
            raise HTTPException(status_code=404, detail="no PAC installed")
        return Response(content=pac, media_type=PAC_MIME_TYPE)

    @app.get("/v1/state", response_model=StateResponse)
    async def state() -> StateResponse:
        return await runtime.state()

    @app.post("/v1/proxy/set", response_model=OperationResponse)
    async def set_proxy() -> OperationResponse:
        ok = await runtime.proxies.set_proxy()
        return OperationResponse(
            status="ok" if ok else "disabled",
            ok=ok,
            message=None if ok else "PAC could not be installed",
        )

    @app.post("/v1/proxy/remove", response_model=OperationResponse)
    async def remove_proxy() -> OperationResponse:
        await runtime.proxies.remove_proxy()
        return OperationResponse(status="ok", ok=True)

    @app.post("/v1/proxy/ping", response_model=OperationResponse)
    async def ping() -> OperationResponse:
        runtime.proxies.ping()
        return OperationResponse(status="scheduled", ok=True)

    @app.post("/v1/proxy/take_control")
    async def take_control() -> dict:
        disabled = await runtime.proxies.take_control()
        return {"status": "ok", "disabled": disabled}

    @app.get("/v1/proxy/bad_proxies")
    async def bad_proxies() -> dict:
        return {"bad_proxies": await runtime.proxies.get_bad_proxies()}

    @app.post("/v1/proxy/bad_proxies", response_model=OperationResponse)
    async def add_bad_proxy(payload: BadProxyRequest) -> OperationResponse:
        await runtime.proxies.add_bad_proxy(payload.uri)
        return OperationResponse(status="ok", ok=True)

    @app.delete("/v1/proxy/bad_proxies", response_model=OperationResponse)
    async def remove_bad_proxies() -> OperationResponse:
        await runtime.proxies.remove_bad_proxies()
        return OperationResponse(status="ok", ok=True)

    @app.post("/v1/extension/enable", response_model=OperationResponse)
    async def enable_extension() -> OperationResponse:
        ok = await runtime.enable_extension()
        return OperationResponse(status="ok" if ok else "disabled", ok=ok)

    @app.post("/v1/extension/disable", response_model=OperationResponse)
    async def disable_extension() -> OperationResponse:
        await runtime.disable_extension()
        return OperationResponse(status="ok", ok=True)

    @app.post("/v1/ignore")
    async def add_ignore(payload: IgnoreRequest) -> dict:
        try:
            hostname = await runtime.ignore.add(payload.url, temporary=payload.temporary)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"status": "ok", "hostname": hostname, "temporary": payload.temporary}

    @app.get("/v1/ignore/contains")
    async def ignore_contains(url: str) -> dict:
        return {"url": url, "ignored": runtime.ignore.contains(url)}

    @app.delete("/v1/ignore", response_model=OperationResponse)
    async def clear_ignore() -> OperationResponse:
        await runtime.ignore.clear()
        return OperationResponse(status="ok", ok=True)

    @app.get("/v1/domain_status", response_model=DomainStatus)
    async def domain_status(url: str) -> DomainStatus:
        try:
            return await runtime.domain_status(url)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @app.post("/v1/registry/sync", response_model=OperationResponse)
    async def sync_registry() -> OperationResponse:
        ok = await runtime.registry.sync()
        if ok:
            await runtime.apply_policy()
        return OperationResponse(status="ok" if ok else "error", ok=ok)

    return app


app = create_app(load_config(os.getenv("PACROUTE_CONFIG")))
