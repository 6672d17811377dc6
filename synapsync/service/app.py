"""FastAPI application entrypoint for synapsync service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import ConfigError, find_project
from ..engine import SyncEngine
from ..errors import SynapSyncError
from ..models import SyncResult


class SyncRequest(BaseModel):
    dry_run: bool = False
    types: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    provider: Optional[str] = None
    copy_files: bool = False
    force: bool = False
    manifest_only: bool = False


class SyncResponse(BaseModel):
    success: bool
    added: int
    removed: int
    updated: int
    unchanged: int
    total: int
    duration: float
    actions: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]
    provider_results: Optional[List[Dict[str, Any]]] = None


class StatusResponse(BaseModel):
    manifest: int
    filesystem: int
    in_sync: bool
    new_in_filesystem: int
    removed_from_filesystem: int
    modified: int


class ProviderStatusResponse(BaseModel):
    provider: str
    valid: int
    broken: int
    orphaned: int


class HealthResponse(BaseModel):
    status: str


def _default_engine() -> SyncEngine:
    config = find_project(Path.cwd())
    if config is None:
        raise ConfigError(f"No synapsync project found from {Path.cwd()}")
    return SyncEngine.from_config(config)


async def _run_blocking(func: Callable[[], Any]) -> Any:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover - fallback path when not in async context
        return func()
    return await loop.run_in_executor(None, func)


def create_app(
    engine_factory: Callable[[], SyncEngine] = _default_engine,
) -> FastAPI:
    """Create the FastAPI application exposing synapsync operations."""

    app = FastAPI(title="SynapSync Service", version=__version__)

    async def get_engine() -> SyncEngine:
        # A fresh engine per request so the manifest is re-read from disk.
        return engine_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/status", response_model=StatusResponse)
    async def status(engine: SyncEngine = Depends(get_engine)) -> StatusResponse:
        result = await _run_blocking(engine.get_status)
        return StatusResponse(**result.to_dict())

    @app.post("/sync", response_model=SyncResponse)
    async def sync(
        payload: SyncRequest,
        engine: SyncEngine = Depends(get_engine),
    ) -> SyncResponse:
        def _run_sync() -> SyncResult:
            return engine.sync(
                dry_run=payload.dry_run,
                types=payload.types,
                categories=payload.categories,
                provider=payload.provider,
                copy=payload.copy_files,
                force=payload.force,
                manifest_only=payload.manifest_only,
            )

        result = await _run_blocking(_run_sync)
        return SyncResponse(**result.to_dict())

    @app.get("/providers/{name}/status", response_model=ProviderStatusResponse)
    async def provider_status(
        name: str,
        engine: SyncEngine = Depends(get_engine),
    ) -> ProviderStatusResponse:
        if not engine.symlinks.is_known_provider(name):
            raise ConfigError(f"Unknown provider: {name}")
        result = await _run_blocking(lambda: engine.get_provider_status(name))
        return ProviderStatusResponse(
            provider=name, valid=result.valid, broken=result.broken, orphaned=result.orphaned
        )

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SynapSyncError)
    async def synapsync_error_handler(_: Any, exc: SynapSyncError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1",
    port: int = 8000,
    engine_factory: Callable[[], SyncEngine] = _default_engine,
) -> None:  # pragma: no cover - integration path
    app = create_app(engine_factory)
    uvicorn.run(app, host=host, port=port)


__all__ = ["create_app", "run_service"]
