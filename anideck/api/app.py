"""FastAPI application factory and server start-up."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Dict, Optional

import uvicorn

from anideck.core.config import load_config
from anideck.core.logging_setup import get_logger, setup_from_config
from anideck.services.container import Services, build_services

log = get_logger("api.app")


def create_app(services: Optional[Services] = None, cfg: Optional[Dict[str, Any]] = None):
    """Build and return the configured FastAPI application.

    Pass *services* to run against injected state (tests); otherwise the
    services are built from *cfg* (or the config file) on start-up.
    """
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from anideck.api.routes import router

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services or build_services(cfg or load_config())
        app.state.services = svc
        # re-reconciles sections published on the sync channel
        ready = asyncio.Event()
        listener = asyncio.create_task(svc.library.listen(ready))
        await ready.wait()
        svc.reconciler.reconcile_history()
        try:
            yield
        finally:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener
            await svc.aclose()

    app = FastAPI(
        title="anideck",
        version="1.0.0",
        description="Anime catalog browsing and episode source resolution",
        lifespan=lifespan,
    )

    # CORS – allow all origins for local use
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


def start_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Configure logging, then serve the API with uvicorn."""
    cfg = load_config()
    setup_from_config(cfg)

    srv_cfg = cfg.get("server", {})
    host = host or srv_cfg.get("host", "127.0.0.1")
    port = port or srv_cfg.get("port", 5070)

    log.info("Starting anideck server on %s:%d", host, port)
    app = create_app(cfg=cfg)
    uvicorn.run(app, host=host, port=port, log_level="info")
