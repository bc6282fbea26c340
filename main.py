"""
OAuth Connection Broker — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_middleware
from config.settings import Settings, config
from connectors.broker import build_broker
from connectors.routes import page_router
from connectors.routes import router as connect_router
from database.session import create_engine_and_factory, init_models

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "sqlalchemy.engine"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or config
    app = FastAPI(
        title="OAuth Connection Broker",
        version="1.0.0",
        description="Drives OAuth 2.0 flows and hands back fresh access tokens.",
    )
    app.state.settings = settings

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    register_middleware(app)

    # Routes
    app.include_router(connect_router, prefix="/api")
    app.include_router(page_router)

    @app.on_event("startup")
    async def on_startup():
        engine, session_factory = create_engine_and_factory(settings.database_url)
        await init_models(engine)
        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)

        app.state.engine = engine
        app.state.http_client = http_client
        app.state.broker = build_broker(settings, session_factory, http_client=http_client)

        if not settings.encryption_key:
            logger.warning("ENCRYPTION_KEY not set — token storage will fail until it is configured")
        if not settings.api_key:
            logger.warning("API_KEY not set — API authentication is disabled (dev mode)")
        logger.info("Callback URL: %s", settings.callback_url)
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.http_client.aclose()
        await app.state.engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
