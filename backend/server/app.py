"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Build shared services (vendor HTTP client, session manager, sweeper)
  inside the lifespan and tear them down on shutdown
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from avatar.credentials import CredentialTable
from avatar.manager import AvatarSessionManager
from avatar.sweeper import SessionSweeper
from avatar.transport import build_transport
from avatar.vendor import AvatarVendorClient
from config import AppConfig
from errors import ConfigurationError
from observability import logger
from observability.logger import log_event
from server.routes import register_routes
from stt.base import RecognizerFactory, SpeechRecognizer
from stt.deepgram import DeepgramRecognizer


def create_app(
    config: AppConfig | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    recognizer_factory: RecognizerFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    http_client / recognizer_factory are injection points for tests; when
    omitted they are built from config.
    """
    config = config or AppConfig.load_from_env()
    logger.configure(level=config.log_level, json_output=config.enable_json_logs)

    # Fail fast on a bad transport name.
    transport = build_transport(config.avatar_transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        http = http_client or httpx.AsyncClient(timeout=config.vendor_timeout_s)

        vendor = AvatarVendorClient(
            http=http,
            base_url=config.avatar_api_url,
            api_key=config.avatar_api_key,
        )
        manager = AvatarSessionManager(
            vendor=vendor,
            credentials=CredentialTable(config.avatar_credentials),
            bypass_token=config.auth_bypass_token,
        )
        sweeper = SessionSweeper(manager)

        app.state.manager = manager
        app.state.sweeper = sweeper
        sweeper.start()

        log_event({
            "event_type": "APP_STARTED",
            "env": config.env,
            "avatar_transport": transport.name,
            "avatar_count": len(config.avatar_credentials),
        })

        try:
            yield
        finally:
            await sweeper.stop()
            await manager.shutdown()
            if http_client is None:
                await http.aclose()
            log_event({"event_type": "APP_STOPPED"})

    app = FastAPI(title="Avatar Voice Bridge", lifespan=lifespan)

    app.state.config = config
    app.state.transport = transport
    app.state.recognizer_factory = recognizer_factory or build_recognizer_factory(config)

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app


def build_recognizer_factory(config: AppConfig) -> RecognizerFactory:
    """Build the per-session recognizer factory selected by config."""

    def _factory() -> SpeechRecognizer:
        if not config.deepgram_api_key:
            raise ConfigurationError("DEEPGRAM_API_KEY is not configured")
        return DeepgramRecognizer(api_key=config.deepgram_api_key, model=config.stt_model)

    return _factory
