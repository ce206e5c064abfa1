"""
Application factory.

Builds a FastAPI application whose state holds the controller
collaborators (validation factory, gate, dispatcher, convenience config)
and whose exception handlers render what controllers raise.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routekit.bus import Dispatcher
from routekit.config import ConvenienceConfig, Settings
from routekit.gate import Gate
from routekit.middleware import log_requests, register_exception_handlers
from routekit.validation import ValidationFactory

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    validation_factory: Optional[ValidationFactory] = None,
    gate: Optional[Gate] = None,
    dispatcher: Optional[Dispatcher] = None,
    config: Optional[ConvenienceConfig] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    app = FastAPI(title=settings.app_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_requests(request, call_next):
        return await log_requests(request, call_next)

    register_exception_handlers(app)

    app.state.settings = settings
    app.state.validation_factory = validation_factory or ValidationFactory()
    app.state.gate = gate or Gate()
    app.state.dispatcher = dispatcher or Dispatcher()
    app.state.convenience_config = (config or ConvenienceConfig()).with_settings(settings)

    @app.get("/api/health")
    def health_check():
        return {"app_name": settings.app_name, "status": "healthy"}

    logger.debug(f"Created application '{settings.app_name}'")
    return app
