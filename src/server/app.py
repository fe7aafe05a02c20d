"""FastAPI application bootstrap."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.reflection_chat import AppContext, Config, setup_logger

from .routes import register_agent_routes, register_chat_routes


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        context: prebuilt collaborators; loaded from config/app_config.yaml when omitted
    """
    if context is None:
        config = Config.from_yaml()
        setup_logger(log_level=config.log_level, log_file=config.log_file)
        context = AppContext.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        context.close()

    app = FastAPI(title="Reflection Chat API", version="1.0.0", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_chat_routes(app)
    register_agent_routes(app)

    return app
