from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from app.server import chat_router
from app.server.middleware import (
    add_body_limit_middleware,
    add_cors_middleware,
    add_exception_handler,
)
from app.services import OllamaClient, SessionRegistry
from app.utils import g_config


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = OllamaClient()
    await client.init()
    SessionRegistry()
    logger.info(
        f"Relay ready: model={client.model}, backend={client.host}, "
        f"history={g_config.conversation.max_turns} turns"
    )
    try:
        yield
    finally:
        await client.close()
        logger.info("Ollama client closed.")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Screen Assistant Relay",
        description="Relays screenshot questions to a local Ollama vision model",
        version="1.0.0",
        lifespan=lifespan,
    )

    add_cors_middleware(app)
    add_body_limit_middleware(app)
    add_exception_handler(app)

    app.include_router(chat_router)
    return app
