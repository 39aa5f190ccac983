"""FastAPI entrypoint for the WS-Discovery client service."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI

from wsdiscovery_client.routers import discovery

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    client = discovery.get_discovery_client()
    logger.info("Starting WS-Discovery client on port %s", client.settings.port)
    client.start()
    try:
        yield
    finally:
        logger.info("Stopping WS-Discovery client")
        client.close()


def create_app() -> FastAPI:
    app = FastAPI(title="WS-Discovery Client", lifespan=lifespan)
    app.include_router(discovery.router)
    return app


app = create_app()


def run() -> None:
    """Serve the app, honoring SERVICE_HOST, SERVICE_PORT and UVICORN_LOG_LEVEL."""

    host = os.getenv("SERVICE_HOST", "0.0.0.0")
    port = int(os.getenv("SERVICE_PORT", "8000"))
    log_level = os.getenv("UVICORN_LOG_LEVEL", "info")
    uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    run()
