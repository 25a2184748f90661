from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from plantscan import __version__
from plantscan.config import Settings
from plantscan.controllers import v1
from plantscan.db import init_db
from plantscan.logger import setup_logging
from plantscan.services.storage import close_client, init_storage

settings = Settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_storage(settings)
    await asyncio.to_thread(init_db, settings)
    logger.info("plantscan %s started", __version__)
    yield
    await close_client()


app = FastAPI(
    title="PlantScan API",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(v1.router)

Instrumentator().instrument(app).expose(app)
