from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from . import settings  # noqa: E402
from .errors import BeamError, beam_error_handler  # noqa: E402
from .middleware import SecurityHeadersMiddleware  # noqa: E402
from .realtime import realtime  # noqa: E402
from .realtime.presence import presence_hub  # noqa: E402
from .routers import (  # noqa: E402
    auth,
    comments,
    folders,
    galleries,
    images,
    notifications,
    presence,
    system,
)

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def _alembic_config() -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    cfg = Config(str(base_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    return cfg


def run_migrations() -> None:
    logger.info("Running Alembic migrations...")
    try:
        command.upgrade(_alembic_config(), "head")
    except Exception as e:
        logger.error(f"run_migrations: Error occurred: {e}", exc_info=True)
        raise
    logger.info("Migrations completed.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    if settings.RUN_MIGRATIONS:
        run_migrations()

    if not realtime.is_initialized:
        realtime.init()
    await presence_hub.start_sweeper()
    logger.info("Beam API server ready")

    yield

    logger.info("Shutting down application...")
    await presence_hub.stop_sweeper()
    realtime.dispose()


app = FastAPI(
    title="Beam API",
    version="0.1.0",
    description="Collaborative photo galleries with live presence",
    lifespan=lifespan,
)

# Comma-separated list of allowed origins
cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
if cors_origins_str == "*":
    logger.warning(
        "CORS is configured to allow all origins. "
        "This is insecure for production. Set CORS_ORIGINS to specific domains."
    )
cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)
app.add_middleware(SecurityHeadersMiddleware)

app.add_exception_handler(BeamError, beam_error_handler)

for module in (system, auth, galleries, images, comments, notifications, folders, presence):
    app.include_router(module.router, prefix="/api")
