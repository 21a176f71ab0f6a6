# backend/garagedb/main.py
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .database import dispose_engine, get_session_factory, init_engine
from .apps.inventory.router import register_exception_handlers, router as inventory_router

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parent / "alembic.ini"


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:4173",
    ]


def _schema_strict() -> bool:
    return os.getenv("SCHEMA_STRICT", "0").strip().lower() in {"1", "true", "yes", "on"}


def _enforce_schema_head_sync_if_configured() -> None:
    """
    With SCHEMA_STRICT set, refuse to start unless the database is stamped
    with exactly the Alembic head revision(s) shipped with this code.
    """
    if not _schema_strict():
        return

    heads = set(ScriptDirectory.from_config(Config(str(ALEMBIC_INI))).get_heads())
    session = get_session_factory()()
    try:
        current = {row[0] for row in session.execute(text("SELECT version_num FROM alembic_version")).fetchall()}
    finally:
        session.close()

    if current != heads:
        raise RuntimeError(
            f"Database schema is at {sorted(current)} but the code expects {sorted(heads)}. "
            "Run: alembic -c garagedb/alembic.ini upgrade head"
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_engine()
    logger.info("Database engine initialised")
    _enforce_schema_head_sync_if_configured()
    try:
        yield
    finally:
        dispose_engine()
        logger.info("Database engine disposed")


app = FastAPI(title="Garage Inventory API", version="1.0.0", lifespan=lifespan)
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Garage inventory backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(inventory_router)
