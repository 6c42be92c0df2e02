from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.readings import build_default_store
from logging_config import configure_logging
from services.importer import build_default_importer


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    store = build_default_store()
    try:
        yield
    finally:
        store.dispose()
        build_default_importer.cache_clear()
        build_default_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Power Load Analysis",
        description="Imports load cross-table workbooks and serves bucketed load data for charts.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
