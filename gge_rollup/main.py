"""
Точка входа API:  uvicorn gge_rollup.main:app
"""
from fastapi import FastAPI

from gge_rollup.api.routes import router
from gge_rollup.config import settings
from gge_rollup.logging_ import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    app = FastAPI(title="GGE Rollup", description="Сводный отчёт по сметам .gge")
    app.include_router(router, prefix="/api")
    return app


app = create_app()
