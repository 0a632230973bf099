# app/main.py
from app.core.config import get_settings
from app.core.logging import setup_logging, get_logger
setup_logging(get_settings().app.log_level)

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from app.core.errors import register_error_handlers
from app.core.middleware import RequestContextMiddleware
from app.core.readiness import ReadinessMiddleware
from app.core.resources import get_engine, get_storage
from routes import api_router

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- START-UP ---
    app.state.ready = False
    await run_in_threadpool(get_engine)               # engine + create_all
    swept = await run_in_threadpool(get_storage().sweep_partials)
    log.info("startup: schema ready, %d partial volume(s) swept", swept)
    app.state.ready = True
    try:
        yield  # l’application tourne ici
    finally:
        # --- SHUTDOWN ---
        app.state.ready = False
        get_engine().dispose()
        log.info("shutdown: engine disposed")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app.name, lifespan=lifespan)
    app.state.ready = False

    app.add_middleware(
        ReadinessMiddleware,
        is_ready_flag=lambda: getattr(app.state, "ready", False))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestContextMiddleware, owner_header=settings.app.owner_header)
    register_error_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
log.info("App ready.")

# uvicorn app.main:app --reload --port 3001
# uvicorn app.main:app --reload --port 3001 --log-level debug <- Lance avec logs verbeux
