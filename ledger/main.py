import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .core import errors
from .db.store import ExpenseStore
from .routers import categories, expenses, health, stats


def create_app(settings_override: Settings | None = None) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., temp DB). Falls back to cached get_settings().
    """
    settings = settings_override or get_settings()
    if settings.db_path is None:
        settings.init_post_load()
    # Initialize logging early
    init_logging(debug=settings.debug)

    # One store handle per app; opened lazily on first use or at startup
    store = ExpenseStore(settings.db_path, timeout=settings.db_timeout_seconds)  # type: ignore[arg-type]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            store.init()
        except Exception:
            # Failing to init DB is fatal; re-raise after logging
            logging.getLogger("ledger").exception("failed to initialize expense store")
            raise
        try:
            yield
        finally:
            store.close()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    # Middleware (request id / structured logging, CORS)
    app.middleware("http")(request_context_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handlers
    app.add_exception_handler(errors.LedgerError, errors.ledger_error_handler)
    app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(expenses.router)
    app.include_router(stats.router)
    app.include_router(categories.router)

    @app.get("/")
    async def root():
        return {"message": "Expense Ledger API", "version": settings.version}

    return app


app = create_app()
