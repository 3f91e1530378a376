import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

from rentals.config import Settings, settings as default_settings
from rentals.container import Container, build_container
from rentals.database import check_db_connection, init_db
from rentals.utils.exceptions import AppException
from rentals.middleware.error_handler import (
    app_exception_handler,
    validation_exception_handler,
    integrity_error_handler,
    generic_exception_handler,
)

from rentals.api.v1 import rentals as rental_routes
from rentals.api.v1 import vehicles as vehicle_routes

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # API docs and debug tracebacks stay off in production
    expose_docs = not settings.is_production
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Vehicle rental lifecycle API",
        debug=settings.APP_DEBUG and expose_docs,
        docs_url="/docs" if expose_docs else None,
        redoc_url="/redoc" if expose_docs else None,
        openapi_url="/openapi.json" if expose_docs else None,
    )
    app.state.container = container or build_container(settings)

    # ─── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Exception Handlers ───────────────────────────────────────────────────
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ─── Routers ──────────────────────────────────────────────────────────────
    PREFIX = "/api/v1"
    app.include_router(vehicle_routes.router, prefix=PREFIX, tags=["Vehicles"])
    app.include_router(rental_routes.router,  prefix=PREFIX, tags=["Rentals"])

    # ─── Startup ──────────────────────────────────────────────────────────────
    @app.on_event("startup")
    def on_startup():
        engine = app.state.container.engine
        if engine is None:
            logger.info("No SQL engine configured, skipping DB check")
            return
        ok = check_db_connection(engine)
        logger.info("DB connected" if ok else "DB connection FAILED")
        if ok and settings.is_development:
            init_db(engine)

    # ─── Health ───────────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "app": settings.APP_NAME, "version": "1.0.0"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("rentals.main:app", host=default_settings.APP_HOST, port=default_settings.APP_PORT,
                reload=default_settings.is_development)
