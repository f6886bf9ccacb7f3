import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.core.config import get_settings
from app.core.tracing import init_tracing
from app.api.routes import auth as auth_routes
from app.api.routes import budgets as budgets_routes
from app.api.routes import downloads as downloads_routes
from app.api.routes import health as health_routes
from app.api.routes import latest_updates as latest_updates_routes
from app.api.routes import metrics as metrics_routes
from app.api.routes import rules_regulations as rules_regulations_routes
from app.api.routes import uploads as uploads_routes
from app.db.base import Base
from app.db.session import engine
from app.db.migrations import run_migrations_on_startup


def create_app() -> FastAPI:
    app = FastAPI(title="Finance Admin API")
    settings = get_settings()

    @app.on_event("startup")
    def _startup_migrations() -> None:
        # Production schema changes are opt-in via ALEMBIC_* env flags.
        run_migrations_on_startup()

    # Observability: configure logging + optional error tracing
    init_tracing(app)

    # CORS
    origins = [o.strip() for o in settings.backend_cors_origins.split(',') if o.strip()]
    cors_kwargs = dict(
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if origins:
        cors_kwargs["allow_origins"] = origins  # type: ignore
    if settings.backend_cors_origins_regex:
        cors_kwargs["allow_origin_regex"] = settings.backend_cors_origins_regex  # type: ignore
    app.add_middleware(CORSMiddleware, **cors_kwargs)

    # Routers
    app.include_router(health_routes.router)
    app.include_router(metrics_routes.router)
    app.include_router(auth_routes.router)
    app.include_router(uploads_routes.router)
    app.include_router(uploads_routes.github_router)
    app.include_router(budgets_routes.router)
    app.include_router(rules_regulations_routes.router)
    app.include_router(downloads_routes.router)
    app.include_router(latest_updates_routes.router)

    # Files written by the local backend: <root>/uploads/<bucket-dir>/<name>
    uploads_dir = Path(settings.storage_local_root) / "uploads"
    try:
        uploads_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logging.getLogger("fa.storage").warning("Local upload root unavailable: %s", e)
    app.mount("/uploads", StaticFiles(directory=str(uploads_dir), check_dir=False), name="uploads")

    # Auto-create tables only in non-production for local/dev convenience.
    # In production all schema changes must go through Alembic migrations.
    if settings.environment != "production":
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logging.getLogger("fa.db").warning("Could not create tables: %s", e)

    return app


app = create_app()
