from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
from loguru import logger
from notscared.config import Settings, get_settings
from notscared.config_values import seed_default_config_values
from notscared.database import Database
from notscared.logger import setup_logger
from notscared.routers import auth_router, events_router, projects_router, users_router

VERSION = "0.1.0"


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Build the application.

    The entry point owns the storage context: it is created here,
    attached to app.state and disposed on shutdown. A database passed in
    (as the tests do) stays owned by the caller. Request handlers reach it only
    through the get_db dependency.
    """
    settings = settings or get_settings()
    owns_database = database is None
    if owns_database:
        database = Database.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Runs on startup and shutdown.
        """
        database.init_db()
        if settings.seed_config_values:
            db = database.session()
            try:
                seed_default_config_values(db)
            finally:
                db.close()
        logger.info("notscared {} started ({})", VERSION, settings.environment)
        yield
        if owns_database:
            database.dispose()

    app = FastAPI(
        title="notscared",
        description="Project tracking with session auth and an audit trail",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.database = database

    # CORS is only opened up for local development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Register routers
    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(projects_router.router)
    app.include_router(events_router.router)

    @app.get("/")
    async def root():
        """
        Health check endpoint.
        """
        return {
            "status": "running",
            "version": VERSION
        }

    return app


def run():
    import uvicorn

    settings = get_settings()
    setup_logger(settings)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=8000,
    )


if __name__ == "__main__":
    run()
