"""
Main FastAPI application for the usergraph gateway
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import Settings, settings
from ..database import ConnectionPool, close_pool, init_pool
from ..errors import ConfigurationError, StoreUnavailable
from ..graphql import ExecutionEngine, registry
from ..graphql.schema import validate_schema
from ..logging import configure_logging, get_logger
from ..middleware import LoggingContextMiddleware

# Configure logging before creating logger
configure_logging(debug=settings.debug, log_level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared pool on startup and dispose of it on shutdown."""
    logger.info("Starting usergraph API...")
    owns_pool = app.state.pool is None
    if owns_pool:
        app.state.pool = init_pool(app.state.settings)

    try:
        await app.state.pool.ping()
    except StoreUnavailable as e:
        logger.error("Cannot reach the database at startup", error=e.message)
        if owns_pool:
            await close_pool()
            app.state.pool = None
        raise ConfigurationError(
            f"Cannot establish the initial connection pool: {e.message}"
        ) from e
    logger.info("Database connection verified")

    yield

    logger.info("Shutting down usergraph API...")
    if owns_pool:
        await close_pool()
        app.state.pool = None


def create_app(
    app_settings: Settings | None = None, pool: ConnectionPool | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``pool`` lets callers (tests, embedding applications) supply an already
    constructed pool; otherwise one is built from settings at startup.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="usergraph",
        description="GraphQL gateway over the users store",
        version=__version__,
        lifespan=lifespan,
        debug=app_settings.debug,
    )
    app.state.settings = app_settings
    app.state.pool = pool

    # Validate schema at startup so a broken registry never serves requests
    logger.info("Validating GraphQL schema...")
    validate_schema(registry)
    app.state.engine = ExecutionEngine(registry)

    app.add_middleware(LoggingContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():  # pyright: ignore [reportUnusedFunction]
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    from .endpoints import graphql, ide

    app.include_router(graphql.router)
    logger.info("GraphQL endpoint initialized successfully", endpoint="/graphql")

    if app_settings.graphiql_enabled:
        app.include_router(ide.router)

    return app


# Create the main application instance
app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "usergraph.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
