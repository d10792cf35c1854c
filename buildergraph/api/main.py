"""BuilderGraph FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from buildergraph.analysis_cache import AnalysisCache
from buildergraph.api.middleware import request_logging_middleware
from buildergraph.config import BuilderGraphConfig, get_config
from buildergraph.errors import EntityNotFound, OperationNotFound, SubmissionError
from buildergraph.ledger.client import LedgerClient
from buildergraph.publishing.orchestrator import PublishOrchestrator
from buildergraph.publishing.tracker import StatusTracker
from buildergraph.scoring.analysis import RepositoryAnalyzer
from buildergraph.storage.db import Database
from buildergraph.storage.repository import RecordStore
from buildergraph.utils import setup_logging

logger = logging.getLogger(__name__)


def build_ledger_client(config: BuilderGraphConfig, **overrides) -> LedgerClient:
    kwargs = dict(
        timeout=config.ledger_request_timeout,
        max_attempts=config.ledger_max_attempts,
        retry_delay=config.ledger_retry_delay,
        poll_initial_delay=config.poll_initial_delay,
        poll_max_delay=config.poll_max_delay,
        poll_max_attempts=config.poll_max_attempts,
        publish_options=config.publish_options,
        explorer_base=config.ledger_explorer_base,
    )
    kwargs.update(overrides)
    return LedgerClient(config.ledger_api_url, **kwargs)


def bootstrap_services(
    app: FastAPI,
    config: BuilderGraphConfig,
    ledger: LedgerClient | None = None,
    analyzer: RepositoryAnalyzer | None = None,
) -> None:
    """Construct every service once and hang it on ``app.state``."""
    database = Database(config.database_url)
    database.init_db()
    store = RecordStore(database)
    ledger = ledger or build_ledger_client(config)
    analyzer = analyzer or RepositoryAnalyzer.from_config(config)

    orchestrator = PublishOrchestrator(
        store,
        ledger,
        AnalysisCache(store),
        analyzer,
        confirmation_timeout=config.confirmation_timeout,
        epochs=config.epochs_by_entity,
    )

    app.state.config = config
    app.state.database = database
    app.state.store = store
    app.state.ledger = ledger
    app.state.orchestrator = orchestrator
    app.state.tracker = StatusTracker(store, ledger)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle handler."""
    config: BuilderGraphConfig = app.state.config
    setup_logging(config.log_level, config.log_file)

    bootstrap_services(
        app,
        config,
        ledger=getattr(app.state, "ledger_override", None),
        analyzer=getattr(app.state, "analyzer_override", None),
    )
    recovered = app.state.orchestrator.recover_interrupted()
    logger.info(
        "BuilderGraph API starting - db=%s, ledger=%s, llm=%s, recovered=%d",
        config.database_url, config.ledger_api_url, config.llm_provider, recovered,
    )
    yield
    cancelled = await app.state.orchestrator.drain(config.shutdown_grace_period)
    await app.state.ledger.aclose()
    app.state.database.dispose()
    logger.info("BuilderGraph API shutdown - %d operation(s) interrupted", cancelled)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

async def _submission_error_handler(request: Request, exc: SubmissionError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "field": exc.field})


async def _not_found_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def create_app(
    config: BuilderGraphConfig | None = None,
    *,
    ledger: LedgerClient | None = None,
    analyzer: RepositoryAnalyzer | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    ``ledger`` and ``analyzer`` replace the configured services; tests use
    them to run against a fake ledger node.
    """
    config = config or get_config()

    app = FastAPI(
        title="BuilderGraph API",
        description="Developer profiles, projects and endorsements published as ledger knowledge assets",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.ledger_override = ledger
    app.state.analyzer_override = analyzer

    # CORS - restricted to configured origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Request logging and X-Request-ID middleware
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_logging_middleware)

    app.add_exception_handler(SubmissionError, _submission_error_handler)
    app.add_exception_handler(EntityNotFound, _not_found_handler)
    app.add_exception_handler(OperationNotFound, _not_found_handler)

    # Import and include routers
    from buildergraph.api.routes.endorsements import router as endorsements_router
    from buildergraph.api.routes.health import router as health_router
    from buildergraph.api.routes.operations import router as operations_router
    from buildergraph.api.routes.profiles import router as profiles_router
    from buildergraph.api.routes.projects import router as projects_router

    app.include_router(profiles_router)
    app.include_router(projects_router)
    app.include_router(endorsements_router)
    app.include_router(operations_router)
    app.include_router(health_router)

    return app


app = create_app()
