"""
FastAPI application for the Family Ledger Graph.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from strawberry.fastapi import GraphQLRouter

from api.handler import ApiResponse, general_exception_handler, http_exception_handler
from api.schema import create_schema
from api.voyager import render_voyager
from config import Settings, settings as default_settings
from graph.store import LedgerGraph
from ledger.seed import seed_demo
from ledger.service import LedgerService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    settings: Settings = app.state.settings
    if settings.SEED_DEMO_DATA:
        ids = seed_demo(app.state.ledger)
        logger.info("Demo family id: %s", ids.family_id)

    logger.info("Started on http://%s:%s%s", settings.HOST, settings.PORT, settings.VOYAGER_PATH)
    yield
    logger.info("Shutting down application...")


async def get_context(request: Request) -> dict:
    """Per-request GraphQL context: the service and a resolver bound to one snapshot."""
    service: LedgerService = request.app.state.ledger
    return {"service": service, "resolver": service.resolver()}


def create_app(settings: Settings | None = None, service: LedgerService | None = None) -> FastAPI:
    settings = settings or default_settings
    if service is None:
        service = LedgerService(LedgerGraph(lock_timeout=settings.CONTENTION_TIMEOUT_SECONDS))

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.ledger = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # REST routes only; GraphQL errors are reported in the response body
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    graphql_router = GraphQLRouter(
        create_schema(introspection=settings.INTROSPECTION_ENABLED),
        context_getter=get_context,
        graphql_ide="graphiql" if settings.GRAPHIQL_ENABLED else None,
    )
    app.include_router(graphql_router, prefix=settings.GRAPHQL_PATH, tags=["GraphQL"])

    @app.get(settings.VOYAGER_PATH, response_class=HTMLResponse, include_in_schema=False)
    def voyager() -> str:
        """Type-graph browser fed by the endpoint's introspection."""
        return render_voyager(settings.GRAPHQL_PATH, settings.APP_NAME)

    @app.get("/health", tags=["Health"])
    def health_check() -> ApiResponse:
        snapshot = app.state.ledger.snapshot()
        return ApiResponse(
            success=True,
            message="System operational",
            data={"status": "ok", "graph_version": snapshot.version, "entities": len(snapshot)},
        )

    return app


app = create_app()


def run() -> None:
    """Start the server on the configured host and port."""
    logging.basicConfig(
        level=default_settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT, log_level=default_settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
