"""
FastAPI Application

Main FastAPI application for QueryPilot with:
- Lifespan management for the shared runtime
- CORS middleware for frontend integration
- Global exception handlers for discovery, safety and connector errors

Usage:
    uvicorn querypilot.api.main:app --reload --port 8000
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from querypilot import __version__
from querypilot.api.routes import chat, datasources, execute, health
from querypilot.connectors.base import ConnectionError as ConnectorConnectionError
from querypilot.connectors.base import QueryError
from querypilot.discovery.errors import DataSourceNotFoundError, DiscoveryError
from querypilot.models.agent import AgentError
from querypilot.runtime import Runtime, build_runtime
from querypilot.validation.safety import BlockingSafetyIssueError

logger = logging.getLogger(__name__)

app_state: dict[str, Any] = {"runtime": None}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the runtime on startup unless one was injected, close it on shutdown."""
    logger.info("Starting QueryPilot API server...")
    owned = app_state["runtime"] is None
    if owned:
        app_state["runtime"] = await build_runtime()
    logger.info("QueryPilot API server started successfully")

    try:
        yield
    finally:
        logger.info("Shutting down QueryPilot API server...")
        if owned and app_state["runtime"] is not None:
            try:
                await app_state["runtime"].close()
            except Exception as e:
                logger.error(f"Error closing runtime: {e}")
            app_state["runtime"] = None
        logger.info("QueryPilot API server shut down complete")


app = FastAPI(
    title="QueryPilot API",
    description="Conversational query assistant for SQL databases and search engines",
    version=__version__,
    lifespan=lifespan,
)

cors_origins_env = os.getenv("CORS_ORIGINS", "")
cors_origins = (
    [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    if cors_origins_env
    else ["http://localhost:3000"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DataSourceNotFoundError)
async def data_source_not_found_handler(
    request: Request, exc: DataSourceNotFoundError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": exc.kind, "message": str(exc)},
    )


@app.exception_handler(DiscoveryError)
async def discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": exc.kind, "message": str(exc)},
    )


@app.exception_handler(BlockingSafetyIssueError)
async def blocking_safety_handler(request: Request, exc: BlockingSafetyIssueError) -> JSONResponse:
    """Refuse statements with blocking safety issues."""
    logger.warning(f"Execution refused: {exc.report.blocking_issues}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "blocking_safety_issue",
            "message": str(exc),
            "blocking_issues": exc.report.blocking_issues,
            "warnings": exc.report.warnings,
        },
    )


@app.exception_handler(AgentError)
async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    """Handle agent errors with context."""
    logger.error(f"Agent error: {exc}", extra={"agent": exc.agent, "recoverable": exc.recoverable})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": str(exc.kind),
            "message": exc.message,
            "agent": exc.agent,
        },
    )


@app.exception_handler(ConnectorConnectionError)
async def connection_error_handler(request: Request, exc: ConnectorConnectionError) -> JSONResponse:
    """Handle database connection errors."""
    logger.error(f"Database connection error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "connection_error",
            "message": "Database connection failed. Please try again later.",
        },
    )


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    """Handle query execution errors."""
    logger.error(f"Query execution error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "query_error", "message": str(exc)},
    )


app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
app.include_router(datasources.router, prefix="/api/v1", tags=["datasources"])
app.include_router(execute.router, prefix="/api/v1", tags=["execute"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "QueryPilot API",
        "version": __version__,
        "docs": "/docs",
    }


def get_runtime() -> Runtime:
    """Get the initialized runtime instance."""
    if app_state["runtime"] is None:
        raise RuntimeError("Runtime not initialized")
    return app_state["runtime"]
