"""
FastAPI application for Action Board.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .board.routes import router as boards_router
from .board.routes import teams_router
from .config import get_settings
from .db.base import init_database
from .errors import ActionBoardError
from .events.routes import router as subscriptions_router
from .logging_config import configure_logging
from .promotion.routes import router as action_plans_router
from .routing.routes import router as routing_router

logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    configure_logging(settings)
    logger.info("Starting Action Board", environment=settings.environment)

    try:
        init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title="Action Board",
    description="Routes customer action plans to team boards and tracks them to resolution",
    version=importlib.metadata.version("action-board"),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ActionBoardError)
async def action_board_error_handler(request: Request, exc: ActionBoardError) -> JSONResponse:
    """Map service errors to their HTTP status with a stable error body."""
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.code)
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/version", tags=["system"])
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": importlib.metadata.version("action-board")}


app.include_router(boards_router)
app.include_router(teams_router)
app.include_router(routing_router)
app.include_router(action_plans_router)
app.include_router(subscriptions_router)
