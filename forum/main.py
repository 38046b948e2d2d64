"""
Main FastAPI application for the discussion forum.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from forum.config import CORS_ORIGINS, LOG_LEVEL
from forum.errors import ForumError
from forum.routes.auth import router as auth_router
from forum.routes.health import router as health_router
from forum.routes.posts import router as posts_router
from forum.routes.topics import router as topics_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Forum API",
        description="Discussion forum with threaded replies and moderation",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers
    @app.exception_handler(ForumError)
    async def forum_error_handler(request: Request, exc: ForumError):
        """Map the service error taxonomy to status code + fixed message."""
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed path, query or body values are client errors."""
        logger.debug("Rejected request to %s: %s", request.url.path, exc.errors())
        return _error(400, "Invalid request parameters")

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle SQLAlchemy database errors without leaking their text."""
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return _error(500, "Server error")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "Server error")

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(topics_router, prefix=API_PREFIX)
    app.include_router(posts_router, prefix=API_PREFIX)
    app.include_router(health_router)

    @app.get("/")
    async def root():
        return {"success": True, "message": "Forum API", "version": "1.0.0"}

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("forum.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
