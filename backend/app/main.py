"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.database import engine
from app.routes import blood_tests, blood_values

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the database on startup and release the pool on shutdown."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database reachable")
    except (OSError, SQLAlchemyError) as exc:
        logger.warning("Database not reachable at startup: %s", exc)

    yield

    await engine.dispose()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        # Result pages carry patient data
        response.headers["Cache-Control"] = "no-store"
        return response


app = FastAPI(
    title="Labdesk",
    description="Laboratory result entry: reference ranges, calculated parameters and differential checks",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(blood_values.router, prefix="/api")
app.include_router(blood_tests.router, prefix="/api")


@app.get("/health")
async def health_check() -> dict:
    """Liveness check."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict:
    """API name, version and docs location."""
    return {
        "name": "Labdesk API",
        "version": app.version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
