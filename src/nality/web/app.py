"""
Nality Web - FastAPI application.

Serves the onboarding API. Auth and data storage are handled by Supabase.
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nality import __version__
from nality.config import settings
from onboarding.api import router as onboarding_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Nality", version=__version__)


@app.on_event("startup")
async def startup_event():
    """Log configuration on startup."""
    logger.info("Nality starting up...")
    logger.info(f"  Environment: {settings.nality_env}")
    logger.info(f"  Pending registration TTL: {settings.pending_registration_ttl_hours}h")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render every HTTP error as {"error": <message>} (plus validation issues)."""
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}")

    content = {"error": exc.detail}
    issues = getattr(exc, "issues", None)
    if issues:
        content["issues"] = issues

    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(onboarding_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
