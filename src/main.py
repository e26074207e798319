"""Main FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api import health, publish, versions
from src.config import get_settings
from src.middleware.rate_limit import limiter
from src.schemas.schemas import ErrorResponse

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(
        f"Starting Studio Publish Service "
        f"(persistence={settings.persistence_backend}, storage={settings.storage_provider})"
    )

    yield

    logger.info("Shutting down Studio Publish Service...")


app = FastAPI(
    title="Studio Publish Service",
    description="""
## Recording Studio Versions & Publishing API

Each studio session keeps a ledger of audio versions derived from one recording:
- **Original**: the recording itself, which can never be deleted
- **AI voice**: speech-to-speech conversion of any version
- **Dub**: translation of any version into another language

Selected versions are published to content-addressed storage and recorded
on-chain, through a gasless relay when a delegated account is available or
a wallet-signed transaction otherwise.

### Weekly limits
Free accounts get 5 saves, 3 AI voice transforms and 3 dubs per week
(reset every Monday). Guests cannot publish; premium accounts are unlimited.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if settings.debug else "An unexpected error occurred",
        ).model_dump(exclude_none=True),
    )


# Include routers
app.include_router(health.router)
app.include_router(versions.router)
app.include_router(publish.router)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Studio Publish Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
