"""FastAPI application entry point."""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from canvasgen.api import generate, settings as settings_api
from canvasgen.config import get_settings
from canvasgen.session import get_session, set_session

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    session = get_session()
    await session.aclose()
    set_session(None)
    logger.info("generation_session_closed")


app = FastAPI(
    title=settings.app_name,
    description="Single-flight image generation pipeline for canvas documents",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(generate.router, prefix="/api", tags=["generation"])
app.include_router(settings_api.router, prefix="/api", tags=["settings"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    session = get_session()
    config = session.config_store.load()
    return {
        "status": "healthy",
        "version": "0.1.0",
        "provider": session.resolver.classify(config.base_url).value,
        "api_key_configured": bool(config.api_key),
        "processing": session.worker.processing_count(),
    }
