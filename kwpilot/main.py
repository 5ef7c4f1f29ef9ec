"""KWPilot: FastAPI Application Entry Point.

Keyword research and paid-search operations for course marketing.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kwpilot.database import init_db, test_connection, db_url, _mask_url
from kwpilot.scheduler.jobs import start_scheduler, stop_scheduler
from kwpilot.api.prompt_routes import router as prompt_router
from kwpilot.api.keyword_routes import router as keyword_router
from kwpilot.api.research_routes import router as research_router
from kwpilot.api.session_routes import router as session_router
from kwpilot.api.cache_routes import router as cache_router
from kwpilot.api.auth_routes import router as auth_router
from kwpilot.api.gads_routes import router as gads_router
from kwpilot.api.linkedin_routes import router as linkedin_router
from kwpilot.api.import_routes import router as import_router
from kwpilot.core.logging import get_logger

logger = get_logger("main")

VERSION = "1.0.0"

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 KWPilot starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected, endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("KWPilot shut down")


app = FastAPI(
    title="KWPilot",
    description="Seed generation, keyword volume research, LLM keyword classification and Google Ads / LinkedIn reporting.",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(prompt_router)
app.include_router(keyword_router)
app.include_router(research_router)
app.include_router(session_router)
app.include_router(cache_router)
app.include_router(auth_router)
app.include_router(gads_router)
app.include_router(linkedin_router)
app.include_router(import_router)


@app.get("/health", tags=["System"])
async def health_check():
    return {
        "status": "healthy",
        "service": "kwpilot",
        "version": VERSION,
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Check database connectivity."""
    connected = test_connection()
    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
    }
