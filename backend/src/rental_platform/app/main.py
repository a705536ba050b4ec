"""FastAPI application entry point for the Rental Platform API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rental_platform.app.config import get_settings
from rental_platform.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    settings = get_settings()
    if not settings.gemini_api_key:
        logger.warning(
            "GEMINI_API_KEY not set - payment extraction %s",
            "uses regex fallback" if settings.extractor_regex_fallback else "routes everything to manual review",
        )
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Rental Platform API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: allow all origins in debug mode for LAN/IP access
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from rental_platform.app.routes.auth import router as auth_router
from rental_platform.app.routes.payment_intake import router as payment_intake_router
from rental_platform.app.routes.admin_payment_intake import router as admin_payment_intake_router

app.include_router(auth_router)
app.include_router(payment_intake_router)
app.include_router(admin_payment_intake_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "rental-platform"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "rental_platform.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
