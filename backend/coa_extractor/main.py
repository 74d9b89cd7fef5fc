"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .services import get_extractor
from .services.lab_detection import LAB_PROFILES
from .config import get_settings
from . import __version__

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    # Startup
    logger.info("Starting COA Extraction API...")
    settings = get_settings()
    if settings.debug:
        logging.getLogger("coa_extractor").setLevel(logging.DEBUG)

    # Build the shared extractor up front (compiles the pattern tables once)
    get_extractor()

    logger.info(f"Lab profiles: {', '.join(profile.lab_type.value for profile in LAB_PROFILES)}")
    logger.info(
        f"Early exit at confidence {settings.early_exit_confidence}, "
        f"context window {settings.context_window_chars} chars, "
        f"terpene fuzzy cutoff {settings.terpene_fuzzy_threshold}"
    )
    logger.info(
        f"Batch limit {settings.max_batch_size} documents, {settings.max_workers} worker(s), "
        f"max text {settings.max_text_chars} chars"
    )
    logger.info(f"API ready - Version {__version__}")

    yield

    # Shutdown
    logger.info("Shutting down COA Extraction API...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="""
## Cannabis COA Extraction API

Turns the OCR text of a cannabis Certificate of Analysis into a structured record.

### Features
- **Extraction**: Batch ID, strain, category, THC / CBD / total cannabinoids, lab, test date, top terpenes
- **Confidence**: Every record carries a 5-95 confidence score
- **Quality Report**: OCR text quality and missing COA content
- **Batch Processing**: Extract multiple documents at once
- **CSV Export**: Download records as CSV

### Quick Start
1. Use `/health` to check API status
2. Use `/extract` with the OCR text of a COA
3. Use `/quality` to see why a document scored low
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Configure CORS - restrict to allowed frontend origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include routes
    app.include_router(router, prefix="/api/v1")

    # Root redirect to docs
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "COA Extraction API",
            "version": __version__,
            "docs": "/docs"
        }

    return app


# Create app instance
app = create_app()
