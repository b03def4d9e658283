"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .api.routes import build_ocr_provider
from .services import OCRUnavailable
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
    logger.info("Starting Label Verification API...")
    settings = get_settings()

    if getattr(app.state, "ocr_provider", None) is None:
        app.state.ocr_provider = build_ocr_provider(settings)

    # Load the OCR engine on startup (keep warm)
    try:
        await app.state.ocr_provider.get()
        logger.info("OCR engine initialized and ready")
    except OCRUnavailable as e:
        logger.warning(f"OCR engine failed to initialize - will retry on first request: {e}")

    angles = ", ".join(f"{a}°" for a in settings.rotation_angles)
    logger.info(f"API ready - Version {__version__} (rotations: {angles})")

    yield

    logger.info("Shutting down Label Verification API...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="""
## Alcohol Label Verification API

Verifies a photographed label against the values claimed for it.

### Features
- **Multi-rotation OCR**: The label is read at 0°, 90°, 180° and 270° so sideways text is not missed
- **Field Verification**: Brand name, product type, alcohol content, net contents and the government warning
- **Highlights**: Each verified field returns bounding boxes in the uploaded image's coordinates

### Quick Start
1. Use `/api/v1/health` to check API status
2. Use `/api/v1/verify` to verify a label image
3. Use `/api/v1/verify/ocr` to verify OCR output produced on the client
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": settings.app_name,
            "version": __version__,
            "docs": "/docs"
        }

    return app


# Create app instance
app = create_app()
