"""
FastAPI application entry point.

Mounts the derivative and image routers under the versioned prefix and maps
imaging errors that escape a route to the common error body.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from thumbforge import __version__
from thumbforge.config import settings
from thumbforge.routes import derivatives_router, images_router
from thumbforge.services.geometry import ImagingError
from thumbforge.services.surface import ENCODERS, SourceUnavailableError

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the job store and report the output defaults."""
    logger.info(f"Starting thumbforge v{__version__}")
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.outputs_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Job outputs: {settings.outputs_dir.absolute()}")
    logger.info(
        f"Output defaults: {settings.default_mime_type} q={settings.default_jpeg_quality}, "
        f"watermark opacity {settings.watermark_opacity}, font {settings.default_font_name}"
    )

    yield

    logger.info("thumbforge stopped")


app = FastAPI(
    title="thumbforge",
    description=(
        "Derives images from uploads: aspect-locked thumbnails, centered square "
        "crops, color-keyed watermarks, text overlays and two-layer merges"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url=f"{settings.api_v1_prefix}/docs",
    redoc_url=f"{settings.api_v1_prefix}/redoc",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ImagingError)
async def imaging_error_handler(request: Request, exc: ImagingError):
    """Imaging errors not translated by a route keep their stable code."""
    status_code = (
        status.HTTP_422_UNPROCESSABLE_ENTITY
        if isinstance(exc, SourceUnavailableError)
        else status.HTTP_400_BAD_REQUEST
    )
    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"code": exc.code, "message": exc.message, "details": exc.details}},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


app.include_router(derivatives_router, prefix=settings.api_v1_prefix)
app.include_router(images_router, prefix=settings.api_v1_prefix)


@app.get("/health", tags=["health"])
async def health_check():
    """Liveness plus the encoders this build can write."""
    return {
        "ok": True,
        "status": "healthy",
        "version": __version__,
        "encoders": sorted(ENCODERS),
    }


@app.get("/", include_in_schema=False)
async def root():
    """Service summary."""
    return {
        "message": "thumbforge API",
        "version": __version__,
        "docs": f"{settings.api_v1_prefix}/docs",
        "operations": [route.path for route in derivatives_router.routes],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "thumbforge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
