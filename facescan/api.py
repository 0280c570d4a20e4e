"""Face verification API.

Start with: facescan serve --port 8000

Endpoints:
    GET  /api/v1/health       - Health check and model readiness
    PUT  /api/v1/verify       - Verify a face scan against a stored descriptor
    POST /api/v1/descriptors  - Extract the descriptor of a single-face image
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, FastAPI, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .constants import ApiConfig, get_api_config
from .errors import DescriptorError, ExtractionError, ModelLoadError
from .recognition import FaceVerifier, descriptor_to_list, parse_descriptor_json

logger = logging.getLogger(__name__)

# =============================================================================
# Pydantic Schemas
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    version: str
    models_loaded: bool
    match_threshold: float


class VerifyResponse(BaseModel):
    success: bool
    score: float
    distance: float


class DescriptorResponse(BaseModel):
    descriptor: List[float]
    length: int


def _error(message: str, status_code: int = 400, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# =============================================================================
# API Routes
# =============================================================================

def create_app(
    face_verifier: Optional[FaceVerifier] = None,
    config: Optional[ApiConfig] = None,
    preload: bool = False,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        face_verifier: Extractor + matcher to serve (default: built from config)
        config: API settings (default: global config)
        preload: Start loading recognition models immediately
    """
    config = config or get_api_config()
    verifier = face_verifier or FaceVerifier()
    if preload:
        verifier.extractor.load()

    app = FastAPI(
        title="Face Scan API",
        description="Face descriptor extraction and verification",
        version=__version__,
    )
    app.state.verifier = verifier

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    router = APIRouter(prefix="/api/v1", tags=["faces"])

    @router.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            models_loaded=verifier.extractor.is_loaded,
            match_threshold=verifier.matcher.threshold,
        )

    @router.put("/verify", response_model=VerifyResponse)
    async def verify_face(
        faceScan: Optional[UploadFile] = File(None),
        faceDescriptor: Optional[str] = Form(None),
    ):
        """Compare an uploaded face scan with a reference descriptor."""
        if faceScan is None:
            return _error("Face scan image is required")
        if not faceDescriptor:
            return _error("Reference face descriptor is required")

        try:
            reference = parse_descriptor_json(faceDescriptor)
        except DescriptorError:
            return _error("Invalid face descriptor format")

        content = await faceScan.read()
        try:
            result = await run_in_threadpool(verifier.verify, content, reference)
        except ModelLoadError as e:
            logger.error(f"Verification unavailable: {e}")
            return _error("Failed to load face recognition models", status_code=500)
        except ExtractionError as e:
            return _error(e.message or "Failed to process face image")
        except DescriptorError as e:
            # Reference length does not fit the model
            return _error(e.message)

        if not result.is_match:
            return _error(
                "Face verification failed. Please try again or contact admin.",
                success=False,
                score=result.score,
            )

        return VerifyResponse(success=True, score=result.score, distance=result.distance)

    @router.post("/descriptors", response_model=DescriptorResponse)
    async def extract_descriptor(faceScan: Optional[UploadFile] = File(None)):
        """Return the descriptor of the single face in an uploaded image."""
        if faceScan is None:
            return _error("Face scan image is required")

        content = await faceScan.read()
        try:
            descriptor = await run_in_threadpool(verifier.extractor.extract, content)
        except ModelLoadError as e:
            logger.error(f"Extraction unavailable: {e}")
            return _error("Failed to load face recognition models", status_code=500)
        except ExtractionError as e:
            return _error(e.message or "Failed to process face image")

        values = descriptor_to_list(descriptor)
        return DescriptorResponse(descriptor=values, length=len(values))

    app.include_router(router)

    @app.get("/")
    async def root():
        return {
            "name": "Face Scan API",
            "version": __version__,
            "docs": "/docs",
        }

    return app
