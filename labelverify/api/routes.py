"""API route definitions."""

import time
from functools import partial
from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from typing import Optional
import logging

from ..models import (
    ClientOCRVerificationRequest,
    ErrorResponse,
    HealthResponse,
    LabelFormData,
    VerificationResponse,
    VerificationResultModel,
)
from ..services import (
    EasyOCREngine,
    ImageGeometry,
    LabelExpectations,
    MergedOCRResult,
    OCREngineProvider,
    OCRFailure,
    OCRTimeout,
    OCRUnavailable,
    RotationOrchestrator,
    VerificationService,
    run_with_deadline,
)
from ..config import get_settings, Settings
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()


def build_ocr_provider(settings: Settings) -> OCREngineProvider:
    """Provider that loads EasyOCR on first use."""
    return OCREngineProvider(
        partial(EasyOCREngine.create, lang=settings.ocr_lang, model_dir=settings.ocr_model_dir)
    )


def get_ocr_provider(request: Request) -> OCREngineProvider:
    """The application's shared provider, created on first access."""
    provider = getattr(request.app.state, "ocr_provider", None)
    if provider is None:
        provider = build_ocr_provider(get_settings())
        request.app.state.ocr_provider = provider
    return provider


def build_geometry(settings: Settings) -> ImageGeometry:
    return ImageGeometry(
        allowed_extensions=settings.allowed_extensions,
        max_upload_size_mb=settings.max_upload_size_mb,
        min_dimension=settings.min_image_dimension,
        max_dimension=settings.max_image_dimension,
    )


def _error(status_code: int, error: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


def _validation_detail(exc: ValidationError) -> list:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def _collect_warnings(evidence: MergedOCRResult, settings: Settings) -> list[str]:
    warnings = []
    if evidence.is_empty:
        warnings.append("No text could be extracted from the image. Please upload a clearer label.")
    elif evidence.confidence < settings.low_confidence_threshold:
        warnings.append(
            f"Low OCR confidence ({evidence.confidence:.0f}%). Results may be unreliable."
        )
    return warnings


def _respond(
    expectations: LabelExpectations,
    evidence: MergedOCRResult,
    settings: Settings,
    start_time: float,
) -> VerificationResponse:
    verification_service = VerificationService(settings.matching_config())
    result = verification_service.verify(expectations, evidence)
    total_ms = int((time.time() - start_time) * 1000)

    return VerificationResponse(
        success=True,
        result=VerificationResultModel.build(
            result,
            evidence,
            processing_time_ms=total_ms,
            warnings=_collect_warnings(evidence, settings),
        ),
    )


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(request: Request):
    """Check API health and OCR readiness."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        ocr_ready=get_ocr_provider(request).is_ready,
    )


@router.post(
    "/verify",
    response_model=VerificationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid image"},
        422: {"description": "Invalid expected values"},
        500: {"model": ErrorResponse, "description": "OCR engine error"},
        503: {"model": ErrorResponse, "description": "OCR engine unavailable"},
        504: {"model": ErrorResponse, "description": "OCR timed out"},
    },
    tags=["Verification"]
)
async def verify_label(
    request: Request,
    image: UploadFile = File(..., description="Label image file"),
    brand_name: str = Form(..., description="Expected brand name"),
    product_type: str = Form(..., description="Expected class/type"),
    alcohol_content: str = Form(..., description="Expected ABV, e.g. 45 or 45%"),
    net_contents: Optional[str] = Form(None, description="Expected net contents, e.g. 750 mL"),
):
    """
    Verify a label image against the expected values.

    The image is OCR'd at every candidate rotation; field results carry
    bounding boxes in the uploaded image's pixel coordinates.
    """
    start_time = time.time()
    settings = get_settings()

    try:
        form = LabelFormData(
            brand_name=brand_name,
            product_type=product_type,
            alcohol_content=alcohol_content,
            net_contents=net_contents,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))

    try:
        image_bytes = await image.read()
    except Exception as e:
        logger.error(f"Failed to read uploaded image: {e}")
        raise HTTPException(status_code=400, detail="Failed to read uploaded image")

    geometry = build_geometry(settings)
    is_valid, error_msg = geometry.validate_image(image_bytes, image.filename or "unknown")
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_msg)

    try:
        engine = await get_ocr_provider(request).get()
        orchestrator = RotationOrchestrator(
            engine,
            geometry=geometry,
            angles=settings.rotation_angles,
            min_word_confidence=settings.ocr_min_word_confidence,
            policy=settings.orientation_policy(),
        )
        evidence = await run_with_deadline(
            orchestrator.process_with_rotations(image_bytes),
            settings.ocr_deadline_seconds,
        )
    except OCRTimeout as e:
        return _error(504, "OCR processing timed out", str(e))
    except OCRUnavailable as e:
        return _error(503, "OCR service not ready. Please try again in a moment.", str(e))
    except OCRFailure as e:
        logger.error(f"OCR failed: {e}")
        return _error(500, "OCR processing failed", str(e))

    expectations = LabelExpectations(
        brand_name=form.brand_name,
        product_type=form.product_type,
        alcohol_content=form.alcohol_content,
        net_contents=form.net_contents,
    )
    return _respond(expectations, evidence, settings, start_time)


@router.post(
    "/verify/ocr",
    response_model=VerificationResponse,
    tags=["Verification"]
)
async def verify_client_ocr(payload: ClientOCRVerificationRequest):
    """
    Verify expected values against OCR output produced by the client.

    Runs only the matching engine; no image is uploaded.
    """
    start_time = time.time()
    settings = get_settings()

    evidence = payload.to_evidence()
    logger.info(
        f"Client OCR verification: {len(evidence.text)} chars, "
        f"{len(evidence.words)} words, angles={evidence.angles}"
    )

    expectations = LabelExpectations(
        brand_name=payload.brand_name,
        product_type=payload.product_type,
        alcohol_content=payload.alcohol_content,
        net_contents=payload.net_contents,
    )
    return _respond(expectations, evidence, settings, start_time)
