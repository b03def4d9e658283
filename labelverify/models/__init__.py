"""Pydantic models for request/response schemas."""

from .schemas import (
    LabelFormData,
    BoundingBoxModel,
    FieldResult,
    VerificationMetadata,
    VerificationResultModel,
    VerificationResponse,
    ClientBoundingBoxModel,
    OCRWordModel,
    OCRPageModel,
    ClientOCRVerificationRequest,
    ErrorResponse,
    HealthResponse,
    normalize_alcohol_content,
    normalize_net_contents,
)

__all__ = [
    "LabelFormData",
    "BoundingBoxModel",
    "FieldResult",
    "VerificationMetadata",
    "VerificationResultModel",
    "VerificationResponse",
    "ClientBoundingBoxModel",
    "OCRWordModel",
    "OCRPageModel",
    "ClientOCRVerificationRequest",
    "ErrorResponse",
    "HealthResponse",
    "normalize_alcohol_content",
    "normalize_net_contents",
]
