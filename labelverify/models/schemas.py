"""Pydantic schemas for API requests and responses."""

import re
from pydantic import BaseModel, BeforeValidator, Field, field_validator, model_validator
from typing import Annotated, Any, Dict, Optional, TypeVar

from ..services import (
    BoundingBox,
    FieldVerification,
    MergedOCRResult,
    OCRPage,
    OCRWord,
    OverallStatus,
    VerificationField,
    VerificationResult,
    VerificationStatus,
)

ABV_MIN = 0.5
ABV_MAX = 95.0

BRAND_NAME_PATTERN = re.compile(r"^[A-Za-z0-9\s\-'&.]+$")
ALCOHOL_CONTENT_PATTERN = re.compile(r"^\d+(?:\.\d+)?\s*%?$")
NET_CONTENTS_PATTERN = re.compile(r"^\d+\.?\d*\s*(ml|oz|fl\s*oz|l)$", re.IGNORECASE)


def normalize_alcohol_content(value: str) -> str:
    """'45' -> '45%', '45 %' -> '45%'."""
    cleaned = re.sub(r"\s", "", value.strip())
    return cleaned if cleaned.endswith("%") else f"{cleaned}%"


def normalize_net_contents(value: str) -> str:
    """'750ml' -> '750 mL', '12FL OZ' -> '12 fl oz', '1.5  L' -> '1.5 L'."""
    match = re.search(r"(\d+\.?\d*)\s*([a-zA-Z\s]+)", value)
    if not match:
        return value

    number, unit = match.group(1), match.group(2).strip()
    lowered = re.sub(r"\s+", " ", unit.lower())
    if lowered == "ml":
        unit = "mL"
    elif lowered == "oz":
        unit = "oz"
    elif "fl" in lowered and "oz" in lowered:
        unit = "fl oz"
    elif lowered == "l":
        unit = "L"
    return f"{number} {unit}"


class LabelFormData(BaseModel):
    """Expected label values submitted with an image."""
    brand_name: str = Field(..., min_length=1, max_length=200, description="Expected brand name")
    product_type: str = Field(..., min_length=1, max_length=200, description="Expected class/type (e.g., Kentucky Straight Bourbon)")
    alcohol_content: str = Field(..., description="Expected ABV, e.g. '45' or '45%'")
    net_contents: Optional[str] = Field(None, description="Expected volume, e.g. '750 mL'")

    model_config = {
        "str_strip_whitespace": True,
        "json_schema_extra": {
            "example": {
                "brand_name": "OLD TOM DISTILLERY",
                "product_type": "Kentucky Straight Bourbon Whiskey",
                "alcohol_content": "45%",
                "net_contents": "750 mL",
            }
        },
    }

    @field_validator("brand_name")
    @classmethod
    def check_brand_name(cls, value: str) -> str:
        if not BRAND_NAME_PATTERN.match(value):
            raise ValueError("Brand name contains invalid characters")
        return value

    @field_validator("alcohol_content")
    @classmethod
    def check_alcohol_content(cls, value: str) -> str:
        if not ALCOHOL_CONTENT_PATTERN.match(value):
            raise ValueError("Alcohol content must be a number, e.g. 45 or 45%")
        number = float(value.replace("%", "").strip())
        if not ABV_MIN <= number <= ABV_MAX:
            raise ValueError(f"Alcohol content must be between {ABV_MIN:g}% and {ABV_MAX:g}%")
        return normalize_alcohol_content(value)

    @field_validator("net_contents")
    @classmethod
    def check_net_contents(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if not NET_CONTENTS_PATTERN.match(value):
            raise ValueError("Net contents must look like '750 mL', '12 fl oz' or '1.75 L'")
        return normalize_net_contents(value)


class BoundingBoxModel(BaseModel):
    """Pixel box in original-image coordinates."""
    x0: int = Field(ge=0)
    y0: int = Field(ge=0)
    x1: int = Field(ge=0)
    y1: int = Field(ge=0)

    @classmethod
    def from_bbox(cls, bbox: BoundingBox) -> "BoundingBoxModel":
        return cls(
            x0=max(0, bbox.x0),
            y0=max(0, bbox.y0),
            x1=max(0, bbox.x1),
            y1=max(0, bbox.y1),
        )


class FieldResult(BaseModel):
    """Result for a single field verification."""
    field: VerificationField
    status: VerificationStatus
    expected: str
    found: Optional[str] = None
    confidence: int = Field(0, ge=0, le=100)
    message: str
    bboxes: Optional[list[BoundingBoxModel]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "field": "brand_name",
                "status": "match",
                "expected": "OLD TOM DISTILLERY",
                "found": "OLD",
                "confidence": 100,
                "message": "Brand name verified",
                "bboxes": [{"x0": 120, "y0": 40, "x1": 610, "y1": 118}],
            }
        }
    }

    @classmethod
    def from_verification(cls, result: FieldVerification) -> "FieldResult":
        return cls(
            field=result.field,
            status=result.status,
            expected=result.expected,
            found=result.found,
            confidence=max(0, min(100, result.confidence)),
            message=result.message,
            bboxes=[BoundingBoxModel.from_bbox(b) for b in result.bboxes] if result.bboxes else None,
        )


class VerificationMetadata(BaseModel):
    """How the OCR evidence was produced."""
    processing_time_ms: int
    ocr_confidence: float = Field(ge=0.0, le=100.0)
    primary_angle: int
    rotation_angles: list[int]
    image_width: int
    image_height: int
    word_count: int


class VerificationResultModel(BaseModel):
    """Overall verification result for a label."""
    overall_status: OverallStatus
    fields: list[FieldResult]
    raw_text: str
    summary: str
    metadata: VerificationMetadata
    warnings: list[str] = []

    model_config = {
        "json_schema_extra": {
            "example": {
                "overall_status": "pass",
                "fields": [],
                "raw_text": "OLD TOM DISTILLERY\nKentucky Straight Bourbon Whiskey\n45% Alc./Vol.",
                "summary": "All fields verified successfully. Label matches application data.",
                "metadata": {
                    "processing_time_ms": 5210,
                    "ocr_confidence": 87.5,
                    "primary_angle": 0,
                    "rotation_angles": [0, 90, 180, 270],
                    "image_width": 1200,
                    "image_height": 1600,
                    "word_count": 84,
                },
                "warnings": [],
            }
        }
    }

    @classmethod
    def build(
        cls,
        result: VerificationResult,
        evidence: MergedOCRResult,
        processing_time_ms: int,
        warnings: list[str],
    ) -> "VerificationResultModel":
        return cls(
            overall_status=result.overall_status,
            fields=[FieldResult.from_verification(f) for f in result.fields],
            raw_text=result.raw_text,
            summary=result.summary,
            metadata=VerificationMetadata(
                processing_time_ms=processing_time_ms,
                ocr_confidence=round(max(0.0, min(100.0, evidence.confidence)), 1),
                primary_angle=evidence.primary_angle,
                rotation_angles=evidence.angles,
                image_width=evidence.image_width,
                image_height=evidence.image_height,
                word_count=len(evidence.words),
            ),
            warnings=warnings,
        )


class VerificationResponse(BaseModel):
    """Response for single label verification."""
    success: bool
    result: Optional[VerificationResultModel] = None
    error: Optional[str] = None


class ClientBoundingBoxModel(BoundingBoxModel):
    """Client-supplied box; must cover some area."""

    @model_validator(mode="after")
    def check_area(self) -> "ClientBoundingBoxModel":
        if self.x1 <= self.x0 or self.y1 <= self.y0:
            raise ValueError("Bounding box must have x1 > x0 and y1 > y0")
        return self


def _children_as_list(value: Any) -> Any:
    """Tesseract.js-style trees key children "0", "1", ... instead of using lists."""
    if value is None:
        return []
    if isinstance(value, dict):
        try:
            keys = sorted(value, key=int)
        except (TypeError, ValueError):
            raise ValueError("Child objects must be a list or keyed by numeric index")
        return [value[k] for k in keys]
    return value


T = TypeVar("T")
Children = Annotated[list[T], BeforeValidator(_children_as_list)]


class OCRWordModel(BaseModel):
    """A recognized word from a client-side OCR run."""
    text: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=100.0)
    bbox: ClientBoundingBoxModel


class OCRTreeWordModel(BaseModel):
    text: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=100.0)
    bbox: Optional[ClientBoundingBoxModel] = None


class OCRLineModel(BaseModel):
    text: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=100.0)
    bbox: Optional[ClientBoundingBoxModel] = None
    words: Children[OCRTreeWordModel] = []


class OCRParagraphModel(BaseModel):
    lines: Children[OCRLineModel] = []


class OCRBlockModel(BaseModel):
    paragraphs: Children[OCRParagraphModel] = []


class OCRPageModel(BaseModel):
    """One rotation's hierarchical OCR output: blocks, paragraphs, lines, words."""
    text: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=100.0)
    blocks: Children[OCRBlockModel] = []
    width: int = Field(0, ge=0)
    height: int = Field(0, ge=0)

    def to_page(self) -> OCRPage:
        return OCRPage.from_dict(self.model_dump(exclude_none=True))


class ClientOCRVerificationRequest(LabelFormData):
    """Expected values plus OCR output produced elsewhere (e.g. in the browser)."""
    text: str
    confidence: float = Field(0.0, ge=0.0, le=100.0)
    words: list[OCRWordModel] = []
    pages: Dict[int, OCRPageModel] = Field(
        default_factory=dict,
        description="Hierarchical OCR page per rotation angle",
    )
    primary_angle: int = 0
    image_width: int = Field(0, ge=0)
    image_height: int = Field(0, ge=0)

    @field_validator("primary_angle")
    @classmethod
    def check_primary_angle(cls, value: int) -> int:
        if value not in (0, 90, 180, 270):
            raise ValueError("primary_angle must be one of 0, 90, 180, 270")
        return value

    @field_validator("pages")
    @classmethod
    def check_page_angles(cls, value: Dict[int, OCRPageModel]) -> Dict[int, OCRPageModel]:
        unknown = [a for a in value if a not in (0, 90, 180, 270)]
        if unknown:
            raise ValueError(f"Unsupported rotation angle(s): {unknown}")
        return value

    def to_evidence(self) -> MergedOCRResult:
        """Build the merged result the matchers consume."""
        return MergedOCRResult(
            text=self.text,
            words=[
                OCRWord(
                    text=w.text,
                    confidence=w.confidence,
                    bbox=BoundingBox(x0=w.bbox.x0, y0=w.bbox.y0, x1=w.bbox.x1, y1=w.bbox.y1),
                )
                for w in self.words
            ],
            confidence=self.confidence,
            primary_angle=self.primary_angle,
            pages_by_angle={angle: page.to_page() for angle, page in self.pages.items()},
            image_width=self.image_width,
            image_height=self.image_height,
        )


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "Invalid image format",
                "detail": "Allowed formats: PNG, JPG, JPEG, WEBP"
            }
        }
    }


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    ocr_ready: bool
