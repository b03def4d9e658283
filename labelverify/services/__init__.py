"""Services for image geometry, OCR, orientation, bounding boxes, matching and verification."""

from .ocr_tree import BoundingBox, OCRWord, OCRLine, OCRParagraph, OCRBlock, OCRPage, page_from_detections
from .preprocessing import ImageGeometry
from .ocr import (
    OCREngine,
    EasyOCREngine,
    OCREngineProvider,
    OCRError,
    OCRFailure,
    OCRUnavailable,
    OCRTimeout,
)
from .orientation import OrientationPolicy, TokenClass, classify_token, pattern_score, score_attempt
from .rotation import (
    RotationAttempt,
    MergedOCRResult,
    RotationOrchestrator,
    merge_attempts,
    select_primary,
    run_with_deadline,
)
from .bbox import (
    BBoxSearchOptions,
    normalize_text,
    find_bboxes,
    find_pattern_bboxes,
    find_alcohol_content_bboxes,
    find_bboxes_across_rotations,
    merge_bboxes,
    deduplicate_bboxes,
    transform_bbox_to_original,
    transform_bbox_to_rotated,
    transform_bboxes,
)
from .matching import (
    MatchingConfig,
    VerificationField,
    VerificationStatus,
    FieldVerification,
    match_brand_name,
    match_product_type,
    match_alcohol_content,
    match_net_contents,
    match_government_warning,
)
from .verification import (
    VerificationService,
    VerificationResult,
    LabelExpectations,
    OverallStatus,
    determine_overall_status,
)

__all__ = [
    "BoundingBox",
    "OCRWord",
    "OCRLine",
    "OCRParagraph",
    "OCRBlock",
    "OCRPage",
    "page_from_detections",
    "ImageGeometry",
    "OCREngine",
    "EasyOCREngine",
    "OCREngineProvider",
    "OCRError",
    "OCRFailure",
    "OCRUnavailable",
    "OCRTimeout",
    "OrientationPolicy",
    "TokenClass",
    "classify_token",
    "pattern_score",
    "score_attempt",
    "RotationAttempt",
    "MergedOCRResult",
    "RotationOrchestrator",
    "merge_attempts",
    "select_primary",
    "run_with_deadline",
    "BBoxSearchOptions",
    "normalize_text",
    "find_bboxes",
    "find_pattern_bboxes",
    "find_alcohol_content_bboxes",
    "find_bboxes_across_rotations",
    "merge_bboxes",
    "deduplicate_bboxes",
    "transform_bbox_to_original",
    "transform_bbox_to_rotated",
    "transform_bboxes",
    "MatchingConfig",
    "VerificationField",
    "VerificationStatus",
    "FieldVerification",
    "match_brand_name",
    "match_product_type",
    "match_alcohol_content",
    "match_net_contents",
    "match_government_warning",
    "VerificationService",
    "VerificationResult",
    "LabelExpectations",
    "OverallStatus",
    "determine_overall_status",
]
