"""
Field matchers.

One matcher per verified field. Each is a pure function of the expected value,
the merged OCR evidence and a ``MatchingConfig``; none of them raise for a bad
label. Every outcome is a ``FieldVerification`` with a status.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from .bbox import (
    BBoxSearchOptions,
    deduplicate_bboxes,
    find_alcohol_content_bboxes,
    find_bboxes,
    find_bboxes_across_rotations,
    find_pattern_bboxes,
    merge_bboxes,
    normalize_text,
    transform_bboxes,
)
from .ocr_tree import BoundingBox, OCRWord
from .rotation import MergedOCRResult

logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    """Status of individual field verification."""
    MATCH = "match"
    MISMATCH = "mismatch"
    NOT_FOUND = "not_found"


class VerificationField(str, Enum):
    """The fields a label is verified against."""
    BRAND_NAME = "brand_name"
    PRODUCT_TYPE = "product_type"
    ALCOHOL_CONTENT = "alcohol_content"
    NET_CONTENTS = "net_contents"
    GOVERNMENT_WARNING = "government_warning"

    @property
    def required(self) -> bool:
        """Required fields gate the overall pass/fail status."""
        return self in REQUIRED_FIELDS


REQUIRED_FIELDS = frozenset({
    VerificationField.BRAND_NAME,
    VerificationField.PRODUCT_TYPE,
    VerificationField.ALCOHOL_CONTENT,
})


@dataclass
class FieldVerification:
    """Result of verifying a single field."""
    field: VerificationField
    status: VerificationStatus
    expected: str
    found: Optional[str] = None
    confidence: int = 0  # 0-100
    message: str = ""
    bboxes: Optional[List[BoundingBox]] = None


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class BrandNameConfig:
    fuzzy_match_threshold: float = 80.0
    word_match_threshold: float = 75.0


@dataclass(frozen=True)
class ProductTypeConfig:
    fuzzy_match_threshold: float = 70.0


@dataclass(frozen=True)
class AlcoholContentConfig:
    exact_tolerance: float = 0.5
    loose_tolerance: float = 2.0


@dataclass(frozen=True)
class NetContentsConfig:
    volume_tolerance: float = 0.02  # Relative to the expected volume


@dataclass(frozen=True)
class GovernmentWarningConfig:
    phrase_match_threshold: float = 0.6  # Fraction of required phrases


@dataclass(frozen=True)
class MatchingConfig:
    """Per-field thresholds, passed into every verification call."""
    brand_name: BrandNameConfig = field(default_factory=BrandNameConfig)
    product_type: ProductTypeConfig = field(default_factory=ProductTypeConfig)
    alcohol_content: AlcoholContentConfig = field(default_factory=AlcoholContentConfig)
    net_contents: NetContentsConfig = field(default_factory=NetContentsConfig)
    government_warning: GovernmentWarningConfig = field(default_factory=GovernmentWarningConfig)


DEFAULT_MATCHING_CONFIG = MatchingConfig()


# =============================================================================
# REFERENCE DATA
# =============================================================================

WARNING_REQUIRED_PHRASES = (
    "government warning",
    "surgeon general",
    "pregnant",
    "birth defects",
    "impairs",
    "health problems",
)

WARNING_KEYWORDS = (
    "GOVERNMENT WARNING",
    "WARNING",
    "SURGEON GENERAL",
    "PREGNANT",
    "BEVERAGE",
    "CONSUMPTION",
    "ALCOHOLIC",
)

# Checked in order; the first key contained in the expected class wins
PRODUCT_TYPE_VARIATIONS: Dict[str, List[str]] = {
    "bourbon": [
        "bourbon", "bourbon whiskey", "kentucky bourbon",
        "straight bourbon", "kentucky straight bourbon",
    ],
    "whiskey": ["whisky", "whiskey", "bourbon", "rye", "scotch"],
    "vodka": ["vodka", "distilled vodka", "premium vodka"],
    "gin": ["gin", "distilled gin", "dry gin", "london dry gin"],
    "rum": ["rum", "distilled rum", "white rum", "dark rum"],
    "tequila": ["tequila", "añejo", "reposado", "blanco"],
    "brandy": ["brandy", "cognac", "armagnac"],
    "ipa": ["ipa", "india pale ale", "pale ale"],
    "lager": ["lager", "lager beer", "pilsner"],
    "ale": ["ale", "pale ale", "amber ale"],
    "stout": ["stout", "porter", "imperial stout"],
    "wine": ["wine", "red wine", "white wine", "table wine"],
    "red wine": ["red wine", "cabernet", "merlot", "pinot noir"],
    "white wine": ["white wine", "chardonnay", "sauvignon blanc", "pinot grigio"],
    "champagne": ["champagne", "sparkling wine"],
}

VOLUME_TO_ML = {
    "mL": 1.0,
    "oz": 29.5735,  # US fluid ounce
    "L": 1000.0,
}

ABV_MIN = 0.5
ABV_MAX = 95.0
BARE_PERCENT_MAX = 20.0  # Unlabelled percentages above this are rarely ABV

ABV_ALCOHOL_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%?\s*(?:alc|alcohol)", re.IGNORECASE)
ABV_NOTATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%?\s*abv", re.IGNORECASE)
PROOF_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*proof", re.IGNORECASE)
PERCENTAGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")
BARE_NUMBER_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)$")

VOLUME_ML_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:milliliters?|millilitres?|ml)\b", re.IGNORECASE)
VOLUME_OZ_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:fl\.?\s*oz\.?|fluid\s*oz\.?|fluid\s*ounces?|oz\.?|ounces?)",
    re.IGNORECASE,
)
VOLUME_L_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:liters?|litres?|l)\b", re.IGNORECASE)

VOLUME_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (VOLUME_ML_PATTERN, "mL"),
    (VOLUME_OZ_PATTERN, "oz"),
    (VOLUME_L_PATTERN, "L"),
)

ALCOHOL_WORD_KEYWORDS = ("alc", "vol", "abv", "alcohol")
KEYWORD_WINDOW = 5
TEXT_NEAR_MISS_CONFIDENCE = 50  # Text candidates carry no per-word confidence

BRAND_BBOX_OPTIONS = BBoxSearchOptions(min_confidence=75, prefer_larger=True, prefer_top=True, max_results=2)
PRODUCT_BBOX_OPTIONS = BBoxSearchOptions(min_confidence=70, prefer_larger=True, max_results=2)
WARNING_ROTATION_BBOX_OPTIONS = BBoxSearchOptions(min_confidence=55, max_results=8)
WARNING_PRIMARY_BBOX_OPTIONS = BBoxSearchOptions(min_confidence=60, max_results=5)
BBOX_MERGE_THRESHOLD = 10
WARNING_MERGE_THRESHOLD = 20


# =============================================================================
# HELPERS
# =============================================================================

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def similarity(a: str, b: str) -> int:
    """Levenshtein similarity as a 0-100 percentage of the longer string."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 0
    distance = Levenshtein.distance(a, b)
    return round_half_up((max_len - distance) / max_len * 100)


def format_number(value: float) -> str:
    """4.0 -> '4', 4.25 -> '4.25'."""
    return f"{value:g}"


def extract_match(ocr_text: str, expected: str) -> str:
    """Return the OCR spelling of the first expected word found, else ``expected``."""
    for word in normalize_text(expected).split():
        match = re.search(re.escape(word), ocr_text, re.IGNORECASE)
        if match:
            return match.group(0)
    return expected


def get_product_type_variations(product_type: str) -> List[str]:
    normalized = normalize_text(product_type)
    for key, variations in PRODUCT_TYPE_VARIATIONS.items():
        if key in normalized:
            return variations
    return [normalized]


def parse_volume(value: str) -> Optional[Tuple[float, str]]:
    """
    Parse "750 mL", "12 fl oz" or "1.75L" into ``(value, unit)``.

    Returns:
        Unit is one of "mL", "oz", "L"; None when no number or unknown unit
    """
    match = re.search(r"(\d+(?:\.\d+)?)\s*([A-Za-z][A-Za-z.\s]*)", value or "")
    if not match:
        return None

    unit = match.group(2).strip().lower().replace(".", "")
    if "ml" in unit or unit.startswith("millilit"):
        unit = "mL"
    elif "oz" in unit or "ounce" in unit:
        unit = "oz"
    elif unit in ("l", "liter", "liters", "litre", "litres"):
        unit = "L"
    else:
        return None
    return float(match.group(1)), unit


def convert_to_ml(value: float, unit: str) -> float:
    return value * VOLUME_TO_ML[unit]


def find_volumes(text: str) -> List[Tuple[float, str]]:
    """Every volume statement in ``text``, grouped by unit (mL, oz, L)."""
    volumes = []
    for pattern, unit in VOLUME_PATTERNS:
        for match in pattern.finditer(text):
            volumes.append((float(match.group(1)), unit))
    return volumes


def _primary_bboxes(boxes: List[BoundingBox], evidence: MergedOCRResult) -> Optional[List[BoundingBox]]:
    """Merge boxes from the primary page and map them to the original frame."""
    boxes = deduplicate_bboxes(merge_bboxes(boxes, BBOX_MERGE_THRESHOLD))
    boxes = transform_bboxes(
        boxes, evidence.primary_angle, evidence.image_width, evidence.image_height
    )
    return boxes or None


# =============================================================================
# BRAND NAME
# =============================================================================

def match_brand_name(
    expected: str,
    evidence: MergedOCRResult,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> FieldVerification:
    """
    Verify the brand name.

    Substring containment, then whole-text fuzzy similarity, then the share
    of expected words (3+ characters) present in the text.
    """
    cfg = config.brand_name
    normalized_expected = normalize_text(expected)
    normalized_ocr = normalize_text(evidence.text)

    def not_found() -> FieldVerification:
        return FieldVerification(
            field=VerificationField.BRAND_NAME,
            status=VerificationStatus.NOT_FOUND,
            expected=expected,
            confidence=0,
            message="Brand name not detected",
        )

    if not normalized_expected or not normalized_ocr:
        return not_found()

    bboxes = _primary_bboxes(
        find_bboxes(expected, evidence.primary_page, BRAND_BBOX_OPTIONS), evidence
    )

    def matched(found: str, confidence: int) -> FieldVerification:
        logger.debug(f"Brand '{expected}' matched as '{found}' ({confidence}%)")
        return FieldVerification(
            field=VerificationField.BRAND_NAME,
            status=VerificationStatus.MATCH,
            expected=expected,
            found=found,
            confidence=confidence,
            message="Brand name verified",
            bboxes=bboxes,
        )

    if normalized_expected in normalized_ocr:
        return matched(extract_match(evidence.text, expected), 100)

    score = similarity(normalized_expected, normalized_ocr)
    if score >= cfg.fuzzy_match_threshold:
        return matched(extract_match(evidence.text, expected), score)

    words = [w for w in normalized_expected.split() if len(w) > 2]
    present = [w for w in words if w in normalized_ocr]
    rate = len(present) / len(words) * 100 if words else 0.0
    if rate >= cfg.word_match_threshold:
        return matched(" ".join(present), round_half_up(rate))

    return not_found()


# =============================================================================
# PRODUCT TYPE
# =============================================================================

def match_product_type(
    expected: str,
    evidence: MergedOCRResult,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> FieldVerification:
    """Verify the product class/type."""
    cfg = config.product_type
    normalized_expected = normalize_text(expected)
    normalized_ocr = normalize_text(evidence.text)

    not_found = FieldVerification(
        field=VerificationField.PRODUCT_TYPE,
        status=VerificationStatus.NOT_FOUND,
        expected=expected,
        confidence=0,
        message="Product type not detected",
    )
    if not normalized_expected or not normalized_ocr:
        return not_found

    bboxes = _primary_bboxes(
        find_bboxes(expected, evidence.primary_page, PRODUCT_BBOX_OPTIONS), evidence
    )

    def matched(found: str, confidence: int, boxes=bboxes) -> FieldVerification:
        logger.debug(f"Product type '{expected}' matched as '{found}' ({confidence}%)")
        return FieldVerification(
            field=VerificationField.PRODUCT_TYPE,
            status=VerificationStatus.MATCH,
            expected=expected,
            found=found,
            confidence=confidence,
            message="Product type verified",
            bboxes=boxes,
        )

    if normalized_expected in normalized_ocr:
        return matched(extract_match(evidence.text, expected), 100)

    # OCR text may be an abbreviated form of the expected class
    if normalized_ocr[:50] in normalized_expected:
        return matched(extract_match(evidence.text, expected), 95)

    for variation in get_product_type_variations(expected):
        if variation in normalized_ocr:
            variation_boxes = _primary_bboxes(
                find_bboxes(variation, evidence.primary_page, PRODUCT_BBOX_OPTIONS),
                evidence,
            )
            return matched(variation, 90, variation_boxes)

    score = similarity(normalized_expected, normalized_ocr)
    if score >= cfg.fuzzy_match_threshold:
        return matched(extract_match(evidence.text, expected), score)

    return not_found


# =============================================================================
# ALCOHOL CONTENT
# =============================================================================

@dataclass
class _AbvCandidate:
    value: float
    confidence: float
    source: str
    from_word: bool = True

    @property
    def near_miss_confidence(self) -> int:
        return round_half_up(self.confidence) if self.from_word else TEXT_NEAR_MISS_CONFIDENCE


def _values(pattern: re.Pattern, text: str, low: float, high: float, divisor: float = 1.0) -> List[float]:
    values = []
    for match in pattern.finditer(text):
        value = float(match.group(1)) / divisor
        if low <= value <= high:
            values.append(value)
    return values


def alcohol_candidates_from_words(words: List[OCRWord]) -> List[_AbvCandidate]:
    """
    Numbers near alcohol keywords, highest word confidence first.

    Looks at up to ``KEYWORD_WINDOW`` words either side of every word that
    mentions alc/vol/abv/alcohol, which recovers statements the regex pass
    misses when punctuation splits them across words.
    """
    keyword_indices = [
        i for i, w in enumerate(words)
        if any(k in w.text.lower() for k in ALCOHOL_WORD_KEYWORDS)
    ]

    candidates = []
    for idx in keyword_indices:
        start = max(0, idx - KEYWORD_WINDOW)
        end = min(len(words) - 1, idx + KEYWORD_WINDOW)
        for i in range(start, end + 1):
            word = words[i]
            text = word.text
            for value in _values(ABV_ALCOHOL_PATTERN, text, ABV_MIN, ABV_MAX):
                candidates.append(_AbvCandidate(value, word.confidence, "alc/vol"))
            for value in _values(ABV_NOTATION_PATTERN, text, ABV_MIN, ABV_MAX):
                candidates.append(_AbvCandidate(value, word.confidence, "abv"))
            for value in _values(PERCENTAGE_PATTERN, text, ABV_MIN, BARE_PERCENT_MAX):
                candidates.append(_AbvCandidate(value, word.confidence, f"% ({abs(i - idx)} words from keyword)"))
            for value in _values(BARE_NUMBER_PATTERN, text, ABV_MIN, BARE_PERCENT_MAX):
                candidates.append(_AbvCandidate(value, word.confidence, f"number ({abs(i - idx)} words from keyword)"))

    candidates.sort(key=lambda c: -c.confidence)
    return candidates


def alcohol_candidates_from_text(text: str) -> List[_AbvCandidate]:
    """Values from the merged text, most reliable notation first."""
    sources = [
        ("alc/vol", _values(ABV_ALCOHOL_PATTERN, text, ABV_MIN, ABV_MAX)),
        ("abv", _values(ABV_NOTATION_PATTERN, text, ABV_MIN, ABV_MAX)),
        ("proof", _values(PROOF_PATTERN, text, ABV_MIN, ABV_MAX, divisor=2.0)),
        ("%", _values(PERCENTAGE_PATTERN, text, ABV_MIN, BARE_PERCENT_MAX)),
    ]
    return [
        _AbvCandidate(value, 100.0, source, from_word=False)
        for source, values in sources
        for value in values
    ]


def _alcohol_result(
    status: VerificationStatus,
    expected: str,
    found: Optional[float],
    confidence: int,
    message: str,
    bboxes: Optional[List[BoundingBox]] = None,
) -> FieldVerification:
    return FieldVerification(
        field=VerificationField.ALCOHOL_CONTENT,
        status=status,
        expected=expected,
        found=f"{format_number(found)}%" if found is not None else None,
        confidence=confidence,
        message=message,
        bboxes=bboxes,
    )


def match_alcohol_content(
    expected: str,
    evidence: MergedOCRResult,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> FieldVerification:
    """
    Verify alcohol by volume.

    Candidates from the word-level pass and the text pass are pooled. The
    text pass reads "% Alc./Vol.", "% ABV", "Proof" (halved) and bare
    percentages between 0.5 and 20. Any candidate within the exact tolerance
    is a match; otherwise the closest one decides the mismatch.
    """
    cfg = config.alcohol_content
    try:
        expected_num = float(str(expected).replace("%", "").strip())
    except ValueError:
        return _alcohol_result(
            VerificationStatus.NOT_FOUND, expected, None, 0,
            "Invalid alcohol content format",
        )
    expected_label = f"{format_number(expected_num)}%"

    bboxes = _primary_bboxes(
        find_alcohol_content_bboxes(
            expected_num, evidence.primary_page, number_window=cfg.loose_tolerance
        ),
        evidence,
    )

    def result(status, found, confidence, message):
        logger.debug(f"Alcohol {expected_label}: {status.value} (found={found})")
        return _alcohol_result(status, expected_label, found, confidence, message, bboxes)

    # Word candidates come first so an exact hit reports the word's own confidence
    candidates = (
        alcohol_candidates_from_words(list(evidence.words))
        + alcohol_candidates_from_text(evidence.text)
    )
    if candidates:
        for c in candidates:
            if abs(c.value - expected_num) <= cfg.exact_tolerance:
                return result(VerificationStatus.MATCH, c.value, round_half_up(c.confidence),
                              "Alcohol content verified")

        closest = min(candidates, key=lambda c: abs(c.value - expected_num))
        if abs(closest.value - expected_num) <= cfg.loose_tolerance:
            return result(VerificationStatus.MISMATCH, closest.value, closest.near_miss_confidence,
                          "Alcohol content discrepancy detected")

        return result(VerificationStatus.MISMATCH, closest.value, 0,
                      "Alcohol content does not match")

    return _alcohol_result(
        VerificationStatus.NOT_FOUND, expected_label, None, 0, "Alcohol content not detected"
    )


# =============================================================================
# NET CONTENTS
# =============================================================================

def match_net_contents(
    expected: str,
    evidence: MergedOCRResult,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> FieldVerification:
    """Verify net contents, comparing everything in millilitres."""
    tolerance = config.net_contents.volume_tolerance

    parsed = parse_volume(expected)
    if parsed is None:
        return FieldVerification(
            field=VerificationField.NET_CONTENTS,
            status=VerificationStatus.NOT_FOUND,
            expected=expected,
            confidence=0,
            message="Invalid volume format",
        )

    expected_ml = convert_to_ml(*parsed)
    found = find_volumes(evidence.text)

    if not found:
        return FieldVerification(
            field=VerificationField.NET_CONTENTS,
            status=VerificationStatus.NOT_FOUND,
            expected=expected,
            confidence=0,
            message="Net contents not detected",
        )

    page = evidence.primary_page
    boxes = []
    for pattern, _unit in VOLUME_PATTERNS:
        boxes.extend(find_pattern_bboxes(pattern, page))
    bboxes = _primary_bboxes(boxes, evidence)

    for value, unit in found:
        if abs(expected_ml - convert_to_ml(value, unit)) <= expected_ml * tolerance:
            return FieldVerification(
                field=VerificationField.NET_CONTENTS,
                status=VerificationStatus.MATCH,
                expected=expected,
                found=f"{format_number(value)} {unit}",
                confidence=100,
                message="Net contents verified",
                bboxes=bboxes,
            )

    value, unit = min(found, key=lambda v: abs(expected_ml - convert_to_ml(*v)))
    return FieldVerification(
        field=VerificationField.NET_CONTENTS,
        status=VerificationStatus.MISMATCH,
        expected=expected,
        found=f"{format_number(value)} {unit}",
        confidence=0,
        message="Net contents does not match",
        bboxes=bboxes,
    )


# =============================================================================
# GOVERNMENT WARNING
# =============================================================================

def _warning_bboxes(evidence: MergedOCRResult) -> Optional[List[BoundingBox]]:
    boxes: List[BoundingBox] = []
    width, height = evidence.image_width, evidence.image_height

    if evidence.pages_by_angle and width > 0 and height > 0:
        for keyword in WARNING_KEYWORDS:
            boxes.extend(find_bboxes_across_rotations(
                keyword, evidence.pages_by_angle, width, height,
                WARNING_ROTATION_BBOX_OPTIONS,
            ))
    elif evidence.primary_page is not None:
        for keyword in WARNING_KEYWORDS:
            boxes.extend(transform_bboxes(
                find_bboxes(keyword, evidence.primary_page, WARNING_PRIMARY_BBOX_OPTIONS),
                evidence.primary_angle, width, height,
            ))

    boxes = deduplicate_bboxes(merge_bboxes(boxes, WARNING_MERGE_THRESHOLD))
    return boxes or None


def match_government_warning(
    expected: Optional[str],
    evidence: MergedOCRResult,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> FieldVerification:
    """
    Check the mandatory health warning.

    Counts how many required phrases appear in the text. The warning is
    often printed sideways, so boxes are searched on every rotation.
    """
    threshold = config.government_warning.phrase_match_threshold
    expected_label = expected or "GOVERNMENT WARNING"

    normalized_ocr = normalize_text(evidence.text)
    present = [p for p in WARNING_REQUIRED_PHRASES if normalize_text(p) in normalized_ocr]
    ratio = len(present) / len(WARNING_REQUIRED_PHRASES)
    confidence = round_half_up(ratio * 100)
    logger.debug(f"Warning phrases present: {present} ({confidence}%)")

    if not present:
        return FieldVerification(
            field=VerificationField.GOVERNMENT_WARNING,
            status=VerificationStatus.NOT_FOUND,
            expected=expected_label,
            confidence=0,
            message="Required health warning not found",
        )

    bboxes = _warning_bboxes(evidence)

    if ratio >= threshold:
        return FieldVerification(
            field=VerificationField.GOVERNMENT_WARNING,
            status=VerificationStatus.MATCH,
            expected=expected_label,
            found="GOVERNMENT WARNING",
            confidence=confidence,
            message="Required health warning present",
            bboxes=bboxes,
        )

    return FieldVerification(
        field=VerificationField.GOVERNMENT_WARNING,
        status=VerificationStatus.MISMATCH,
        expected=expected_label,
        found="Partial warning text detected",
        confidence=confidence,
        message="Health warning text incomplete or illegible",
        bboxes=bboxes,
    )
