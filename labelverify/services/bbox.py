"""
Bounding box resolution for matched label text.

Finds where a piece of expected text sits in an OCR page, ranks the
candidates, merges word fragments into phrase boxes and maps boxes found on a
rotated image back into the original image's coordinate frame.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Union

from .ocr_tree import BoundingBox, OCRPage

logger = logging.getLogger(__name__)

SUPPORTED_ANGLES = (0, 90, 180, 270)

ALCOHOL_KEYWORDS = ("alc", "vol", "abv", "alcohol", "proof")

_PERCENT_IN_WORD = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_BARE_NUMBER = re.compile(r"^(\d+(?:\.\d+)?)$")


def normalize_text(text: str) -> str:
    """Lowercase, collapse whitespace, drop punctuation other than ``%``."""
    text = re.sub(r"\s+", " ", text.lower().strip())
    text = re.sub(r"[^\w\s.%]", "", text)
    return text.replace(".", "")


@dataclass(frozen=True)
class BBoxSearchOptions:
    """
    Ranking knobs for ``find_bboxes``.

    Attributes:
        min_confidence: Words below this (0-100) are ignored by word strategies
        prefer_larger: Rank bigger boxes first among equal scores (headline text)
        prefer_top: Rank higher boxes first among equal scores
        max_results: Cap on returned boxes; None keeps all
    """
    min_confidence: float = 70.0
    prefer_larger: bool = False
    prefer_top: bool = False
    max_results: Optional[int] = None


@dataclass
class _Candidate:
    bbox: BoundingBox
    score: int
    confidence: float


def find_bboxes(
    search_text: str,
    page: Optional[OCRPage],
    options: BBoxSearchOptions = BBoxSearchOptions(),
) -> List[BoundingBox]:
    """
    Find boxes on ``page`` for ``search_text``.

    Per line, the first strategy that hits wins:
        - line equals the search text (100)
        - line contains a multi-word search text (90)
        - a word equals a search token (80)
        - a word contains a search token of 5+ characters (60)

    Tokens shorter than 3 characters are never matched on their own.

    Returns:
        Boxes ordered by score, confidence, then size/position as requested
    """
    if page is None:
        return []

    normalized_search = normalize_text(search_text)
    if not normalized_search:
        return []
    search_words = normalized_search.split()

    candidates: List[_Candidate] = []
    for line in page.iter_lines():
        line_text = normalize_text(line.text)

        if line_text == normalized_search:
            candidates.append(_Candidate(line.bbox, 100, line.confidence))
            continue

        if len(search_words) > 1 and normalized_search in line_text:
            candidates.append(_Candidate(line.bbox, 90, line.confidence))
            continue

        for word in line.words:
            if word.confidence < options.min_confidence:
                continue
            word_text = normalize_text(word.text)
            for search_word in search_words:
                if len(search_word) < 3:
                    continue
                if word_text == search_word:
                    candidates.append(_Candidate(word.bbox, 80, word.confidence))
                    break
                if len(search_word) >= 5 and search_word in word_text:
                    candidates.append(_Candidate(word.bbox, 60, word.confidence))
                    break

    candidates.sort(key=lambda c: (
        -c.score,
        -c.confidence,
        -c.bbox.area if options.prefer_larger else 0,
        c.bbox.y0 if options.prefer_top else 0,
    ))

    if options.max_results is not None:
        candidates = candidates[:options.max_results]
    return [c.bbox for c in candidates]


def find_pattern_bboxes(
    pattern: Union[str, Pattern[str]],
    page: Optional[OCRPage],
) -> List[BoundingBox]:
    """
    Boxes of words matching a regex.

    When no single word on a line matches but the whole line does (e.g. a
    volume split into "750" and "mL"), the line box is returned instead.
    """
    if page is None:
        return []
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern

    boxes = []
    for line in page.iter_lines():
        word_hits = [w.bbox for w in line.words if regex.search(w.text)]
        if word_hits:
            boxes.extend(word_hits)
        elif regex.search(line.text):
            boxes.append(line.bbox)
    return boxes


def find_alcohol_content_bboxes(
    expected_value: float,
    page: Optional[OCRPage],
    number_window: float = 2.0,
) -> List[BoundingBox]:
    """
    Boxes for alcohol statements such as "45% ALC/VOL" or "90 PROOF".

    Only lines carrying an alcohol keyword contribute. On those lines the
    keyword boxes are returned together with numbers within ``number_window``
    of the expected value.
    """
    if page is None:
        return []

    boxes = []
    for line in page.iter_lines():
        has_keyword = False
        line_boxes = []
        for word in line.words:
            normalized = normalize_text(word.text)
            if any(keyword in normalized for keyword in ALCOHOL_KEYWORDS):
                has_keyword = True
                line_boxes.append(word.bbox)

            match = _PERCENT_IN_WORD.search(word.text) or _BARE_NUMBER.match(word.text)
            if match and abs(float(match.group(1)) - expected_value) <= number_window:
                line_boxes.append(word.bbox)

        if has_keyword:
            boxes.extend(line_boxes)
    return boxes


# =============================================================================
# MERGING
# =============================================================================

def _merge_pass(boxes: List[BoundingBox], threshold: int) -> List[BoundingBox]:
    ordered = sorted(boxes, key=lambda b: (b.y0, b.x0))
    merged = []
    current = ordered[0]
    for box in ordered[1:]:
        same_line = abs(box.y0 - current.y0) <= threshold
        adjacent = box.x0 - current.x1 <= threshold
        if same_line and adjacent:
            current = BoundingBox.enclosing([current, box])
        else:
            merged.append(current)
            current = box
    merged.append(current)
    return merged


def merge_bboxes(boxes: Iterable[BoundingBox], threshold: int = 10) -> List[BoundingBox]:
    """
    Merge boxes on the same visual line that are horizontally adjacent.

    Passes repeat until nothing merges, so merging a merged list is a no-op.

    Args:
        boxes: Boxes in one coordinate frame
        threshold: Max top-edge difference and max horizontal gap, in pixels

    Returns:
        Merged boxes sorted top-to-bottom, left-to-right
    """
    result = list(boxes)
    if len(result) <= 1:
        return result

    while True:
        merged = _merge_pass(result, threshold)
        if len(merged) == len(result):
            return merged
        result = merged


def deduplicate_bboxes(boxes: Iterable[BoundingBox]) -> List[BoundingBox]:
    """Drop boxes with identical coordinates, keeping first occurrences."""
    return list(dict.fromkeys(boxes))


# =============================================================================
# COORDINATE TRANSFORMS
# =============================================================================
# Rotations are counter-clockwise with the canvas expanded, so 90 and 270
# produce an H x W canvas. W and H are always the un-rotated image's size.

def transform_bbox_to_original(
    bbox: BoundingBox,
    angle: int,
    image_width: int,
    image_height: int,
) -> BoundingBox:
    """Map a box found on the image rotated by ``angle`` back to the original frame."""
    x0, y0, x1, y1 = bbox.x0, bbox.y0, bbox.x1, bbox.y1
    w, h = image_width, image_height

    if angle == 0:
        return bbox
    if angle == 90:
        return BoundingBox(x0=w - y1, y0=x0, x1=w - y0, y1=x1)
    if angle == 180:
        return BoundingBox(x0=w - x1, y0=h - y1, x1=w - x0, y1=h - y0)
    if angle == 270:
        return BoundingBox(x0=y0, y0=h - x1, x1=y1, y1=h - x0)
    raise ValueError(f"Unsupported rotation angle: {angle}")


def transform_bbox_to_rotated(
    bbox: BoundingBox,
    angle: int,
    image_width: int,
    image_height: int,
) -> BoundingBox:
    """Map a box in the original frame onto the image rotated by ``angle``."""
    x0, y0, x1, y1 = bbox.x0, bbox.y0, bbox.x1, bbox.y1
    w, h = image_width, image_height

    if angle == 0:
        return bbox
    if angle == 90:
        return BoundingBox(x0=y0, y0=w - x1, x1=y1, y1=w - x0)
    if angle == 180:
        return BoundingBox(x0=w - x1, y0=h - y1, x1=w - x0, y1=h - y0)
    if angle == 270:
        return BoundingBox(x0=h - y1, y0=x0, x1=h - y0, y1=x1)
    raise ValueError(f"Unsupported rotation angle: {angle}")


def transform_bboxes(
    boxes: Iterable[BoundingBox],
    angle: int,
    image_width: int,
    image_height: int,
) -> List[BoundingBox]:
    """Back-transform every box found at ``angle``."""
    return [
        transform_bbox_to_original(b, angle, image_width, image_height)
        for b in boxes
    ]


def find_bboxes_across_rotations(
    search_text: str,
    pages_by_angle: Dict[int, OCRPage],
    image_width: int,
    image_height: int,
    options: BBoxSearchOptions = BBoxSearchOptions(),
    merge_threshold: Optional[int] = None,
) -> List[BoundingBox]:
    """
    Search every rotation's page and return hits in original coordinates.

    Text printed sideways (warnings especially) is only legible on one of
    the rotated passes, so all of them are searched.

    Args:
        search_text: Text to locate
        pages_by_angle: Raw page per attempted angle
        image_width: Un-rotated image width
        image_height: Un-rotated image height
        options: Passed to ``find_bboxes`` for each page
        merge_threshold: Merge the combined hits with this threshold when given

    Returns:
        Deduplicated boxes in the original image frame
    """
    found: List[BoundingBox] = []
    for angle, page in pages_by_angle.items():
        if page is None or not page.blocks:
            continue
        hits = find_bboxes(search_text, page, options)
        if hits:
            logger.debug(f"'{search_text}': {len(hits)} box(es) at {angle}°")
        found.extend(transform_bboxes(hits, angle, image_width, image_height))

    if merge_threshold is not None:
        found = merge_bboxes(found, merge_threshold)
    return deduplicate_bboxes(found)
