"""
Multi-rotation OCR.

Runs the engine once per candidate angle, picks the primary orientation with
the orientation scorer and merges every attempt into one result. All
attempts are kept: text printed sideways is often only legible at a
non-primary angle.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Optional, Sequence, TypeVar

import numpy as np

from .ocr import OCREngine, OCRError, OCRFailure, OCRTimeout
from .ocr_tree import OCRPage, OCRWord
from .orientation import DEFAULT_POLICY, OrientationPolicy, score_attempt
from .preprocessing import ImageGeometry, ImageInput

logger = logging.getLogger(__name__)

T = TypeVar("T")

FULL_ANGLES = (0, 90, 180, 270)
CONSTRAINED_ANGLES = (0, 90)


@dataclass
class RotationAttempt:
    """One OCR pass against the image rotated by ``angle`` (counter-clockwise)."""
    angle: int
    text: str
    words: List[OCRWord]
    confidence: float  # 0-100
    page: OCRPage
    duration_ms: float = 0.0
    score: Optional[float] = None

    @property
    def word_count(self) -> int:
        return len(self.words)


@dataclass
class MergedOCRResult:
    """
    All rotation attempts folded into one result.

    ``image_width``/``image_height`` describe the un-rotated source image and
    are what every rotated box is transformed back against.
    """
    text: str
    words: List[OCRWord]
    confidence: float
    primary_angle: int
    pages_by_angle: Dict[int, OCRPage]
    image_width: int
    image_height: int
    attempts: List[RotationAttempt] = field(default_factory=list)

    @property
    def primary_page(self) -> Optional[OCRPage]:
        return self.pages_by_angle.get(self.primary_angle)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @property
    def angles(self) -> List[int]:
        return list(self.pages_by_angle)


def select_primary(
    attempts: Sequence[RotationAttempt],
    policy: OrientationPolicy = DEFAULT_POLICY,
) -> RotationAttempt:
    """
    Highest orientation score wins; ties go to the higher confidence, then
    to the earlier angle.
    """
    if not attempts:
        raise ValueError("No rotation attempts to choose from")
    for attempt in attempts:
        attempt.score = score_attempt(attempt, policy)
    return max(attempts, key=lambda a: (a.score, a.confidence))


def merge_attempts(
    attempts: Sequence[RotationAttempt],
    primary_angle: int,
    image_width: int,
    image_height: int,
) -> MergedOCRResult:
    """Concatenate texts (blank-line separated) and words of every attempt."""
    texts = [a.text.strip() for a in attempts if a.text.strip()]
    words = [w for a in attempts for w in a.words]
    total_words = sum(a.word_count for a in attempts)

    if total_words == 0:
        confidence = 0.0
    else:
        confidence = sum(a.confidence for a in attempts) / len(attempts)

    return MergedOCRResult(
        text="\n\n".join(texts),
        words=words,
        confidence=confidence,
        primary_angle=primary_angle,
        pages_by_angle={a.angle: a.page for a in attempts},
        image_width=image_width,
        image_height=image_height,
        attempts=list(attempts),
    )


class RotationOrchestrator:
    """
    Sequential multi-angle OCR against a single engine handle.

    The engine handles one recognition at a time, so rotations are never run
    concurrently. Each recognition runs in a worker thread to keep the event
    loop free.
    """

    def __init__(
        self,
        engine: OCREngine,
        geometry: Optional[ImageGeometry] = None,
        angles: Sequence[int] = FULL_ANGLES,
        min_word_confidence: float = 60.0,
        policy: OrientationPolicy = DEFAULT_POLICY,
    ):
        self.engine = engine
        self.geometry = geometry or ImageGeometry()
        self.angles = tuple(angles)
        self.min_word_confidence = min_word_confidence
        self.policy = policy

    async def process_single_rotation(self, image: ImageInput, angle: int) -> RotationAttempt:
        """
        Rotate, recognize and confidence-filter one attempt.

        Raises:
            OCRFailure: If the engine fails
        """
        rotated = self.geometry.rotate(image, angle)

        start = time.perf_counter()
        try:
            page = await asyncio.to_thread(self.engine.recognize, rotated)
        except OCRError:
            raise
        except Exception as e:
            raise OCRFailure(f"Recognition failed at {angle}°: {e}") from e
        duration_ms = (time.perf_counter() - start) * 1000

        words = [w for w in page.iter_words() if w.confidence >= self.min_word_confidence]
        if words:
            confidence = page.confidence or sum(w.confidence for w in words) / len(words)
        else:
            confidence = 0.0

        logger.info(
            f"Rotation {angle}°: {len(words)} words, "
            f"confidence {confidence:.1f}%, {duration_ms:.0f}ms"
        )
        return RotationAttempt(
            angle=angle,
            text=page.text,
            words=words,
            confidence=confidence,
            page=page,
            duration_ms=duration_ms,
        )

    async def process_with_rotations(self, image: ImageInput) -> MergedOCRResult:
        """
        OCR every candidate angle and merge the attempts.

        An image with no recognizable text is not an error: the result has
        empty text and confidence 0.

        Raises:
            OCRFailure: If the engine fails on any angle
        """
        start = time.perf_counter()
        source: np.ndarray = self.geometry.load_image(image)
        width, height = self.geometry.dimensions(source)

        attempts = []
        for angle in self.angles:
            attempts.append(await self.process_single_rotation(source, angle))

        primary = select_primary(attempts, self.policy)
        merged = merge_attempts(attempts, primary.angle, width, height)

        scores = ", ".join(f"{a.angle}°={a.score:.1f}" for a in attempts)
        logger.info(
            f"Primary orientation {primary.angle}° ({scores}); "
            f"{len(merged.words)} words total in {(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return merged


async def run_with_deadline(awaitable: Awaitable[T], seconds: float) -> T:
    """
    Await ``awaitable`` with a deadline.

    On expiry the awaiting coroutine is cancelled, but a recognition already
    running in a worker thread cannot be interrupted; it runs to completion
    in the background and its result is discarded.

    Raises:
        OCRTimeout: If the deadline passes
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.error(f"OCR deadline of {seconds:.0f}s exceeded")
        raise OCRTimeout(f"OCR processing exceeded {seconds:.0f}s") from e
