"""Typed OCR result tree: page -> block -> paragraph -> line -> word.

Engines produce their own shapes (EasyOCR returns flat detections, Tesseract
returns nested numeric-keyed objects). Everything downstream works on this
tree, usually through the flattened ``iter_lines`` / ``iter_words`` views.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned pixel rectangle in some image frame."""
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center_y(self) -> int:
        return (self.y0 + self.y1) // 2

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]]) -> "BoundingBox":
        """Enclosing box of a polygon, e.g. EasyOCR's 4-point quads."""
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(
            x0=int(round(min(xs))),
            y0=int(round(min(ys))),
            x1=int(round(max(xs))),
            y1=int(round(max(ys))),
        )

    @classmethod
    def enclosing(cls, boxes: Sequence["BoundingBox"]) -> "BoundingBox":
        """Smallest box containing all of ``boxes``."""
        return cls(
            x0=min(b.x0 for b in boxes),
            y0=min(b.y0 for b in boxes),
            x1=max(b.x1 for b in boxes),
            y1=max(b.y1 for b in boxes),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        return cls(
            x0=int(round(data["x0"])),
            y0=int(round(data["y0"])),
            x1=int(round(data["x1"])),
            y1=int(round(data["y1"])),
        )

    def to_dict(self) -> Dict[str, int]:
        return {"x0": self.x0, "y0": self.y0, "x1": self.x1, "y1": self.y1}


@dataclass
class OCRWord:
    """A single recognized word. Confidence is on a 0-100 scale."""
    text: str
    confidence: float
    bbox: BoundingBox


@dataclass
class OCRLine:
    text: str
    confidence: float
    bbox: BoundingBox
    words: List[OCRWord] = field(default_factory=list)


@dataclass
class OCRParagraph:
    bbox: BoundingBox
    lines: List[OCRLine] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


@dataclass
class OCRBlock:
    bbox: BoundingBox
    paragraphs: List[OCRParagraph] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.paragraphs)


@dataclass
class OCRPage:
    """Hierarchical result of one recognition call."""
    text: str
    confidence: float
    blocks: List[OCRBlock] = field(default_factory=list)
    width: int = 0
    height: int = 0

    @classmethod
    def empty(cls, width: int = 0, height: int = 0) -> "OCRPage":
        """Page with no recognized content."""
        return cls(text="", confidence=0.0, blocks=[], width=width, height=height)

    def iter_lines(self) -> Iterator[OCRLine]:
        """Depth-first walk over every line on the page."""
        for block in self.blocks:
            for paragraph in block.paragraphs:
                yield from paragraph.lines

    def iter_words(self) -> Iterator[OCRWord]:
        """Depth-first walk over every word on the page."""
        for line in self.iter_lines():
            yield from line.words

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OCRPage":
        """
        Build a page from a nested dict (JSON from a client-side engine).

        Accepts ``blocks -> paragraphs -> lines -> words`` where each level is a
        list, or a Tesseract.js-style object with numeric string keys.
        """
        blocks = []
        for block_data in _as_list(data.get("blocks")):
            paragraphs = []
            for para_data in _as_list(block_data.get("paragraphs")):
                lines = []
                for line_data in _as_list(para_data.get("lines")):
                    words = [
                        OCRWord(
                            text=str(w.get("text", "")).strip(),
                            confidence=float(w.get("confidence", 0) or 0),
                            bbox=BoundingBox.from_dict(w["bbox"]),
                        )
                        for w in _as_list(line_data.get("words"))
                        if w.get("bbox") and str(w.get("text", "")).strip()
                    ]
                    line_bbox = line_data.get("bbox")
                    if line_bbox is None and not words:
                        continue
                    lines.append(OCRLine(
                        text=str(line_data.get("text") or " ".join(w.text for w in words)).strip(),
                        confidence=float(line_data.get("confidence", 0) or 0),
                        bbox=(
                            BoundingBox.from_dict(line_bbox) if line_bbox
                            else BoundingBox.enclosing([w.bbox for w in words])
                        ),
                        words=words,
                    ))
                if lines:
                    paragraphs.append(OCRParagraph(
                        bbox=BoundingBox.enclosing([ln.bbox for ln in lines]),
                        lines=lines,
                    ))
            if paragraphs:
                blocks.append(OCRBlock(
                    bbox=BoundingBox.enclosing([p.bbox for p in paragraphs]),
                    paragraphs=paragraphs,
                ))

        return cls(
            text=str(data.get("text", "") or ""),
            confidence=float(data.get("confidence", 0) or 0),
            blocks=blocks,
            width=int(data.get("width", 0) or 0),
            height=int(data.get("height", 0) or 0),
        )


def _as_list(value: Any) -> List[Dict[str, Any]]:
    """Children may arrive as a list or as an object keyed "0", "1", ..."""
    if not value:
        return []
    if isinstance(value, dict):
        return [value[k] for k in sorted(value, key=lambda k: int(k))]
    return list(value)


# =============================================================================
# BUILDING A PAGE FROM FLAT DETECTIONS
# =============================================================================

Detection = Tuple[Sequence[Sequence[float]], str, float]


def _split_detection(points, text: str, confidence: float) -> List[OCRWord]:
    """
    Split one multi-word detection into per-word boxes.

    The detection box is divided horizontally in proportion to character
    counts, which is close enough for highlighting.
    """
    box = BoundingBox.from_points(points)
    tokens = text.split()
    if len(tokens) <= 1:
        return [OCRWord(text=text.strip(), confidence=confidence, bbox=box)]

    total_chars = sum(len(t) for t in tokens) + (len(tokens) - 1)
    px_per_char = box.width / max(1, total_chars)
    words = []
    cursor = 0
    for token in tokens:
        x0 = box.x0 + int(round(cursor * px_per_char))
        x1 = box.x0 + int(round((cursor + len(token)) * px_per_char))
        words.append(OCRWord(
            text=token,
            confidence=confidence,
            bbox=BoundingBox(x0=x0, y0=box.y0, x1=max(x1, x0 + 1), y1=box.y1),
        ))
        cursor += len(token) + 1
    return words


def _group_into_lines(words: List[OCRWord]) -> List[List[OCRWord]]:
    """Group words whose vertical centers are within half a line height."""
    if not words:
        return []

    line_h = int(np.median([w.bbox.height for w in words]))
    y_threshold = max(4, line_h // 2)

    sorted_words = sorted(words, key=lambda w: (w.bbox.center_y, w.bbox.x0))
    lines = []
    current = [sorted_words[0]]
    for word in sorted_words[1:]:
        anchor = sum(w.bbox.center_y for w in current) / len(current)
        if abs(word.bbox.center_y - anchor) <= y_threshold:
            current.append(word)
        else:
            lines.append(sorted(current, key=lambda w: w.bbox.x0))
            current = [word]
    lines.append(sorted(current, key=lambda w: w.bbox.x0))
    return lines


def page_from_detections(
    detections: Sequence[Detection],
    width: int = 0,
    height: int = 0,
    paragraph_gap: float = 1.5,
) -> OCRPage:
    """
    Build an ``OCRPage`` from EasyOCR-style ``(points, text, conf)`` tuples.

    Args:
        detections: Output of ``Reader.readtext(..., detail=1)``; confidences 0-1
        width: Width of the recognized image
        height: Height of the recognized image
        paragraph_gap: Vertical gap (in median line heights) that starts a new paragraph

    Returns:
        Page with a single block; confidences rescaled to 0-100
    """
    words: List[OCRWord] = []
    for points, text, conf in detections:
        text = re.sub(r"\s+", " ", text or "").strip()
        if not text:
            continue
        words.extend(_split_detection(points, text, float(conf) * 100.0))

    if not words:
        return OCRPage.empty(width, height)

    lines = []
    for line_words in _group_into_lines(words):
        lines.append(OCRLine(
            text=" ".join(w.text for w in line_words),
            confidence=sum(w.confidence for w in line_words) / len(line_words),
            bbox=BoundingBox.enclosing([w.bbox for w in line_words]),
            words=line_words,
        ))

    median_h = float(np.median([ln.bbox.height for ln in lines])) or 1.0
    paragraphs: List[List[OCRLine]] = [[lines[0]]]
    for prev, line in zip(lines, lines[1:]):
        if line.bbox.y0 - prev.bbox.y1 > paragraph_gap * median_h:
            paragraphs.append([line])
        else:
            paragraphs[-1].append(line)

    para_objs = [
        OCRParagraph(bbox=BoundingBox.enclosing([ln.bbox for ln in group]), lines=group)
        for group in paragraphs
    ]
    block = OCRBlock(
        bbox=BoundingBox.enclosing([p.bbox for p in para_objs]),
        paragraphs=para_objs,
    )
    confidence = sum(w.confidence for w in words) / len(words)
    return OCRPage(
        text=block.text,
        confidence=confidence,
        blocks=[block],
        width=width,
        height=height,
    )
