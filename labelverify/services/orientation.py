"""
Orientation scoring.

Raw word count alone rewards garbage: a sideways label produces lots of short
noise tokens. The score blends word count with a pattern term that rewards
recognizable tokens (words, numbers, percentages, volumes) and penalizes noise.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Sequence

from .ocr_tree import OCRWord


class TokenClass(str, Enum):
    ALPHABETIC = "alphabetic"
    ALPHANUMERIC = "alphanumeric"
    NUMERIC = "numeric"
    PERCENTAGE = "percentage"
    VOLUME = "volume"
    NOISE = "noise"
    OTHER = "other"


VALID_CLASSES = frozenset({
    TokenClass.ALPHABETIC,
    TokenClass.ALPHANUMERIC,
    TokenClass.NUMERIC,
    TokenClass.PERCENTAGE,
    TokenClass.VOLUME,
})

# Real one- and two-letter tokens that turn up on labels
COMMON_SHORT_WORDS: FrozenSet[str] = frozenset({
    "a", "i", "an", "as", "at", "be", "by", "do", "go", "if", "in", "is", "it",
    "me", "my", "no", "of", "on", "or", "so", "to", "up", "us", "we",
    "oz", "fl", "ml", "l", "cl", "co", "st", "ny", "ca", "tx",
})

_EDGE_PUNCT = re.compile(r"^[^\w%]+|[^\w%]+$")
_NUMERIC = re.compile(r"^\d+(?:[.,]\d+)?$")
_PERCENTAGE = re.compile(r"^\d+(?:[.,]\d+)?%$")
_VOLUME = re.compile(r"^\d+(?:[.,]\d+)?(?:ml|cl|l|oz|floz)$", re.IGNORECASE)
_ALPHABETIC = re.compile(r"^[A-Za-z]+(?:['-][A-Za-z]+)*$")
_ALPHANUMERIC = re.compile(r"^[A-Za-z0-9]+$")


@dataclass(frozen=True)
class OrientationPolicy:
    """Heuristic weights for the pattern term of the orientation score."""
    valid_weight: float = 10.0
    noise_weight: float = 5.0
    clean_bonus: float = 5.0
    clean_bonus_ratio: float = 0.7
    clean_bonus_confidence: float = 60.0
    low_confidence_penalty: float = 10.0
    low_confidence_threshold: float = 30.0
    score_floor: float = -10.0
    score_ceiling: float = 20.0
    # Short alphabetic tokens listed here count as words rather than noise
    short_words: FrozenSet[str] = COMMON_SHORT_WORDS


DEFAULT_POLICY = OrientationPolicy()


def classify_token(token: str, policy: OrientationPolicy = DEFAULT_POLICY) -> TokenClass:
    """
    Classify one whitespace-delimited token.

    Alphabetic runs of one or two letters are noise unless the policy lists
    them in ``short_words``.
    """
    if not any(ch.isalnum() for ch in token):
        return TokenClass.NOISE

    stripped = _EDGE_PUNCT.sub("", token)
    if not stripped:
        return TokenClass.NOISE

    if _PERCENTAGE.match(stripped):
        return TokenClass.PERCENTAGE
    if _VOLUME.match(stripped):
        return TokenClass.VOLUME
    if _NUMERIC.match(stripped):
        return TokenClass.NUMERIC
    if _ALPHABETIC.match(stripped):
        if len(stripped) <= 2 and stripped.lower() not in policy.short_words:
            return TokenClass.NOISE
        return TokenClass.ALPHABETIC
    if _ALPHANUMERIC.match(stripped):
        return TokenClass.ALPHANUMERIC
    return TokenClass.OTHER


def pattern_score(
    text: str,
    words: Sequence[OCRWord] = (),
    policy: OrientationPolicy = DEFAULT_POLICY,
    average_confidence: Optional[float] = None,
) -> float:
    """
    Score how much ``text`` looks like real label content.

    Args:
        text: Recognized text of one attempt
        words: Recognized words; their mean confidence gates the bonus/penalty
        policy: Weights and clamp range
        average_confidence: Used when ``words`` is empty

    Returns:
        Pattern term clamped to the policy's range; 0 for empty text
    """
    tokens = text.split()
    if not tokens:
        return 0.0

    classes = [classify_token(t, policy) for t in tokens]
    valid_ratio = sum(1 for c in classes if c in VALID_CLASSES) / len(tokens)
    noise_ratio = sum(1 for c in classes if c == TokenClass.NOISE) / len(tokens)

    if words:
        avg_conf = sum(w.confidence for w in words) / len(words)
    else:
        avg_conf = average_confidence or 0.0

    score = valid_ratio * policy.valid_weight - noise_ratio * policy.noise_weight
    if valid_ratio > policy.clean_bonus_ratio and avg_conf > policy.clean_bonus_confidence:
        score += policy.clean_bonus
    if avg_conf < policy.low_confidence_threshold:
        score -= policy.low_confidence_penalty

    return max(policy.score_floor, min(policy.score_ceiling, score))


def score_attempt(attempt, policy: OrientationPolicy = DEFAULT_POLICY) -> float:
    """
    Rank a rotation attempt.

    ``base = word_count * confidence / 100`` plus the clamped pattern term.
    """
    base = attempt.word_count * (attempt.confidence / 100.0)
    return base + pattern_score(
        attempt.text,
        attempt.words,
        policy=policy,
        average_confidence=attempt.confidence,
    )
