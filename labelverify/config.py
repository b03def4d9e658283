"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache

from .services.matching import (
    MatchingConfig,
    BrandNameConfig,
    ProductTypeConfig,
    AlcoholContentConfig,
    NetContentsConfig,
    GovernmentWarningConfig,
)
from .services.orientation import COMMON_SHORT_WORDS, OrientationPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "Label Verification API"
    debug: bool = False

    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]

    # Upload limits
    max_upload_size_mb: float = 5.0
    allowed_extensions: set = {"png", "jpg", "jpeg", "webp"}
    min_image_dimension: int = 100
    max_image_dimension: int = 10000

    # OCR settings
    ocr_lang: str = "en"
    ocr_model_dir: str = "/home/app/.EasyOCR/model"
    ocr_min_word_confidence: float = 60.0  # Words below this are dropped (0-100)

    # Resource-constrained hosts only try 0 and 90 degrees
    resource_constrained: bool = False
    ocr_timeout_seconds: float = 600.0
    ocr_constrained_timeout_seconds: float = 240.0

    # Verification thresholds (percentages unless noted)
    brand_fuzzy_threshold: float = 80.0
    brand_word_threshold: float = 75.0
    product_fuzzy_threshold: float = 70.0
    abv_exact_tolerance: float = 0.5
    abv_loose_tolerance: float = 2.0
    volume_tolerance: float = 0.02  # Relative
    warning_phrase_threshold: float = 0.6  # Ratio

    # Orientation scoring weights
    orientation_valid_weight: float = 10.0
    orientation_noise_weight: float = 5.0
    orientation_clean_bonus: float = 5.0
    orientation_clean_bonus_ratio: float = 0.7
    orientation_clean_bonus_confidence: float = 60.0
    orientation_low_confidence_penalty: float = 10.0
    orientation_low_confidence_threshold: float = 30.0
    orientation_score_floor: float = -10.0
    orientation_score_ceiling: float = 20.0
    orientation_allow_short_words: bool = True  # False: every 1-2 letter token is noise

    # Responses flag OCR confidence below this
    low_confidence_threshold: float = 70.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def rotation_angles(self) -> tuple[int, ...]:
        """Candidate rotations for this host."""
        return (0, 90) if self.resource_constrained else (0, 90, 180, 270)

    @property
    def ocr_deadline_seconds(self) -> float:
        """Deadline for the whole multi-rotation pipeline."""
        if self.resource_constrained:
            return self.ocr_constrained_timeout_seconds
        return self.ocr_timeout_seconds

    def matching_config(self) -> MatchingConfig:
        """Build the immutable thresholds passed into every verification."""
        return MatchingConfig(
            brand_name=BrandNameConfig(
                fuzzy_match_threshold=self.brand_fuzzy_threshold,
                word_match_threshold=self.brand_word_threshold,
            ),
            product_type=ProductTypeConfig(
                fuzzy_match_threshold=self.product_fuzzy_threshold,
            ),
            alcohol_content=AlcoholContentConfig(
                exact_tolerance=self.abv_exact_tolerance,
                loose_tolerance=self.abv_loose_tolerance,
            ),
            net_contents=NetContentsConfig(
                volume_tolerance=self.volume_tolerance,
            ),
            government_warning=GovernmentWarningConfig(
                phrase_match_threshold=self.warning_phrase_threshold,
            ),
        )

    def orientation_policy(self) -> OrientationPolicy:
        """Build the orientation scoring policy."""
        return OrientationPolicy(
            valid_weight=self.orientation_valid_weight,
            noise_weight=self.orientation_noise_weight,
            clean_bonus=self.orientation_clean_bonus,
            clean_bonus_ratio=self.orientation_clean_bonus_ratio,
            clean_bonus_confidence=self.orientation_clean_bonus_confidence,
            low_confidence_penalty=self.orientation_low_confidence_penalty,
            low_confidence_threshold=self.orientation_low_confidence_threshold,
            score_floor=self.orientation_score_floor,
            score_ceiling=self.orientation_score_ceiling,
            short_words=COMMON_SHORT_WORDS if self.orientation_allow_short_words else frozenset(),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
