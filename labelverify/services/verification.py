"""Verification service: runs every field matcher and aggregates the outcome."""

from typing import Callable, Dict, List, Optional
from dataclasses import dataclass
from enum import Enum
import logging

from .matching import (
    DEFAULT_MATCHING_CONFIG,
    FieldVerification,
    MatchingConfig,
    VerificationField,
    VerificationStatus,
    match_alcohol_content,
    match_brand_name,
    match_government_warning,
    match_net_contents,
    match_product_type,
)
from .rotation import MergedOCRResult

logger = logging.getLogger(__name__)

FieldMatcher = Callable[[Optional[str], MergedOCRResult, MatchingConfig], FieldVerification]

FIELD_MATCHERS: Dict[VerificationField, FieldMatcher] = {
    VerificationField.BRAND_NAME: match_brand_name,
    VerificationField.PRODUCT_TYPE: match_product_type,
    VerificationField.ALCOHOL_CONTENT: match_alcohol_content,
    VerificationField.NET_CONTENTS: match_net_contents,
    VerificationField.GOVERNMENT_WARNING: match_government_warning,
}

FIELD_LABELS = {
    VerificationField.BRAND_NAME: "Brand name",
    VerificationField.PRODUCT_TYPE: "Product type",
    VerificationField.ALCOHOL_CONTENT: "Alcohol content",
    VerificationField.NET_CONTENTS: "Net contents",
    VerificationField.GOVERNMENT_WARNING: "Government warning",
}


class OverallStatus(str, Enum):
    """Overall verification outcome."""
    PASS = "pass"
    FAIL = "fail"


@dataclass
class LabelExpectations:
    """Values the applicant claims are on the label."""
    brand_name: str
    product_type: str
    alcohol_content: str
    net_contents: Optional[str] = None

    def value_for(self, field: VerificationField) -> Optional[str]:
        if field == VerificationField.GOVERNMENT_WARNING:
            return "GOVERNMENT WARNING"
        return getattr(self, field.value)


@dataclass
class VerificationResult:
    """Complete verification result."""
    overall_status: OverallStatus
    fields: List[FieldVerification]
    raw_text: str
    summary: str = ""

    @property
    def passed_count(self) -> int:
        return sum(1 for f in self.fields if f.status == VerificationStatus.MATCH)

    @property
    def failed_count(self) -> int:
        return len(self.fields) - self.passed_count

    def get(self, field: VerificationField) -> Optional[FieldVerification]:
        for f in self.fields:
            if f.field == field:
                return f
        return None


def determine_overall_status(fields: List[FieldVerification]) -> OverallStatus:
    """Pass only when every required field matched; optional fields never gate."""
    present = {f.field: f for f in fields}
    for required in VerificationField:
        if not required.required:
            continue
        result = present.get(required)
        if result is None or result.status != VerificationStatus.MATCH:
            return OverallStatus.FAIL
    return OverallStatus.PASS


class VerificationService:
    """Compares merged OCR output against expected label values."""

    def __init__(self, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.config = config

    def verify(
        self,
        expectations: LabelExpectations,
        evidence: MergedOCRResult,
        config: Optional[MatchingConfig] = None,
    ) -> VerificationResult:
        """
        Verify every field.

        Net contents is only checked when an expected value was given. Field
        outcomes never raise; they are reported as statuses.

        Args:
            expectations: Claimed label values
            evidence: Merged multi-rotation OCR output
            config: Thresholds for this call; defaults to the service's

        Returns:
            VerificationResult with per-field and overall status
        """
        config = config or self.config
        fields = []
        for field in VerificationField:
            expected = expectations.value_for(field)
            if field == VerificationField.NET_CONTENTS and not expected:
                continue
            fields.append(FIELD_MATCHERS[field](expected, evidence, config))

        overall_status = determine_overall_status(fields)
        summary = self._generate_summary(fields, overall_status)

        logger.info(
            f"Verification {overall_status.value}: "
            + ", ".join(f"{f.field.value}={f.status.value}" for f in fields)
        )
        return VerificationResult(
            overall_status=overall_status,
            fields=fields,
            raw_text=evidence.text,
            summary=summary,
        )

    def _generate_summary(
        self,
        fields: List[FieldVerification],
        overall_status: OverallStatus,
    ) -> str:
        """Generate human-readable summary."""
        if overall_status == OverallStatus.PASS and all(
            f.status == VerificationStatus.MATCH for f in fields
        ):
            return "All fields verified successfully. Label matches application data."

        issues = [
            f"{FIELD_LABELS[f.field]}: {f.message}"
            for f in fields
            if f.status != VerificationStatus.MATCH
        ]
        if overall_status == OverallStatus.PASS:
            header = "Required fields verified. Optional issues:"
        else:
            header = "Verification failed. Issues found:"
        return header + "\n" + "\n".join(issues)
