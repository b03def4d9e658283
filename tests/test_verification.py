"""Tests for verification service."""

import pytest

from labelverify.services.matching import (
    AlcoholContentConfig,
    FieldVerification,
    MatchingConfig,
    VerificationField,
    VerificationStatus,
)
from labelverify.services.rotation import MergedOCRResult
from labelverify.services.verification import (
    FIELD_MATCHERS,
    LabelExpectations,
    OverallStatus,
    VerificationService,
    determine_overall_status,
)


WARNING_TEXT = (
    "GOVERNMENT WARNING: (1) ACCORDING TO THE SURGEON GENERAL, WOMEN SHOULD NOT "
    "DRINK ALCOHOLIC BEVERAGES DURING PREGNANCY BECAUSE OF THE RISK OF BIRTH "
    "DEFECTS. (2) CONSUMPTION OF ALCOHOLIC BEVERAGES IMPAIRS YOUR ABILITY TO "
    "DRIVE A CAR OR OPERATE MACHINERY, AND MAY CAUSE HEALTH PROBLEMS."
)

LABEL_TEXT = (
    "OLD TOM DISTILLERY\n"
    "Kentucky Straight Bourbon Whiskey\n"
    "45% ALC/VOL\n"
    "750 mL\n\n"
    + WARNING_TEXT
)


@pytest.fixture
def service():
    """Create verification service instance."""
    return VerificationService()


@pytest.fixture
def expectations():
    return LabelExpectations(
        brand_name="OLD TOM DISTILLERY",
        product_type="Kentucky Straight Bourbon Whiskey",
        alcohol_content="45%",
        net_contents="750 mL",
    )


def make_evidence(text: str = LABEL_TEXT) -> MergedOCRResult:
    """Helper to create text-only OCR evidence for testing."""
    return MergedOCRResult(
        text=text,
        words=[],
        confidence=90.0 if text else 0.0,
        primary_angle=0,
        pages_by_angle={},
        image_width=400,
        image_height=600,
    )


def make_field(field: VerificationField, status: VerificationStatus) -> FieldVerification:
    return FieldVerification(field=field, status=status, expected="x")


class TestOverallVerification:
    """Test overall verification results."""

    def test_all_pass(self, service, expectations):
        """Test when all fields pass."""
        result = service.verify(expectations, make_evidence())

        assert result.overall_status == OverallStatus.PASS
        assert len(result.fields) == 5
        assert result.passed_count == 5
        assert result.failed_count == 0
        assert result.summary == "All fields verified successfully. Label matches application data."
        assert result.raw_text == LABEL_TEXT

    def test_wrong_alcohol_fails(self, service, expectations):
        """Test that a required field mismatch fails the label."""
        result = service.verify(expectations, make_evidence(LABEL_TEXT.replace("45%", "40%")))

        assert result.overall_status == OverallStatus.FAIL
        assert result.get(VerificationField.ALCOHOL_CONTENT).status == VerificationStatus.MISMATCH
        assert result.summary.startswith("Verification failed. Issues found:")
        assert "Alcohol content:" in result.summary

    def test_optional_mismatch_does_not_gate(self, service, expectations):
        """Test that net contents and warning never decide the overall status."""
        expectations.net_contents = "1 L"
        text = LABEL_TEXT.replace(WARNING_TEXT, "")
        result = service.verify(expectations, make_evidence(text))

        assert result.overall_status == OverallStatus.PASS
        assert result.get(VerificationField.NET_CONTENTS).status == VerificationStatus.MISMATCH
        assert result.get(VerificationField.GOVERNMENT_WARNING).status == VerificationStatus.NOT_FOUND
        assert result.summary.startswith("Required fields verified. Optional issues:")
        assert "Net contents: Net contents does not match" in result.summary

    def test_empty_text(self, service, expectations):
        """Test with no recognized text at all."""
        result = service.verify(expectations, make_evidence(""))

        assert result.overall_status == OverallStatus.FAIL
        assert all(f.status == VerificationStatus.NOT_FOUND for f in result.fields)


class TestFieldSelection:
    """Test which fields are verified."""

    def test_net_contents_skipped_when_not_provided(self, service, expectations):
        """Test that net contents is only checked when a value was given."""
        expectations.net_contents = None
        result = service.verify(expectations, make_evidence())

        assert len(result.fields) == 4
        assert result.get(VerificationField.NET_CONTENTS) is None

    def test_net_contents_skipped_when_blank(self, service, expectations):
        expectations.net_contents = ""
        result = service.verify(expectations, make_evidence())
        assert result.get(VerificationField.NET_CONTENTS) is None

    def test_field_order(self, service, expectations):
        result = service.verify(expectations, make_evidence())
        assert [f.field for f in result.fields] == list(VerificationField)

    def test_every_field_has_a_matcher(self):
        assert set(FIELD_MATCHERS) == set(VerificationField)


class TestDetermineOverallStatus:
    """Test the pass/fail rule."""

    def test_required_fields_decide(self):
        fields = [
            make_field(VerificationField.BRAND_NAME, VerificationStatus.MATCH),
            make_field(VerificationField.PRODUCT_TYPE, VerificationStatus.MATCH),
            make_field(VerificationField.ALCOHOL_CONTENT, VerificationStatus.MATCH),
            make_field(VerificationField.GOVERNMENT_WARNING, VerificationStatus.MISMATCH),
        ]
        assert determine_overall_status(fields) == OverallStatus.PASS

    @pytest.mark.parametrize("status", [VerificationStatus.MISMATCH, VerificationStatus.NOT_FOUND])
    def test_any_required_failure_fails(self, status):
        fields = [
            make_field(VerificationField.BRAND_NAME, VerificationStatus.MATCH),
            make_field(VerificationField.PRODUCT_TYPE, status),
            make_field(VerificationField.ALCOHOL_CONTENT, VerificationStatus.MATCH),
        ]
        assert determine_overall_status(fields) == OverallStatus.FAIL

    def test_missing_required_field_fails(self):
        fields = [
            make_field(VerificationField.BRAND_NAME, VerificationStatus.MATCH),
            make_field(VerificationField.PRODUCT_TYPE, VerificationStatus.MATCH),
        ]
        assert determine_overall_status(fields) == OverallStatus.FAIL

    def test_required_flags(self):
        assert VerificationField.BRAND_NAME.required
        assert not VerificationField.NET_CONTENTS.required
        assert not VerificationField.GOVERNMENT_WARNING.required


class TestMatchingConfig:
    """Test per-call threshold overrides."""

    def test_stricter_alcohol_tolerance(self, service, expectations):
        """Test that a config passed to verify() replaces the service default."""
        evidence = make_evidence(LABEL_TEXT.replace("45%", "45.3%"))
        strict = MatchingConfig(alcohol_content=AlcoholContentConfig(exact_tolerance=0.1))

        assert service.verify(expectations, evidence).overall_status == OverallStatus.PASS
        assert service.verify(expectations, evidence, strict).overall_status == OverallStatus.FAIL


class TestEdgeCases:
    """Test edge cases."""

    def test_unicode_in_brand(self, service, expectations):
        """Test unicode characters in brand name."""
        expectations.brand_name = "Château Margaux"
        result = service.verify(expectations, make_evidence("CHÂTEAU MARGAUX\n" + LABEL_TEXT))

        assert result.get(VerificationField.BRAND_NAME).status == VerificationStatus.MATCH

    def test_punctuation_difference(self, service, expectations):
        """Test handling of punctuation differences."""
        expectations.brand_name = "Stone's Throw"
        result = service.verify(expectations, make_evidence("STONES THROW\n" + LABEL_TEXT))

        assert result.get(VerificationField.BRAND_NAME).status == VerificationStatus.MATCH
