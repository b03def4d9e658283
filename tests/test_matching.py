"""Tests for the per-field matchers."""

import pytest

from labelverify.services.matching import (
    VerificationField,
    VerificationStatus,
    get_product_type_variations,
    match_alcohol_content,
    match_brand_name,
    match_government_warning,
    match_net_contents,
    match_product_type,
    parse_volume,
    similarity,
)
from labelverify.services.ocr_tree import (
    BoundingBox,
    OCRBlock,
    OCRLine,
    OCRPage,
    OCRParagraph,
    OCRWord,
)
from labelverify.services.rotation import MergedOCRResult


FULL_WARNING = (
    "GOVERNMENT WARNING: (1) ACCORDING TO THE SURGEON GENERAL, WOMEN SHOULD NOT "
    "DRINK ALCOHOLIC BEVERAGES DURING PREGNANCY BECAUSE OF THE RISK OF BIRTH "
    "DEFECTS. (2) CONSUMPTION OF ALCOHOLIC BEVERAGES IMPAIRS YOUR ABILITY TO "
    "DRIVE A CAR OR OPERATE MACHINERY, AND MAY CAUSE HEALTH PROBLEMS."
)


def make_line(text, x0=0, y0=0, height=20, confidence=90.0):
    words = []
    x = x0
    for token in text.split():
        width = len(token) * (height // 2)
        words.append(OCRWord(token, confidence, BoundingBox(x, y0, x + width, y0 + height)))
        x += width + height // 2
    return OCRLine(text, confidence, BoundingBox.enclosing([w.bbox for w in words]), words)


def make_page(*lines):
    paragraph = OCRParagraph(BoundingBox.enclosing([ln.bbox for ln in lines]), list(lines))
    return OCRPage(
        text="\n".join(ln.text for ln in lines),
        confidence=90.0,
        blocks=[OCRBlock(paragraph.bbox, [paragraph])],
    )


def make_evidence(text, words=None, pages=None, primary_angle=0, width=400, height=600):
    """Merged OCR evidence; no words means the text-level matchers are used."""
    return MergedOCRResult(
        text=text,
        words=words or [],
        confidence=90.0 if text else 0.0,
        primary_angle=primary_angle,
        pages_by_angle=pages or {},
        image_width=width,
        image_height=height,
    )


class TestHelpers:
    """Test shared matcher helpers."""

    def test_similarity(self):
        assert similarity("mezcal", "mezcai") == 83
        assert similarity("same", "same") == 100
        assert similarity("", "") == 0

    @pytest.mark.parametrize("value,expected", [
        ("750 mL", (750.0, "mL")),
        ("750ml", (750.0, "mL")),
        ("12 fl oz", (12.0, "oz")),
        ("12 FL. OZ.", (12.0, "oz")),
        ("1.75 L", (1.75, "L")),
        ("1 liter", (1.0, "L")),
        ("750 gallons", None),
        ("large", None),
    ])
    def test_parse_volume(self, value, expected):
        assert parse_volume(value) == expected

    def test_product_type_variations(self):
        assert "kentucky bourbon" in get_product_type_variations("Kentucky Straight Bourbon Whiskey")
        assert get_product_type_variations("Mezcal") == ["mezcal"]


class TestBrandName:
    """Test brand name matching."""

    def test_exact_containment(self):
        evidence = make_evidence("ORPHEUS BREWING\nDON'T LOOK BACK")
        result = match_brand_name("Orpheus Brewing", evidence)

        assert result.field == VerificationField.BRAND_NAME
        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 100
        assert result.found == "ORPHEUS"

    def test_fuzzy_match(self):
        result = match_brand_name("OLD TOM DISTILERY", make_evidence("OLD TOM DISTILLERY"))

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 94

    def test_word_match(self):
        evidence = make_evidence("DISTILLERY OLD TOM kentucky straight bourbon whiskey 45% alc/vol")
        result = match_brand_name("Old Tom Distillery", evidence)

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 100
        assert result.found == "old tom distillery"

    def test_not_found(self):
        result = match_brand_name("Stone Brewing", make_evidence("ORPHEUS BREWING SOUR ALE"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.confidence == 0
        assert result.message == "Brand name not detected"

    def test_empty_text(self):
        assert match_brand_name("Orpheus", make_evidence("")).status == VerificationStatus.NOT_FOUND

    def test_bboxes_prefer_headline(self):
        headline = make_line("ORPHEUS BREWING", 0, 0, height=60, confidence=95.0)
        small = make_line("ORPHEUS BREWING COMPANY ATLANTA", 0, 500, height=12)
        evidence = make_evidence(
            "ORPHEUS BREWING\nORPHEUS BREWING COMPANY ATLANTA",
            pages={0: make_page(headline, small)},
        )

        result = match_brand_name("Orpheus Brewing", evidence)
        assert result.bboxes[0] == headline.bbox

    def test_bboxes_in_original_frame(self):
        sideways = OCRLine(
            "OLD TOM", 90.0, BoundingBox(10, 10, 50, 30),
            [OCRWord("OLD", 90.0, BoundingBox(10, 10, 28, 30)),
             OCRWord("TOM", 90.0, BoundingBox(32, 10, 50, 30))],
        )
        evidence = make_evidence("OLD TOM", pages={90: make_page(sideways)}, primary_angle=90)

        result = match_brand_name("Old Tom", evidence)
        assert result.bboxes == [BoundingBox(370, 10, 390, 50)]


class TestProductType:
    """Test product type matching."""

    def test_exact_containment(self):
        evidence = make_evidence("OLD TOM\nKentucky Straight Bourbon Whiskey")
        result = match_product_type("Kentucky Straight Bourbon Whiskey", evidence)

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 100

    def test_abbreviated_on_label(self):
        result = match_product_type("India Pale Ale", make_evidence("India Pale"))

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 95

    def test_variation(self):
        line = make_line("BOURBON", 0, 100)
        evidence = make_evidence("OLD TOM bourbon 45% alc/vol", pages={0: make_page(line)})
        result = match_product_type("Kentucky Straight Bourbon Whiskey", evidence)

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 90
        assert result.found == "bourbon"
        assert result.bboxes == [line.bbox]

    def test_fuzzy(self):
        result = match_product_type("Mezcal", make_evidence("Mezcai"))

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 83

    def test_not_found(self):
        result = match_product_type("Gin", make_evidence("ORPHEUS BREWING SOUR ALE"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.message == "Product type not detected"

    def test_empty_text_is_not_a_match(self):
        assert match_product_type("Vodka", make_evidence("")).status == VerificationStatus.NOT_FOUND


class TestAlcoholContent:
    """Test alcohol by volume matching."""

    def test_within_exact_tolerance(self):
        result = match_alcohol_content("4.0", make_evidence("4.2% ALC/VOL"))

        assert result.status == VerificationStatus.MATCH
        assert result.expected == "4%"
        assert result.found == "4.2%"
        assert result.confidence == 100

    def test_within_loose_tolerance(self):
        result = match_alcohol_content("4.0", make_evidence("5.5% ALC/VOL"))

        assert result.status == VerificationStatus.MISMATCH
        assert result.found == "5.5%"
        assert result.confidence == 50

    def test_outside_loose_tolerance(self):
        result = match_alcohol_content("4.0", make_evidence("9.5% ALC/VOL"))

        assert result.status == VerificationStatus.MISMATCH
        assert result.found == "9.5%"
        assert result.confidence == 0

    def test_proof(self):
        result = match_alcohol_content("45%", make_evidence("OLD TOM 90 PROOF"))

        assert result.status == VerificationStatus.MATCH
        assert result.found == "45%"

    def test_abv_notation(self):
        result = match_alcohol_content("12.5", make_evidence("12.5% ABV"))
        assert result.status == VerificationStatus.MATCH

    def test_high_bare_percentage_ignored(self):
        result = match_alcohol_content("40", make_evidence("Contains 40% juice"))
        assert result.status == VerificationStatus.NOT_FOUND

    def test_not_found(self):
        result = match_alcohol_content("4.0", make_evidence("ORPHEUS BREWING"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.found is None

    def test_invalid_expected(self):
        result = match_alcohol_content("abc", make_evidence("4.2% ALC/VOL"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.message == "Invalid alcohol content format"

    def test_word_level_uses_word_confidence(self):
        words = make_line("4.2% ALC/VOL", confidence=88.0).words
        result = match_alcohol_content("4.0", make_evidence("4.2% ALC/VOL", words=words))

        assert result.status == VerificationStatus.MATCH
        assert result.confidence == 88

    def test_word_level_split_statement(self):
        words = make_line("5.0 % ALC BY VOL", confidence=90.0).words
        result = match_alcohol_content("5", make_evidence("5.0 % ALC BY VOL", words=words))

        assert result.status == VerificationStatus.MATCH
        assert result.found == "5%"

    def test_stray_number_near_keyword_does_not_hide_statement(self):
        """A volume figure beside ALC/VOL must not outvote the real strength."""
        text = "OLD TOM DISTILLERY\n45% ALC/VOL 12 FL OZ"
        words = make_line("45% ALC/VOL 12 FL OZ", confidence=90.0).words
        result = match_alcohol_content("45", make_evidence(text, words=words))

        assert result.status == VerificationStatus.MATCH
        assert result.found == "45%"
        assert result.confidence == 100

    def test_mismatch_reports_closest_candidate(self):
        text = "40% ALC/VOL 1.75 L"
        words = make_line(text, confidence=90.0).words
        result = match_alcohol_content("45", make_evidence(text, words=words))

        assert result.status == VerificationStatus.MISMATCH
        assert result.found == "40%"
        assert result.confidence == 0

    def test_text_near_miss_with_word_candidates(self):
        text = "44% ALC/VOL 12 FL OZ"
        words = make_line(text, confidence=90.0).words
        result = match_alcohol_content("45.5", make_evidence(text, words=words))

        assert result.status == VerificationStatus.MISMATCH
        assert result.found == "44%"
        assert result.confidence == 50

    def test_bboxes(self):
        line = make_line("45% ALC/VOL", 0, 0)
        evidence = make_evidence("45% ALC/VOL", pages={0: make_page(line)})

        assert match_alcohol_content("45", evidence).bboxes == [line.bbox]

    @staticmethod
    def _rank(result):
        if result.status == VerificationStatus.MATCH:
            return 0
        if result.confidence > 0:
            return 1
        return 2

    def test_outcome_worsens_with_distance(self):
        ranks = [
            self._rank(match_alcohol_content("4.0", make_evidence(f"{v}% ALC/VOL")))
            for v in (4.0, 4.3, 4.5, 4.6, 5.9, 6.0, 6.1, 8.0)
        ]
        assert ranks == sorted(ranks)
        assert ranks[0] == 0 and ranks[-1] == 2


class TestNetContents:
    """Test net contents matching across units."""

    def test_ounces_to_millilitres(self):
        result = match_net_contents("750 mL", make_evidence("25.36 oz"))

        assert result.status == VerificationStatus.MATCH
        assert result.found == "25.36 oz"
        assert result.confidence == 100

    def test_same_unit_without_space(self):
        result = match_net_contents("750 mL", make_evidence("750ML"))

        assert result.status == VerificationStatus.MATCH
        assert result.found == "750 mL"

    def test_litres(self):
        assert match_net_contents("1.75 L", make_evidence("1750 ml")).status == VerificationStatus.MATCH

    def test_fluid_ounces(self):
        assert match_net_contents("12 fl oz", make_evidence("12 FL OZ")).status == VerificationStatus.MATCH

    def test_mismatch_reports_closest(self):
        result = match_net_contents("750 mL", make_evidence("375 mL and 1 L"))

        assert result.status == VerificationStatus.MISMATCH
        assert result.found == "1 L"
        assert result.confidence == 0

    def test_not_found(self):
        result = match_net_contents("750 mL", make_evidence("OLD TOM"))
        assert result.status == VerificationStatus.NOT_FOUND

    def test_invalid_expected(self):
        result = match_net_contents("large", make_evidence("750 mL"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.message == "Invalid volume format"


class TestGovernmentWarning:
    """Test the health warning check."""

    def test_full_warning(self):
        result = match_government_warning(None, make_evidence(FULL_WARNING))

        assert result.status == VerificationStatus.MATCH
        assert result.found == "GOVERNMENT WARNING"
        assert result.confidence == 83

    def test_single_phrase_is_partial(self):
        result = match_government_warning(None, make_evidence("WARNING pregnant"))

        assert result.status == VerificationStatus.MISMATCH
        assert result.confidence == 17
        assert result.found == "Partial warning text detected"
        assert "incomplete" in result.message

    def test_two_phrases(self):
        result = match_government_warning(None, make_evidence("GOVERNMENT WARNING pregnant"))

        assert result.status == VerificationStatus.MISMATCH
        assert result.confidence == 33

    def test_absent(self):
        result = match_government_warning(None, make_evidence("OLD TOM DISTILLERY"))

        assert result.status == VerificationStatus.NOT_FOUND
        assert result.confidence == 0

    def test_bboxes_found_on_rotated_page(self):
        sideways = OCRLine(
            "GOVERNMENT WARNING", 90.0, BoundingBox(10, 10, 210, 30),
            [OCRWord("GOVERNMENT", 90.0, BoundingBox(10, 10, 110, 30)),
             OCRWord("WARNING", 90.0, BoundingBox(120, 10, 210, 30))],
        )
        evidence = make_evidence(
            "ORPHEUS BREWING\n\nGOVERNMENT WARNING surgeon general pregnant birth defects",
            pages={0: make_page(make_line("ORPHEUS BREWING")), 90: make_page(sideways)},
        )

        result = match_government_warning(None, evidence)
        assert result.status == VerificationStatus.MATCH
        assert result.bboxes == [
            BoundingBox(370, 10, 390, 210),
            BoundingBox(370, 120, 390, 210),
        ]

    def test_no_pages_no_bboxes(self):
        result = match_government_warning(None, make_evidence(FULL_WARNING))
        assert result.bboxes is None
