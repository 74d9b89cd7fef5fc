"""Tests for OCR text quality validation."""

import pytest
from coa_extractor.services.quality import (
    QualityValidator,
    QualityLevel,
    ExtractionPlan,
    quality_band,
    should_proceed,
    recommend_strategy,
)


FILLER = "Sample notes line with ordinary words.\n" * 30

COMPLETE_COA = (
    "2 RIVER LABS, INC\n"
    "CERTIFICATE OF ANALYSIS\n"
    "THC\t24.5%\n"
    "MYRCENE\t0.51%\n"
) + FILLER


@pytest.fixture
def validator():
    """Create validator instance."""
    return QualityValidator()


class TestQualityScore:
    """Test penalties and bands."""

    def test_complete_document(self, validator):
        """Test a complete COA scores excellent with no issues."""
        report = validator.validate(COMPLETE_COA)

        assert report.quality == QualityLevel.EXCELLENT
        assert report.confidence == 100
        assert report.issues == []
        assert report.coa_indicators.has_certificate_header
        assert report.coa_indicators.has_lab_name
        assert report.coa_indicators.has_percentages
        assert report.coa_indicators.has_terpenes
        assert report.coa_indicators.has_tabular_data

    def test_empty_text(self, validator):
        """Test empty text collects every penalty."""
        report = validator.validate("")

        assert report.quality == QualityLevel.POOR
        assert report.confidence == 5
        assert "Consider manual review or document reprocessing" in report.recommendations
        assert "Check source PDF quality and format" in report.recommendations

    def test_short_text(self, validator):
        """Test the two short-text penalties."""
        short = validator.validate(COMPLETE_COA[:400])
        medium = validator.validate(COMPLETE_COA[:800])
        assert short.confidence == 70
        assert medium.confidence == 85

    def test_replacement_characters(self, validator):
        """Test encoding damage is reported."""
        report = validator.validate(COMPLETE_COA + "�")
        assert report.confidence == 80
        assert any("replacement characters" in issue for issue in report.issues)

    def test_special_character_ratio(self, validator):
        """Test heavy symbol noise is penalised."""
        report = validator.validate(COMPLETE_COA + "@#~^" * 100)
        assert any("special characters" in issue for issue in report.issues)

    def test_fair_band(self, validator):
        """Test a long text with percentages but no COA markers is fair."""
        report = validator.validate("Potency was 24.5% for this product.\n" + FILLER)
        assert report.quality == QualityLevel.FAIR
        assert report.confidence == 60
        assert "May require manual verification of extracted data" in report.recommendations

    def test_lab_suffix_detected(self, validator):
        """Test a generic "LABS LLC" lab name counts."""
        report = validator.validate("GREEN LEAF LABS LLC")
        assert report.coa_indicators.has_lab_name

    @pytest.mark.parametrize("text", ["", "x", "�" * 50, COMPLETE_COA, "@" * 2000])
    def test_confidence_bounds(self, validator, text):
        """Test confidence always stays in [0, 100]."""
        report = validator.validate(text)
        assert 0 <= report.confidence <= 100

    @pytest.mark.parametrize("score,band", [
        (100, QualityLevel.EXCELLENT),
        (85, QualityLevel.EXCELLENT),
        (84, QualityLevel.GOOD),
        (70, QualityLevel.GOOD),
        (69, QualityLevel.FAIR),
        (50, QualityLevel.FAIR),
        (49, QualityLevel.POOR),
        (0, QualityLevel.POOR),
    ])
    def test_band_thresholds(self, score, band):
        """Test band thresholds."""
        assert quality_band(score) == band

    def test_to_dict(self, validator):
        """Test the serialised report shape."""
        data = validator.validate(COMPLETE_COA).to_dict()
        assert data["quality"] == "excellent"
        assert data["coaIndicators"]["hasCertificateHeader"] is True
        assert "coa_indicators" not in data


class TestGate:
    """Test the proceed gate."""

    def test_complete_document_proceeds(self, validator):
        """Test a complete COA passes."""
        assert should_proceed(validator.validate(COMPLETE_COA))

    def test_header_and_percentages_enough(self, validator):
        """Test a poor but not hopeless text with header and values passes."""
        report = validator.validate("CERTIFICATE OF ANALYSIS\nTHC 24.5%")
        assert report.quality == QualityLevel.POOR
        assert report.confidence == 40
        assert should_proceed(report)

    def test_no_percentages_blocks(self, validator):
        """Test a text without percentages fails."""
        report = validator.validate("CERTIFICATE OF ANALYSIS\n" + FILLER)
        assert not should_proceed(report)

    def test_hopeless_text_blocks(self, validator):
        """Test very poor text fails regardless of indicators."""
        assert not should_proceed(validator.validate(""))


class TestRecommendStrategy:
    """Test extraction plan hints."""

    def test_comprehensive(self, validator):
        """Test excellent tabular text."""
        assert recommend_strategy(validator.validate(COMPLETE_COA)) == ExtractionPlan.COMPREHENSIVE

    def test_table_focused(self, validator):
        """Test tabular text with values that is not excellent."""
        report = validator.validate("THC\t24.5%")
        assert recommend_strategy(report) == ExtractionPlan.TABLE_FOCUSED

    def test_regex_guided(self, validator):
        """Test low quality text without tables."""
        assert recommend_strategy(validator.validate("")) == ExtractionPlan.REGEX_GUIDED
