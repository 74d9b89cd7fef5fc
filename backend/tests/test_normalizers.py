"""Tests for value normalizers."""

from datetime import datetime, timezone

import pytest
from coa_extractor.services.normalizers import (
    Cannabinoid,
    MG_PER_G,
    UG_PER_G,
    PERCENT,
    parse_number,
    normalize_unit,
    to_percent,
    is_below_detection,
    parse_amount_to_percent,
    is_valid_cannabinoid,
    extract_test_date,
    format_iso_instant,
)


class TestParseNumber:
    """Test numeric token parsing with OCR repair."""

    def test_plain_decimal(self):
        """Test plain decimals parse unchanged."""
        assert parse_number("24.5") == 24.5
        assert parse_number("0.3") == 0.3

    def test_comma_decimal(self):
        """Test European comma decimals."""
        assert parse_number("24,5") == 24.5

    def test_thousands_separator(self):
        """Test thousands separators are dropped when a decimal point exists."""
        assert parse_number("1,234.5") == 1234.5

    def test_ocr_digit_confusions(self):
        """Test O/0 and l/1 confusions are repaired."""
        assert parse_number("2O.5") == 20.5
        assert parse_number("0.l5") == 0.15
        assert parse_number("1I.0") == 11.0

    def test_garbage_returns_none(self):
        """Test non-numeric tokens."""
        assert parse_number("") is None
        assert parse_number(None) is None
        assert parse_number("abc") is None


class TestUnits:
    """Test unit detection and percent conversion."""

    def test_normalize_unit(self):
        """Test unit annotations are recognised."""
        assert normalize_unit("5.1 mg/g") == MG_PER_G
        assert normalize_unit("mg / g") == MG_PER_G
        assert normalize_unit("510 µg/g") == UG_PER_G
        assert normalize_unit("510 ug/g") == UG_PER_G
        assert normalize_unit("510 ppm") == UG_PER_G
        assert normalize_unit("0.51 %") == PERCENT
        assert normalize_unit("0.51") is None

    def test_greek_mu_after_nfkc(self):
        """Test Greek mu (what NFKC produces from the micro sign)."""
        assert normalize_unit("510 μg/g") == UG_PER_G

    @pytest.mark.parametrize("value", [0.0, 0.5, 5.1, 12.34, 199.9])
    def test_mg_per_g_conversion(self, value):
        """Test mg/g converts with the fixed 0.1 factor."""
        assert to_percent(value, MG_PER_G) == value * 0.1

    @pytest.mark.parametrize("value", [0.0, 10.0, 510.0, 4321.5])
    def test_ug_per_g_conversion(self, value):
        """Test µg/g converts with the fixed 10000 divisor."""
        assert to_percent(value, UG_PER_G) == value / 10000

    def test_percent_and_unknown_unchanged(self):
        """Test percentages and unitless values pass through."""
        assert to_percent(0.51, PERCENT) == 0.51
        assert to_percent(0.51, None) == 0.51


class TestBelowDetection:
    """Test ND / <LOQ markers."""

    @pytest.mark.parametrize("cell", ["ND", "N.D.", "n/d", "Not Detected", "<LOQ", "< LOQ", "<LOD", "BLQ"])
    def test_markers(self, cell):
        """Test each marker is below detection."""
        assert is_below_detection(cell) is True

    @pytest.mark.parametrize("cell", ["0.51 %", "5.1 mg/g", "", None, "INDICA"])
    def test_values_are_not_markers(self, cell):
        """Test real values and words are not below detection."""
        assert is_below_detection(cell) is False

    def test_nd_cell_is_absent_not_zero(self):
        """Test ND parses to absent rather than 0."""
        assert parse_amount_to_percent("ND") is None
        assert parse_amount_to_percent("<LOQ", MG_PER_G) is None


class TestParseAmount:
    """Test amount cell parsing."""

    def test_unit_in_cell_wins(self):
        """Test the cell's own unit beats the header unit."""
        assert parse_amount_to_percent("0.51 %", MG_PER_G) == 0.51

    def test_header_unit_used_when_cell_has_none(self):
        """Test the header unit is applied to bare numbers."""
        assert parse_amount_to_percent("5.1", MG_PER_G) == pytest.approx(0.51)

    def test_no_number(self):
        """Test cells without a number."""
        assert parse_amount_to_percent("PASS") is None


class TestCannabinoidRanges:
    """Test cannabinoid range validation."""

    def test_valid_values(self):
        """Test in-range values."""
        assert is_valid_cannabinoid(24.5, Cannabinoid.THC)
        assert is_valid_cannabinoid(0.0, Cannabinoid.CBD)
        assert is_valid_cannabinoid(60.0, Cannabinoid.TOTAL)

    def test_out_of_range(self):
        """Test values beyond the per-field limits."""
        assert not is_valid_cannabinoid(60.0, Cannabinoid.THC)
        assert not is_valid_cannabinoid(30.5, Cannabinoid.CBD)
        assert not is_valid_cannabinoid(61.0, Cannabinoid.TOTAL)

    def test_invalid_numbers(self):
        """Test negatives, NaN, infinity and None."""
        assert not is_valid_cannabinoid(-1.0, Cannabinoid.THC)
        assert not is_valid_cannabinoid(float("nan"), Cannabinoid.THC)
        assert not is_valid_cannabinoid(float("inf"), Cannabinoid.THC)
        assert not is_valid_cannabinoid(None, Cannabinoid.THC)


class TestTestDate:
    """Test test-date extraction."""

    def test_labelled_date(self):
        """Test a labelled month-name date."""
        result = extract_test_date("TESTED: MAR 15, 2024")
        assert result == datetime(2024, 3, 15, tzinfo=timezone.utc)

    def test_full_month_name(self):
        """Test full month names."""
        assert extract_test_date("Produced: March 5, 2023") == datetime(2023, 3, 5, tzinfo=timezone.utc)

    def test_method_code_line(self):
        """Test dates on method-code lines."""
        result = extract_test_date("M-024: POTENCY BY HPLC // APR 02, 2024")
        assert result == datetime(2024, 4, 2, tzinfo=timezone.utc)

    def test_ocr_garbled_digits(self):
        """Test O/l confusions inside day and year."""
        result = extract_test_date("TEST DATE: JAN l5, 2O24")
        assert result == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_numeric_labelled_date(self):
        """Test MM/DD/YYYY after a label."""
        result = extract_test_date("TEST DATE: 03/15/2024")
        assert result == datetime(2024, 3, 15, tzinfo=timezone.utc)

    def test_numeric_date_variants(self):
        """Test garbled digits and day-first numeric dates."""
        expected = datetime(2024, 3, 15, tzinfo=timezone.utc)
        assert extract_test_date("TEST DATE: O3/l5/2O24") == expected
        assert extract_test_date("TESTED: 15/03/2024") == expected
        assert extract_test_date("TESTED: 13/13/2024") is None

    def test_impossible_date(self):
        """Test a non-existent calendar date is skipped."""
        assert extract_test_date("TESTED: FEB 30, 2024") is None

    def test_no_date(self):
        """Test texts without a date."""
        assert extract_test_date("THC: 24.5%") is None
        assert extract_test_date("") is None

    def test_iso_instant_format(self):
        """Test midnight-UTC ISO formatting."""
        value = datetime(2024, 3, 15, tzinfo=timezone.utc)
        assert format_iso_instant(value) == "2024-03-15T00:00:00.000Z"
        assert format_iso_instant(None) is None
