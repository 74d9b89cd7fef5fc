"""Tests for lab-format detection."""

import pytest
from coa_extractor.services.lab_detection import (
    LabType,
    detect_lab_type,
    detect_lab_name,
    get_lab_profile,
)


class TestDetectLabType:
    """Test lab layout detection."""

    def test_two_river(self):
        """Test 2 River Labs header, with and without spacing."""
        assert detect_lab_type("2 RIVER LABS, INC\nCERTIFICATE OF ANALYSIS") == LabType.TWO_RIVER
        assert detect_lab_type("2RIVERLABS") == LabType.TWO_RIVER
        assert detect_lab_type("2 River Labs") == LabType.TWO_RIVER

    def test_sc_labs(self):
        """Test SC Labs header."""
        assert detect_lab_type("SC Labs | Santa Cruz") == LabType.SC_LABS

    def test_steep_hill(self):
        """Test Steep Hill header."""
        assert detect_lab_type("Steep Hill Laboratories") == LabType.STEEP_HILL

    def test_generic_default(self):
        """Test unknown labs and empty text fall back to generic."""
        assert detect_lab_type("ACME TESTING") == LabType.GENERIC
        assert detect_lab_type("") == LabType.GENERIC

    def test_priority_order(self):
        """Test the first profile wins when several labs are mentioned."""
        text = "Reference method from SC LABS\n2 RIVER LABS, INC"
        assert detect_lab_type(text) == LabType.TWO_RIVER


class TestLabProfiles:
    """Test lab profiles and lab names."""

    def test_generic_has_no_profile(self):
        """Test generic layout has no lab-specific profile."""
        assert get_lab_profile(LabType.GENERIC) is None

    def test_profile_lookup_by_value(self):
        """Test profiles can be looked up by tag string."""
        profile = get_lab_profile("2river")
        assert profile is not None
        assert profile.lab_name == "2 RIVER LABS, INC"
        assert profile.category == "INHALABLE"

    @pytest.mark.parametrize("lab_type", [LabType.TWO_RIVER, LabType.SC_LABS, LabType.STEEP_HILL])
    def test_every_known_lab_has_profile(self, lab_type):
        """Test each known lab resolves to its own profile."""
        assert get_lab_profile(lab_type).lab_type == lab_type

    def test_detect_lab_name(self):
        """Test the lab name is returned as written."""
        assert detect_lab_name("2 RIVER LABS, INC\nCERTIFICATE") == "2 RIVER LABS, INC"
        assert detect_lab_name("nothing here") is None
