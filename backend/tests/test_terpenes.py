"""Tests for the terpene panel parser."""

import pytest
from coa_extractor.services.terpenes import TerpenePanelParser, normalize_terpene_name


@pytest.fixture
def parser():
    """Create terpene parser instance."""
    return TerpenePanelParser()


def as_pairs(terpenes):
    return [(t.name, t.percentage) for t in terpenes]


class TestNameNormalization:
    """Test analyte name canonicalisation."""

    @pytest.mark.parametrize("raw,expected", [
        ("β-MYRCENE", "Myrcene"),
        ("beta-Myrcene", "Myrcene"),
        ("D-Limonene", "Limonene"),
        ("trans-Nerolidol", "Nerolidol"),
        ("(-)-α-Bisabolol", "Bisabolol"),
        ("alpha-Pinene", "Alpha-Pinene"),
        ("β-Pinene", "Beta-Pinene"),
        ("Caryophyllene Oxide", "Caryophyllene Oxide"),
        ("p-Cymene", "p-Cymene"),
        ("Cedrol", "Cedrol"),
    ])
    def test_canonical_names(self, raw, expected):
        """Test raw names map to display names."""
        assert normalize_terpene_name(raw) == expected


class TestLocatePanel:
    """Test panel location."""

    def test_no_header_no_terpenes(self, parser):
        """Test terpene-looking lines without a panel header are ignored."""
        text = "Myrcene 0.5 %\nLimonene 0.3 %\n| Linalool | 0.2 % |"
        assert parser.locate_panel(text) is None
        assert parser.extract(text) == []

    def test_empty_text(self, parser):
        """Test empty text has no panel."""
        assert parser.locate_panel("") is None
        assert parser.extract("") == []

    def test_panel_ends_at_next_method(self, parser):
        """Test the panel stops at the next method code."""
        text = (
            "M-0255: TERPENES BY GC-FID\n"
            "| Myrcene | 0.50 % |\n"
            "M-0311: RESIDUAL SOLVENTS\n"
            "| Limonene | 1.00 % |\n"
        )
        panel = parser.locate_panel(text)
        assert "RESIDUAL" not in panel
        assert as_pairs(parser.extract(text)) == [("Myrcene", 0.5)]

    def test_panel_ends_at_page_marker(self, parser):
        """Test the panel stops at a page separator."""
        text = (
            "TERPENE PROFILE\n"
            "| Myrcene | 0.50 % |\n"
            "=== PAGE 2 ===\n"
            "| Limonene | 1.00 % |\n"
        )
        assert as_pairs(parser.extract(text)) == [("Myrcene", 0.5)]

    def test_terpene_subheading_does_not_end_panel(self, parser):
        """Test a terpene sub-heading inside the panel keeps it open."""
        text = (
            "TERPENES BY GC-MS\n"
            "| Myrcene | 0.50 % |\n"
            "## Terpenes (continued)\n"
            "| Limonene | 0.40 % |\n"
        )
        assert as_pairs(parser.extract(text)) == [("Myrcene", 0.5), ("Limonene", 0.4)]


class TestTableParsing:
    """Test table-aware parsing."""

    def test_header_selects_percent_column(self, parser):
        """Test the % column is preferred and ND / total rows are skipped."""
        text = (
            "TERPENES BY GC-FID\n"
            "| Analyte | LOQ (mg/g) | Result (mg/g) | Result (%) |\n"
            "|---|---|---|---|\n"
            "| β-Myrcene | 0.05 | 5.14 | 0.514 |\n"
            "| D-Limonene | 0.05 | 3.20 | 0.320 |\n"
            "| β-Caryophyllene | 0.05 | ND | ND |\n"
            "| Linalool | 0.05 | 1.10 | 0.110 |\n"
            "| Total Terpenes | | 9.44 | 0.944 |\n"
        )
        assert as_pairs(parser.extract(text)) == [
            ("Myrcene", 0.514),
            ("Limonene", 0.32),
            ("Linalool", 0.11),
        ]

    def test_header_unit_applied(self, parser):
        """Test a mg/g header converts bare numbers."""
        text = (
            "TERPENE PROFILE\n"
            "| Compound | Amount (mg/g) |\n"
            "| alpha-Pinene | 1.2 |\n"
            "| beta-Pinene | 0.8 |\n"
        )
        terpenes = parser.extract(text)
        assert [t.name for t in terpenes] == ["Alpha-Pinene", "Beta-Pinene"]
        assert terpenes[0].percentage == pytest.approx(0.12)
        assert terpenes[1].percentage == pytest.approx(0.08)

    def test_ug_per_g_cell(self, parser):
        """Test µg/g cells convert with the fixed divisor."""
        text = "TERPENE PROFILE\n| Myrcene | 5100 µg/g |\n"
        assert as_pairs(parser.extract(text)) == [("Myrcene", 0.51)]

    def test_tab_separated(self, parser):
        """Test tab separated rows."""
        text = "TERPENE PROFILE\nLimonene\t0.42 %\nHumulene\t0.18 %\n"
        assert as_pairs(parser.extract(text)) == [("Limonene", 0.42), ("Humulene", 0.18)]

    def test_duplicates_keep_maximum(self, parser):
        """Test a repeated analyte keeps its largest value."""
        text = (
            "TERPENE PROFILE\n"
            "| Myrcene | 0.5 % |\n"
            "| beta-Myrcene | 0.7 % |\n"
        )
        assert as_pairs(parser.extract(text)) == [("Myrcene", 0.7)]

    def test_out_of_bounds_values_dropped(self, parser):
        """Test zero and implausibly large values are discarded."""
        text = (
            "TERPENE PROFILE\n"
            "| Limonene | 25.0 % |\n"
            "| Humulene | 0 % |\n"
            "| Myrcene | 0.3 % |\n"
        )
        assert as_pairs(parser.extract(text)) == [("Myrcene", 0.3)]

    def test_fuzzy_names(self, parser):
        """Test OCR-garbled analyte names are recovered."""
        text = (
            "TERPENE PROFILE\n"
            "| MYRCENF | 0.60 % |\n"
            "| LlNALOOL | 0.20 % |\n"
            "| CARYOPHYLLENF | 0.40 % |\n"
        )
        assert as_pairs(parser.extract(text)) == [
            ("Myrcene", 0.6),
            ("Caryophyllene", 0.4),
            ("Linalool", 0.2),
        ]


class TestLineParsing:
    """Test the plain-text fallback."""

    def test_lines(self, parser):
        """Test name ... value unit lines."""
        text = (
            "TERPENE PROFILE\n"
            "beta-Myrcene 0.45%\n"
            "Limonene ..... 2.1 mg/g\n"
            "Linalool ND\n"
        )
        terpenes = parser.extract(text)
        assert [t.name for t in terpenes] == ["Myrcene", "Limonene"]
        assert terpenes[1].percentage == pytest.approx(0.21)


class TestLimits:
    """Test ordering and result caps."""

    @pytest.fixture
    def seven_terpenes(self):
        names = ["Myrcene", "Limonene", "Linalool", "Humulene", "Ocimene", "Guaiol", "Geraniol"]
        rows = "".join(f"| {name} | {0.9 - i * 0.1:.1f} % |\n" for i, name in enumerate(names))
        return "TERPENE PROFILE\n" + rows

    def test_at_most_five(self, parser, seven_terpenes):
        """Test the parser returns at most five terpenes, highest first."""
        terpenes = parser.extract(seven_terpenes)
        assert len(terpenes) == 5
        assert [t.name for t in terpenes][:2] == ["Myrcene", "Limonene"]
        assert [t.percentage for t in terpenes] == sorted((t.percentage for t in terpenes), reverse=True)

    def test_explicit_limit(self, parser, seven_terpenes):
        """Test a smaller limit is honoured and a larger one is capped."""
        assert len(parser.extract(seven_terpenes, limit=3)) == 3
        assert len(parser.extract(seven_terpenes, limit=10)) == 5
