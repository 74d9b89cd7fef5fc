"""OCR text quality validation for COA documents."""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List
import logging

from .lab_detection import detect_lab_name

logger = logging.getLogger(__name__)


class QualityLevel(str, Enum):
    """Overall quality band of a document's text."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ExtractionPlan(str, Enum):
    """Extraction approach suggested by a quality report."""
    COMPREHENSIVE = "comprehensive"
    TABLE_FOCUSED = "table-focused"
    REGEX_GUIDED = "regex-guided"


_REPLACEMENT_CHAR = "�"
_SPECIAL_CHAR = re.compile(r"[^\w\s.\-%():,/\n]")
_CERTIFICATE_HEADER = re.compile(r"certificate\s+of\s+analysis", re.IGNORECASE)
_LAB_SUFFIX = re.compile(r"labs?\b[\s,.]*(?:inc|llc|corp)\b", re.IGNORECASE)
_PERCENTAGE = re.compile(r"\d+\.?\d*\s*%")
_TERPENE_KEYWORD = re.compile(r"myrcene|limonene|pinene|caryophyllene|terpene", re.IGNORECASE)
_TABULAR = re.compile(r"\t| {3,}|\|")


@dataclass
class CoaIndicators:
    """Presence flags for content every COA is expected to carry."""
    has_certificate_header: bool = False
    has_lab_name: bool = False
    has_percentages: bool = False
    has_terpenes: bool = False
    has_tabular_data: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "hasCertificateHeader": self.has_certificate_header,
            "hasLabName": self.has_lab_name,
            "hasPercentages": self.has_percentages,
            "hasTerpenes": self.has_terpenes,
            "hasTabularData": self.has_tabular_data,
        }


@dataclass
class QualityReport:
    """Quality assessment of one document's text."""
    quality: QualityLevel
    confidence: int
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    coa_indicators: CoaIndicators = field(default_factory=CoaIndicators)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["quality"] = self.quality.value
        data["coaIndicators"] = self.coa_indicators.to_dict()
        del data["coa_indicators"]
        return data


def quality_band(score: int) -> QualityLevel:
    """Map a 0-100 score to a quality band."""
    if score >= 85:
        return QualityLevel.EXCELLENT
    if score >= 70:
        return QualityLevel.GOOD
    if score >= 50:
        return QualityLevel.FAIR
    return QualityLevel.POOR


class QualityValidator:
    """
    Scores OCR text quality and COA-specific content.

    Starts from 100 and subtracts a fixed penalty per problem found. The
    report is informational: it biases final confidence and feeds review
    UIs, it never blocks extraction by itself.
    """

    def validate(self, text: str) -> QualityReport:
        """
        Build a quality report for ``text``.

        Args:
            text: Raw or cleaned OCR text

        Returns:
            QualityReport with band, score, issues and recommendations
        """
        text = text or ""
        issues: List[str] = []
        recommendations: List[str] = []
        score = 100

        length = len(text)
        special_ratio = len(_SPECIAL_CHAR.findall(text)) / length if length else 0.0

        indicators = CoaIndicators(
            has_certificate_header=bool(_CERTIFICATE_HEADER.search(text)),
            has_lab_name=bool(_LAB_SUFFIX.search(text)) or detect_lab_name(text) is not None,
            has_percentages=bool(_PERCENTAGE.search(text)),
            has_terpenes=bool(_TERPENE_KEYWORD.search(text)),
            has_tabular_data=bool(_TABULAR.search(text)),
        )

        # Text length
        if length < 500:
            issues.append("Very short text extracted - may indicate OCR failure")
            score -= 30
            recommendations.append("Check if PDF contains actual text or is a scanned image")
        elif length < 1000:
            issues.append("Short text extracted - may be missing content")
            score -= 15

        # Character quality
        if _REPLACEMENT_CHAR in text:
            issues.append("Contains replacement characters (�) - encoding issues detected")
            score -= 20
            recommendations.append("Try re-processing with different OCR settings")

        if special_ratio > 0.1:
            issues.append("High ratio of special characters - may indicate OCR corruption")
            score -= 15
            recommendations.append("Document may have poor image quality or complex formatting")

        # COA content
        if not indicators.has_certificate_header:
            issues.append('No "Certificate of Analysis" header found')
            score -= 10
            recommendations.append("Verify this is a COA document")

        if not indicators.has_percentages:
            issues.append("No percentage values found - critical for cannabis analysis")
            score -= 25
            recommendations.append("Check if numerical data was extracted properly")

        if not indicators.has_lab_name:
            issues.append("No laboratory name detected")
            score -= 10

        if not indicators.has_terpenes:
            issues.append("No terpene data detected")
            score -= 5
            recommendations.append("Document may not include terpene analysis")

        if not indicators.has_tabular_data:
            issues.append("No tabular data structure detected")
            score -= 15
            recommendations.append("Data may be in non-standard format")

        quality = quality_band(score)
        if quality == QualityLevel.POOR:
            recommendations.append("Consider manual review or document reprocessing")
            recommendations.append("Check source PDF quality and format")
        elif quality == QualityLevel.FAIR:
            recommendations.append("May require manual verification of extracted data")

        logger.debug(f"Text quality: {quality.value} ({max(score, 0)}), {len(issues)} issues")

        return QualityReport(
            quality=quality,
            confidence=max(score, 0),
            issues=issues,
            recommendations=recommendations,
            coa_indicators=indicators,
        )


def should_proceed(report: QualityReport) -> bool:
    """
    Advisory gate: is the text worth extracting from?

    Requires a COA header or lab name, and at least one percentage. Very
    poor text (confidence under 30) never passes.
    """
    if report.quality == QualityLevel.POOR and report.confidence < 30:
        return False
    indicators = report.coa_indicators
    return (indicators.has_certificate_header or indicators.has_lab_name) and indicators.has_percentages


def recommend_strategy(report: QualityReport) -> ExtractionPlan:
    """Suggest an extraction approach for the report's text."""
    indicators = report.coa_indicators
    if report.quality == QualityLevel.EXCELLENT and indicators.has_tabular_data:
        return ExtractionPlan.COMPREHENSIVE
    if indicators.has_tabular_data and indicators.has_percentages:
        return ExtractionPlan.TABLE_FOCUSED
    if report.quality in (QualityLevel.FAIR, QualityLevel.POOR):
        return ExtractionPlan.REGEX_GUIDED
    return ExtractionPlan.COMPREHENSIVE
