"""COA field extraction.

Runs the strategies for the detected lab in priority order and merges their
partial records into one ExtractedRecord:
1. Detect the lab layout and score text quality
2. Run strategies, stopping early once one is confident and has THC + total
3. Merge first-writer-wins across decreasing strategy confidence
4. Re-score the merged record from what it actually contains
5. Fold in an independent terpene panel pass
"""

import time
from functools import lru_cache
from typing import List, Optional
import logging

from .lab_detection import LabType, detect_lab_name, detect_lab_type, get_lab_profile
from .ocr import OCRResult, ensure_extractable
from .quality import QualityLevel, QualityReport, QualityValidator, recommend_strategy, should_proceed
from .records import (
    COMBINED_METHOD,
    MAX_CONFIDENCE,
    MERGE_FIELDS,
    ExtractedRecord,
    PartialRecord,
    Terpene,
    clamp_confidence,
)
from .strategies import ExtractionStrategy, build_strategies
from .terpenes import TerpenePanelParser
from ..config import get_settings

logger = logging.getLogger(__name__)


# Additive rubric for the merged record
SCORE_BATCH_ID = 5
SCORE_STRAIN_NAME = 5
SCORE_THC = 20
SCORE_CBD = 15
SCORE_TOTAL = 15
SCORE_TEST_DATE = 10
SCORE_TERPENES = 10
SCORE_CONSISTENT_POTENCY = 8
CONSISTENCY_TOLERANCE = 2.0


class COAExtractor:
    """Extracts a structured record from COA text."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self.terpene_parser = TerpenePanelParser(self.settings)
        self.quality_validator = QualityValidator()

    def extract(self, text: str) -> ExtractedRecord:
        """
        Extract a record from OCR text.

        Never raises: an internal fault is logged and turned into the
        minimal fallback record (confidence 10, detected or unknown lab).

        Args:
            text: Full OCR text of one COA document

        Returns:
            ExtractedRecord with confidence in [5, 95]
        """
        start_time = time.time()
        try:
            record = self._extract(text)
        except Exception:
            logger.exception("Extraction failed, returning fallback record")
            lab_name = detect_lab_name(text) if isinstance(text, str) else None
            return ExtractedRecord.fallback(lab_name)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Extracted record: lab={record.lab_name}, THC={record.thc_percentage}, "
            f"total={record.total_cannabinoids}, terpenes={len(record.terpenes)}, "
            f"confidence={record.confidence} ({elapsed_ms}ms)"
        )
        return record

    def extract_from_ocr(self, ocr_result: OCRResult) -> ExtractedRecord:
        """
        Extract from an OCR provider result.

        Raises:
            OCRPreconditionError: provider failed or returned no text
        """
        ensure_extractable(ocr_result)
        return self.extract(ocr_result.extracted_text)

    def _extract(self, text: str) -> ExtractedRecord:
        lab_type = detect_lab_type(text)
        quality = self.quality_validator.validate(text)
        if not should_proceed(quality):
            logger.warning(
                f"Text failed quality gate ({quality.quality.value}, {quality.confidence}); extracting anyway"
            )
        logger.info(
            f"Lab type: {lab_type.value}, text quality: {quality.quality.value} "
            f"({quality.confidence}), plan: {recommend_strategy(quality).value}"
        )

        partials = self.run_strategies(text, lab_type)
        record = self.combine(partials, lab_type, quality)

        terpenes = self.terpene_parser.extract(text, limit=self.settings.terpene_result_limit)
        if terpenes:
            record.terpenes = terpenes
            record.confidence = min(MAX_CONFIDENCE, record.confidence + self.settings.terpene_confidence_boost)

        return record

    def run_strategies(self, text: str, lab_type: LabType) -> List[PartialRecord]:
        """
        Run the strategies for ``lab_type`` in priority order.

        Stops after the first partial with confidence at or above the
        early-exit threshold that has both THC and total cannabinoids.
        """
        partials = []
        for strategy in build_strategies(lab_type, self.terpene_parser, self.settings):
            partial = self._run_strategy(strategy, text)
            partials.append(partial)
            logger.debug(
                f"{strategy.name}: confidence={partial.confidence}, THC={partial.thc_percentage}, "
                f"CBD={partial.cbd_percentage}, total={partial.total_cannabinoids}"
            )
            if partial.confidence >= self.settings.early_exit_confidence and partial.has_complete_potency():
                logger.info(f"Early exit after {strategy.name} (confidence {partial.confidence})")
                break
        return partials

    def _run_strategy(self, strategy: ExtractionStrategy, text: str) -> PartialRecord:
        try:
            return strategy.extract(text)
        except Exception:
            logger.exception(f"Strategy {strategy.name} failed, using its baseline")
            return strategy.baseline()

    def combine(
        self,
        partials: List[PartialRecord],
        lab_type: LabType,
        quality: Optional[QualityReport] = None,
    ) -> ExtractedRecord:
        """
        Merge partial records into the final record.

        Partials are visited by decreasing confidence (ties keep strategy
        priority order) and a field is only filled while still absent.
        Lab defaults fill lab name and category last. Confidence is then
        recomputed from the merged fields, never carried over.
        """
        ordered = sorted(partials, key=lambda partial: partial.confidence, reverse=True)

        record = ExtractedRecord()
        for partial in ordered:
            for name in MERGE_FIELDS:
                if record.is_set(name) or not partial.is_set(name):
                    continue
                value = getattr(partial, name)
                setattr(record, name, list(value) if isinstance(value, list) else value)

        profile = get_lab_profile(lab_type)
        if profile is not None:
            if not record.is_set("lab_name"):
                record.lab_name = profile.lab_name
            if not record.is_set("category"):
                record.category = profile.category
            if not record.is_set("sub_category"):
                record.sub_category = profile.sub_category

        record.confidence = self.score(record, quality)
        record.extraction_method = COMBINED_METHOD
        return record

    def score(self, record: PartialRecord, quality: Optional[QualityReport] = None) -> int:
        """Confidence of a merged record, clamped to [5, 95]."""
        confidence = 0
        if record.is_set("batch_id"):
            confidence += SCORE_BATCH_ID
        if record.is_set("strain_name"):
            confidence += SCORE_STRAIN_NAME
        if record.thc_percentage is not None:
            confidence += SCORE_THC
        if record.cbd_percentage is not None:
            confidence += SCORE_CBD
        if record.total_cannabinoids is not None:
            confidence += SCORE_TOTAL
        if record.test_date is not None:
            confidence += SCORE_TEST_DATE
        if record.terpenes:
            confidence += SCORE_TERPENES
        if record.has_complete_potency():
            if abs(record.total_cannabinoids - record.thc_percentage) <= CONSISTENCY_TOLERANCE:
                confidence += SCORE_CONSISTENT_POTENCY

        if quality is not None:
            if quality.quality == QualityLevel.POOR:
                confidence -= self.settings.quality_penalty_poor
            elif quality.quality == QualityLevel.FAIR:
                confidence -= self.settings.quality_penalty_fair

        return clamp_confidence(confidence)


@lru_cache
def get_extractor() -> COAExtractor:
    """Get cached extractor instance."""
    return COAExtractor()


def extract(text: str) -> ExtractedRecord:
    """Extract a record from COA text. Never raises."""
    return get_extractor().extract(text)


def validate_ocr_quality(text: str) -> QualityReport:
    """Quality report for COA text."""
    return get_extractor().quality_validator.validate(text)


def extract_terpenes(text: str) -> List[Terpene]:
    """Terpene panel of a COA text, top 5 by percentage; empty when there is no panel."""
    return get_extractor().terpene_parser.extract(text)


__all__ = [
    "COAExtractor",
    "get_extractor",
    "extract",
    "detect_lab_type",
    "validate_ocr_quality",
    "extract_terpenes",
]
