"""Services for COA text cleaning, lab detection, extraction, quality scoring, and batch processing."""

from .normalizers import Cannabinoid, parse_number, to_percent, normalize_unit, extract_test_date
from .records import Terpene, PartialRecord, ExtractedRecord
from .lab_detection import LabType, LabProfile, detect_lab_type, detect_lab_name, get_lab_profile
from .terpenes import TerpenePanelParser, normalize_terpene_name
from .strategies import (
    ExtractionStrategy,
    LabSpecificStrategy,
    StructuredPatternStrategy,
    NumericalRangeStrategy,
    ContextualSearchStrategy,
    build_strategies,
)
from .quality import QualityValidator, QualityReport, QualityLevel, should_proceed, recommend_strategy
from .ocr import OCRResult, OCRMetadata, OCRPreconditionError, clean_ocr_text, ensure_extractable
from .extraction import COAExtractor, get_extractor, extract, validate_ocr_quality, extract_terpenes
from .batch import BatchDocument, BatchExtractor, ExportEntry, RecordCSVExporter

__all__ = [
    "Cannabinoid",
    "parse_number",
    "to_percent",
    "normalize_unit",
    "extract_test_date",
    "Terpene",
    "PartialRecord",
    "ExtractedRecord",
    "LabType",
    "LabProfile",
    "detect_lab_type",
    "detect_lab_name",
    "get_lab_profile",
    "TerpenePanelParser",
    "normalize_terpene_name",
    "ExtractionStrategy",
    "LabSpecificStrategy",
    "StructuredPatternStrategy",
    "NumericalRangeStrategy",
    "ContextualSearchStrategy",
    "build_strategies",
    "QualityValidator",
    "QualityReport",
    "QualityLevel",
    "should_proceed",
    "recommend_strategy",
    "OCRResult",
    "OCRMetadata",
    "OCRPreconditionError",
    "clean_ocr_text",
    "ensure_extractable",
    "COAExtractor",
    "get_extractor",
    "extract",
    "validate_ocr_quality",
    "extract_terpenes",
    "BatchDocument",
    "BatchExtractor",
    "ExportEntry",
    "RecordCSVExporter",
]
