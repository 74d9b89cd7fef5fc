"""Pydantic models for request/response schemas."""

from .schemas import (
    TerpeneSchema,
    ExtractedRecordSchema,
    CoaIndicatorsSchema,
    QualityReportSchema,
    TextRequest,
    ExtractRequest,
    OCRMetadataSchema,
    OCRPayload,
    ExtractResponse,
    BatchDocumentSchema,
    BatchExtractRequest,
    BatchRowResult,
    BatchExtractResponse,
    TerpeneResponse,
    LabTypeResponse,
    CSVExportEntry,
    CSVExportRequest,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "TerpeneSchema",
    "ExtractedRecordSchema",
    "CoaIndicatorsSchema",
    "QualityReportSchema",
    "TextRequest",
    "ExtractRequest",
    "OCRMetadataSchema",
    "OCRPayload",
    "ExtractResponse",
    "BatchDocumentSchema",
    "BatchExtractRequest",
    "BatchRowResult",
    "BatchExtractResponse",
    "TerpeneResponse",
    "LabTypeResponse",
    "CSVExportEntry",
    "CSVExportRequest",
    "ErrorResponse",
    "HealthResponse",
]
