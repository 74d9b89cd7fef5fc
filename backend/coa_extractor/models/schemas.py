"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from ..services.records import ExtractedRecord, Terpene
from ..services.quality import QualityReport


class TerpeneSchema(BaseModel):
    """A terpene and its amount in percent."""
    name: str
    percentage: float = Field(..., gt=0, lt=20)


class ExtractedRecordSchema(BaseModel):
    """Structured fields extracted from a COA."""
    batch_id: Optional[str] = None
    strain_name: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    thc_percentage: Optional[float] = Field(None, ge=0, le=50)
    cbd_percentage: Optional[float] = Field(None, ge=0, le=30)
    total_cannabinoids: Optional[float] = Field(None, ge=0, le=60)
    lab_name: Optional[str] = None
    test_date: Optional[datetime] = None
    terpenes: list[TerpeneSchema] = []
    confidence: int = Field(..., ge=0, le=100)
    extraction_method: str = "combined_strategies"

    class Config:
        json_schema_extra = {
            "example": {
                "batch_id": "EVM1234567",
                "strain_name": "CEREAL MILK",
                "category": "INHALABLE",
                "sub_category": "FLOWER",
                "thc_percentage": 24.5,
                "cbd_percentage": 0.3,
                "total_cannabinoids": 26.1,
                "lab_name": "2 RIVER LABS, INC",
                "test_date": "2024-03-15T00:00:00Z",
                "terpenes": [{"name": "Myrcene", "percentage": 0.51}],
                "confidence": 86,
                "extraction_method": "combined_strategies"
            }
        }

    @classmethod
    def from_record(cls, record: ExtractedRecord) -> "ExtractedRecordSchema":
        return cls(
            batch_id=record.batch_id,
            strain_name=record.strain_name,
            category=record.category,
            sub_category=record.sub_category,
            thc_percentage=record.thc_percentage,
            cbd_percentage=record.cbd_percentage,
            total_cannabinoids=record.total_cannabinoids,
            lab_name=record.lab_name,
            test_date=record.test_date,
            terpenes=[TerpeneSchema(name=t.name, percentage=t.percentage) for t in record.terpenes],
            confidence=record.confidence,
            extraction_method=record.extraction_method,
        )

    def to_record(self) -> ExtractedRecord:
        return ExtractedRecord(
            extraction_method=self.extraction_method,
            confidence=self.confidence,
            batch_id=self.batch_id,
            strain_name=self.strain_name,
            category=self.category,
            sub_category=self.sub_category,
            thc_percentage=self.thc_percentage,
            cbd_percentage=self.cbd_percentage,
            total_cannabinoids=self.total_cannabinoids,
            lab_name=self.lab_name,
            test_date=self.test_date,
            terpenes=[Terpene(name=t.name, percentage=t.percentage) for t in self.terpenes],
        )


class CoaIndicatorsSchema(BaseModel):
    """COA content found in the text."""
    has_certificate_header: bool
    has_lab_name: bool
    has_percentages: bool
    has_terpenes: bool
    has_tabular_data: bool


class QualityReportSchema(BaseModel):
    """Text quality assessment."""
    quality: str
    confidence: int = Field(..., ge=0, le=100)
    issues: list[str]
    recommendations: list[str]
    coa_indicators: CoaIndicatorsSchema
    should_proceed: bool
    recommended_strategy: str

    @classmethod
    def from_report(cls, report: QualityReport, proceed: bool, strategy: str) -> "QualityReportSchema":
        indicators = report.coa_indicators
        return cls(
            quality=report.quality.value,
            confidence=report.confidence,
            issues=report.issues,
            recommendations=report.recommendations,
            coa_indicators=CoaIndicatorsSchema(
                has_certificate_header=indicators.has_certificate_header,
                has_lab_name=indicators.has_lab_name,
                has_percentages=indicators.has_percentages,
                has_terpenes=indicators.has_terpenes,
                has_tabular_data=indicators.has_tabular_data,
            ),
            should_proceed=proceed,
            recommended_strategy=strategy,
        )


class TextRequest(BaseModel):
    """Request body carrying the OCR text of one COA."""
    text: str = Field(..., min_length=1, description="Full OCR text of the COA")


class ExtractRequest(TextRequest):
    """Request body for single document extraction."""
    clean_text: bool = Field(False, description="Apply COA OCR text cleaning before extraction")
    include_quality: bool = Field(True, description="Return the text quality report")


class OCRMetadataSchema(BaseModel):
    """Document facts reported by the OCR provider."""
    page_count: int = Field(1, ge=1)
    has_images: bool = False
    has_tables: bool = False
    language: str = "en"


class OCRPayload(BaseModel):
    """OCR provider output, as produced upstream of extraction."""
    success: bool
    extracted_text: str = ""
    provider: str = "unknown"
    confidence: Optional[float] = Field(None, ge=0)
    processing_time_ms: int = Field(0, ge=0)
    error: Optional[str] = None
    metadata: Optional[OCRMetadataSchema] = None
    clean_text: bool = Field(True, description="Apply COA OCR text cleaning before extraction")

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "extracted_text": "2 RIVER LABS, INC\nCERTIFICATE OF ANALYSIS\nTHC: 24.5%",
                "provider": "mistral",
                "confidence": 0.92,
                "processing_time_ms": 4210,
                "metadata": {"page_count": 2, "has_images": False, "has_tables": True}
            }
        }


class ExtractResponse(BaseModel):
    """Response for single document extraction."""
    success: bool
    lab_type: str
    record: ExtractedRecordSchema
    quality: Optional[QualityReportSchema] = None
    ocr_confidence: Optional[float] = None
    processing_time_ms: int


class BatchDocumentSchema(BaseModel):
    """One document of a batch request."""
    name: str = Field(..., min_length=1)
    text: str
    upload_date: Optional[datetime] = None


class BatchExtractRequest(BaseModel):
    """Request body for batch extraction."""
    documents: list[BatchDocumentSchema] = Field(..., min_length=1)


class BatchRowResult(BaseModel):
    """Result for a single document in batch extraction."""
    name: str
    success: bool
    record: Optional[ExtractedRecordSchema] = None
    error: Optional[str] = None
    processing_time_ms: int = 0


class BatchExtractResponse(BaseModel):
    """Response for batch extraction."""
    success: bool
    total: int
    processed: int
    failed: int
    results: list[BatchRowResult]
    processing_time_ms: int


class TerpeneResponse(BaseModel):
    """Terpene panel of a document."""
    panel_found: bool
    terpenes: list[TerpeneSchema]


class LabTypeResponse(BaseModel):
    """Detected lab layout."""
    lab_type: str
    lab_name: Optional[str] = None


class CSVExportEntry(BaseModel):
    """One record to export, with its document facts."""
    document_name: str
    upload_date: Optional[datetime] = None
    record: ExtractedRecordSchema


class CSVExportRequest(BaseModel):
    """Request body for CSV export."""
    entries: list[CSVExportEntry] = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": "Text too long",
                "detail": "Maximum text length is 2000000 characters"
            }
        }


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
