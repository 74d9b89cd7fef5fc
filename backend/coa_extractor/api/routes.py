"""API route definitions."""

import time
from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
import logging

from ..models import (
    ExtractedRecordSchema,
    QualityReportSchema,
    TerpeneSchema,
    TextRequest,
    ExtractRequest,
    OCRPayload,
    ExtractResponse,
    BatchExtractRequest,
    BatchRowResult,
    BatchExtractResponse,
    TerpeneResponse,
    LabTypeResponse,
    CSVExportRequest,
    ErrorResponse,
    HealthResponse,
)
from ..services import (
    COAExtractor,
    QualityValidator,
    BatchDocument,
    BatchExtractor,
    ExportEntry,
    RecordCSVExporter,
    OCRResult,
    OCRMetadata,
    OCRPreconditionError,
    clean_ocr_text,
    detect_lab_type,
    detect_lab_name,
    should_proceed,
    recommend_strategy,
)
from ..config import get_settings
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()

# Initialize services
extractor = COAExtractor()
quality_validator = QualityValidator()
batch_extractor = BatchExtractor()
csv_exporter = RecordCSVExporter()


def _check_text_size(text: str) -> None:
    settings = get_settings()
    if len(text) > settings.max_text_chars:
        raise HTTPException(
            status_code=400,
            detail=f"Text too long. Maximum text length is {settings.max_text_chars} characters."
        )


def _quality_schema(text: str) -> QualityReportSchema:
    report = quality_validator.validate(text)
    return QualityReportSchema.from_report(
        report,
        proceed=should_proceed(report),
        strategy=recommend_strategy(report).value,
    )


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check API health."""
    return HealthResponse(
        status="healthy",
        version=__version__,
    )


@router.post(
    "/extract",
    response_model=ExtractResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Extraction"]
)
async def extract_record(request: ExtractRequest):
    """
    Extract a structured record from the OCR text of one COA.

    Always returns a record; when nothing could be read the record carries
    a low confidence instead of an error.
    """
    start_time = time.time()
    _check_text_size(request.text)

    text = clean_ocr_text(request.text) if request.clean_text else request.text
    record = extractor.extract(text)

    return ExtractResponse(
        success=True,
        lab_type=detect_lab_type(text).value,
        record=ExtractedRecordSchema.from_record(record),
        quality=_quality_schema(text) if request.include_quality else None,
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@router.post(
    "/extract/ocr",
    response_model=ExtractResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        422: {"model": ErrorResponse, "description": "OCR failed or produced no text"},
    },
    tags=["Extraction"]
)
async def extract_from_ocr(payload: OCRPayload):
    """
    Extract a record from an OCR provider result.

    A failed OCR result or empty text is rejected with 422; extraction is
    never attempted on it.
    """
    start_time = time.time()
    _check_text_size(payload.extracted_text)

    text = clean_ocr_text(payload.extracted_text) if payload.clean_text else payload.extracted_text
    metadata = payload.metadata
    ocr_result = OCRResult(
        success=payload.success,
        extracted_text=text,
        provider=payload.provider,
        confidence=payload.confidence,
        processing_time_ms=payload.processing_time_ms,
        error=payload.error,
        metadata=OCRMetadata(**metadata.model_dump()) if metadata else OCRMetadata(),
    )

    try:
        record = extractor.extract_from_ocr(ocr_result)
    except OCRPreconditionError as e:
        logger.warning(f"Rejected OCR result: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return ExtractResponse(
        success=True,
        lab_type=detect_lab_type(text).value,
        record=ExtractedRecordSchema.from_record(record),
        quality=_quality_schema(text),
        ocr_confidence=payload.confidence,
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@router.post(
    "/extract/batch",
    response_model=BatchExtractResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        500: {"model": ErrorResponse, "description": "Processing error"}
    },
    tags=["Extraction"]
)
async def extract_batch(request: BatchExtractRequest):
    """
    Extract records from multiple COA texts.

    Each document is independent; a document without text fails on its
    own without affecting the rest. Results keep request order.
    """
    start_time = time.time()
    settings = get_settings()

    if len(request.documents) > settings.max_batch_size:
        raise HTTPException(
            status_code=400,
            detail=f"Too many documents. Maximum batch size is {settings.max_batch_size} documents."
        )
    for document in request.documents:
        _check_text_size(document.text)

    documents = [BatchDocument(name=d.name, text=d.text, upload_date=d.upload_date) for d in request.documents]

    try:
        results = batch_extractor.process_batch(documents)
    except Exception as e:
        logger.exception(f"Batch extraction failed: {e}")
        raise HTTPException(status_code=500, detail=f"Batch extraction failed: {str(e)}")

    rows = [
        BatchRowResult(
            name=r["name"],
            success=r["success"],
            record=ExtractedRecordSchema.from_record(r["record"]) if r["record"] else None,
            error=r["error"],
            processing_time_ms=r["processing_time_ms"],
        )
        for r in results
    ]
    processed = sum(1 for r in rows if r.success)

    return BatchExtractResponse(
        success=True,
        total=len(rows),
        processed=processed,
        failed=len(rows) - processed,
        results=rows,
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@router.post(
    "/quality",
    response_model=QualityReportSchema,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Analysis"]
)
async def validate_quality(request: TextRequest):
    """Score OCR text quality and report missing COA content."""
    _check_text_size(request.text)
    return _quality_schema(request.text)


@router.post(
    "/terpenes",
    response_model=TerpeneResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Analysis"]
)
async def parse_terpenes(request: TextRequest):
    """Locate the terpene panel and return its top terpenes."""
    _check_text_size(request.text)
    parser = extractor.terpene_parser
    panel = parser.locate_panel(request.text)
    terpenes = parser.parse_panel(panel) if panel else []
    return TerpeneResponse(
        panel_found=panel is not None,
        terpenes=[TerpeneSchema(name=t.name, percentage=t.percentage) for t in terpenes],
    )


@router.post(
    "/lab-type",
    response_model=LabTypeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Analysis"]
)
async def lab_type(request: TextRequest):
    """Detect which lab layout the COA uses."""
    _check_text_size(request.text)
    return LabTypeResponse(
        lab_type=detect_lab_type(request.text).value,
        lab_name=detect_lab_name(request.text),
    )


@router.post(
    "/export/csv",
    responses={
        200: {"content": {"text/csv": {}}, "description": "CSV file"},
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Export"]
)
async def export_csv(request: CSVExportRequest):
    """Export records as a CSV file (one row per record, N/A for missing values)."""
    entries = [
        ExportEntry(
            document_name=entry.document_name,
            record=entry.record.to_record(),
            upload_date=entry.upload_date,
        )
        for entry in request.entries
    ]
    content = csv_exporter.export(entries)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="coa_records.csv"'},
    )
