"""Batch extraction of multiple COA documents and CSV export of records."""

import csv
import io
import time
import logging
from datetime import datetime
from typing import Dict, List, Tuple, Optional, Any, Iterable
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed
import multiprocessing

from .records import ExtractedRecord, MAX_TERPENES
from .terpenes import top_terpenes
from ..config import get_settings

logger = logging.getLogger(__name__)


NOT_AVAILABLE = "N/A"

CSV_HEADERS = [
    "Document Name",
    "Upload Date",
    "Batch ID",
    "Strain Name",
    "Category",
    "Sub-Category",
    "THC %",
    "CBD %",
    "Total Cannabinoids %",
    "Lab Name",
    "Test Date",
    "Top Terpenes",
    "Confidence Score",
]


@dataclass
class BatchDocument:
    """One document of a batch: its name and full OCR text."""
    name: str
    text: str
    upload_date: Optional[datetime] = None


@dataclass
class ExportEntry:
    """A record plus the document facts shown next to it in an export."""
    document_name: str
    record: ExtractedRecord
    upload_date: Optional[datetime] = None


# Worker function for multiprocessing (must be at module level)
def _extract_single_document(args: Tuple[str, str]) -> Dict[str, Any]:
    """
    Extract one document in a worker process.

    Each process builds its own extractor; nothing is shared between
    documents.
    """
    from .extraction import COAExtractor

    name, text = args
    start_time = time.time()

    if not text or not text.strip():
        return {
            "name": name,
            "success": False,
            "error": "Document has no text to extract from",
            "record": None,
            "processing_time_ms": 0,
        }

    record = COAExtractor().extract(text)
    return {
        "name": name,
        "success": True,
        "error": None,
        "record": record,
        "processing_time_ms": int((time.time() - start_time) * 1000),
    }


class BatchExtractor:
    """Extract multiple documents, sequentially or in a process pool."""

    def __init__(self):
        self.settings = get_settings()

    def process_batch(
        self,
        documents: List[BatchDocument],
        max_workers: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Extract every document of a batch.

        Args:
            documents: Documents in caller order
            max_workers: Max parallel workers (defaults to config)

        Returns:
            List of result dicts in the same order as ``documents``
        """
        if max_workers is None:
            max_workers = min(
                self.settings.max_workers,
                multiprocessing.cpu_count(),
                max(len(documents), 1)  # No point having more workers than items
            )

        work_items = [(doc.name, doc.text) for doc in documents]
        results: List[Tuple[int, Dict[str, Any]]] = []

        if len(work_items) <= 1 or max_workers <= 1:
            for index, args in enumerate(work_items):
                results.append((index, _extract_single_document(args)))
        else:
            # Extraction is CPU-bound regex work; processes sidestep the GIL
            with ProcessPoolExecutor(max_workers=max_workers) as executor:
                futures = {
                    executor.submit(_extract_single_document, args): index
                    for index, args in enumerate(work_items)
                }

                for future in as_completed(futures):
                    index = futures[future]
                    try:
                        results.append((index, future.result()))
                    except Exception as e:
                        name = work_items[index][0]
                        logger.exception(f"Worker error for {name}: {e}")
                        results.append((index, {
                            "name": name,
                            "success": False,
                            "error": f"Worker error: {str(e)}",
                            "record": None,
                            "processing_time_ms": 0,
                        }))

        # Sort results by original order (names may repeat, so sort by position)
        results.sort(key=lambda item: item[0])
        succeeded = sum(1 for _, r in results if r["success"])
        logger.info(f"Batch extracted: {succeeded}/{len(results)} documents")
        return [result for _, result in results]


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return NOT_AVAILABLE
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return NOT_AVAILABLE
    return value.strftime("%Y-%m-%d")


def format_terpenes(record: ExtractedRecord) -> str:
    """Top terpenes as "Myrcene: 0.51%; Limonene: 0.3%" (at most 5)."""
    if not record.terpenes:
        return NOT_AVAILABLE
    return "; ".join(
        f"{t.name}: {_format_number(t.percentage)}%"
        for t in top_terpenes(record.terpenes, MAX_TERPENES)
    )


class RecordCSVExporter:
    """Write extracted records as CSV with a fixed header row."""

    def to_row(self, entry: ExportEntry) -> List[str]:
        """One CSV row for an export entry; absent values become N/A."""
        record = entry.record
        return [
            entry.document_name or NOT_AVAILABLE,
            _format_date(entry.upload_date),
            record.batch_id or NOT_AVAILABLE,
            record.strain_name or NOT_AVAILABLE,
            record.category or NOT_AVAILABLE,
            record.sub_category or NOT_AVAILABLE,
            _format_number(record.thc_percentage),
            _format_number(record.cbd_percentage),
            _format_number(record.total_cannabinoids),
            record.lab_name or NOT_AVAILABLE,
            _format_date(record.test_date),
            format_terpenes(record),
            _format_number(record.confidence),
        ]

    def export(self, entries: Iterable[ExportEntry]) -> str:
        """
        Render entries as CSV text.

        Returns:
            CSV content (header plus one row per entry)
        """
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_HEADERS)
        count = 0
        for entry in entries:
            writer.writerow(self.to_row(entry))
            count += 1
        logger.info(f"Exported {count} records to CSV")
        return output.getvalue()
