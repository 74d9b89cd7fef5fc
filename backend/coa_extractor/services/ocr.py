"""OCR provider boundary.

The extraction core never talks to an OCR engine; it receives the
provider's output as an OCRResult. This module owns that shape plus the
text-level work done on provider output before extraction:
- COA-aware text cleaning (markdown, digit confusions, decimals, % symbols)
- Text normalization (Unicode NFKC)
- Confidence estimate from COA content
- Page and table metadata
- Precondition check (failed OCR or empty text never reaches extraction)
"""

from typing import Optional
from dataclasses import dataclass, field
import logging
import re
import unicodedata

logger = logging.getLogger(__name__)


class OCRPreconditionError(ValueError):
    """OCR failed or produced no text; extraction must not run."""


@dataclass
class OCRMetadata:
    """Document facts reported by (or inferred for) the OCR provider."""
    page_count: int = 1
    has_images: bool = False
    has_tables: bool = False
    language: str = "en"


@dataclass
class OCRResult:
    """Result from an OCR provider."""
    success: bool
    extracted_text: str
    provider: str
    confidence: Optional[float] = None
    processing_time_ms: int = 0
    error: Optional[str] = None
    metadata: OCRMetadata = field(default_factory=OCRMetadata)

    @classmethod
    def failed(cls, provider: str, error: str) -> "OCRResult":
        """Create result for failed OCR."""
        return cls(success=False, extracted_text="", provider=provider, confidence=0, error=error)

    @classmethod
    def from_text(
        cls,
        text: str,
        provider: str = "text",
        provider_confidence: Optional[float] = None,
        processing_time_ms: int = 0,
        clean: bool = True,
    ) -> "OCRResult":
        """Wrap raw provider text: clean it, estimate confidence, infer metadata."""
        extracted = clean_ocr_text(text) if clean else normalize_text(text)
        return cls(
            success=bool(extracted.strip()),
            extracted_text=extracted,
            provider=provider,
            confidence=estimate_text_confidence(extracted, provider_confidence),
            processing_time_ms=processing_time_ms,
            error=None if extracted.strip() else "No text extracted",
            metadata=OCRMetadata(
                page_count=count_pages(extracted),
                has_tables=detect_tables(extracted),
            ),
        )


def ensure_extractable(result: OCRResult) -> None:
    """
    Raise OCRPreconditionError unless ``result`` can be handed to extraction.

    Failed OCR and empty text are the caller's problem, not a low-confidence
    record.
    """
    if not result.success:
        raise OCRPreconditionError(f"OCR failed ({result.provider}): {result.error or 'unknown error'}")
    if not result.extracted_text or not result.extracted_text.strip():
        raise OCRPreconditionError(f"OCR produced no text ({result.provider})")


# =============================================================================
# TEXT CLEANING
# =============================================================================

_MARKDOWN = (
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),      # **bold**
    (re.compile(r"\*(.*?)\*"), r"\1"),          # *italic*
    (re.compile(r"`(.*?)`"), r"\1"),            # `code`
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),   # [text](url)
)

# Markdown table rules ("|---|:--:|"); pipes inside rows are kept as column separators
_TABLE_RULE = re.compile(r"^[ \t]*[|+\-=:][ \t|+\-=:]*$\n?", re.MULTILINE)

_PERCENT_REPAIRS = (
    (re.compile(r"(\d)\s*°\s*/\s*o", re.IGNORECASE), r"\1%"),
    (re.compile(r"(\d)\s*/\s*o\b", re.IGNORECASE), r"\1%"),
    (re.compile(r"(\d)\s*[°º](?!\s*[CF]\b)"), r"\1%"),
    (re.compile(r"(\d)\s*％"), r"\1%"),
)

_DIGIT_REPAIRS = (
    (re.compile(r"(?<=\d)[Oo](?=\d)"), "0"),
    (re.compile(r"(?<=\d)[lI](?=\d)"), "1"),
    (re.compile(r"\bO(?=[.,]\d)"), "0"),        # "O.35%"
    (re.compile(r"(?<=\d[.,])[Oo](?=\d|\s*%)"), "0"),
    (re.compile(r"(?<=\d)S(?=\s*%)"), "5"),
    (re.compile(r"\bZ(?=[.,]\d)"), "2"),
    (re.compile(r"(?<=\d)Z(?=\.)"), "2"),
)

_DECIMAL_REPAIRS = (
    (re.compile(r"(?<=\d)[,;](?=\d)"), "."),
    (re.compile(r"(\d)\s+%"), r"\1%"),
)

_LABEL_REPAIRS = (
    (re.compile(r"\bTHG\b", re.IGNORECASE), "THC"),
    (re.compile(r"\bCBO\b", re.IGNORECASE), "CBD"),
    (re.compile(r"\bCANN[AI]BIN[O0]IDS\b", re.IGNORECASE), "CANNABINOIDS"),
)

_PAGE_NUMBER = re.compile(r"(?:=+\s*)?\bPAGE\s+(\d+)", re.IGNORECASE)


def normalize_text(text: str) -> str:
    """Unicode NFKC (ligatures, full-width forms) and line-ending normalization."""
    if not text:
        return ""
    normalized = unicodedata.normalize("NFKC", text)
    return normalized.replace("\r\n", "\n").replace("\r", "\n")


def _apply(rules, text: str) -> str:
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def clean_ocr_text(text: str) -> str:
    """
    Clean raw OCR text for COA extraction.

    Line breaks, page markers and in-row pipes are kept because section
    splitting and table parsing depend on them. Wide space runs become tabs
    so aligned columns stay columns.
    """
    if not text:
        return ""

    cleaned = _apply(_PERCENT_REPAIRS, text)  # before NFKC, which turns º into o
    cleaned = normalize_text(cleaned)
    cleaned = _apply(_MARKDOWN, cleaned)
    cleaned = _TABLE_RULE.sub("", cleaned)
    cleaned = _apply(_DIGIT_REPAIRS, cleaned)
    cleaned = _apply(_DECIMAL_REPAIRS, cleaned)
    cleaned = _apply(_LABEL_REPAIRS, cleaned)

    # Spacing
    cleaned = re.sub(r" {3,}", "\t", cleaned)
    cleaned = re.sub(r"[^\S\n\t]+", " ", cleaned)
    cleaned = re.sub(r"[ \t]+\n", "\n", cleaned)
    cleaned = re.sub(r"\n\s*\n\s*\n+", "\n\n", cleaned)
    cleaned = cleaned.strip()

    logger.debug(f"OCR text cleaned: {len(text)} -> {len(cleaned)} chars")
    return cleaned


# =============================================================================
# CONFIDENCE AND METADATA
# =============================================================================

_STANDARD_CHARS = re.compile(r"[a-zA-Z0-9\s.\-%():,/\n]")


def estimate_text_confidence(text: str, provider_confidence: Optional[float] = None) -> int:
    """
    Estimate OCR confidence (10-99) from COA content in the text.

    Starts at 80 and adds points for expected COA vocabulary and structure.
    A provider-reported confidence (0-1 or 0-100) caps the estimate.
    """
    if not text:
        return 10

    lowered = text.lower()
    confidence = 80.0

    # COA content
    if "certificate of analysis" in lowered:
        confidence += 10
    if "certificate" in lowered:
        confidence += 5
    if "%" in text:
        confidence += 5
    if re.search(r"\d+\.\d+", text):
        confidence += 5
    if "thc" in lowered:
        confidence += 5
    if "cbd" in lowered:
        confidence += 3
    if "terpene" in lowered:
        confidence += 3
    if "batch" in lowered:
        confidence += 3
    if "lab" in lowered:
        confidence += 2

    # Clean potency lines
    if re.search(r"TOTAL\s+THC\s*:\s*\d+\.?\d*%", text, re.IGNORECASE):
        confidence += 10
    if re.search(r"TOTAL\s+CBD\s*:\s*\d+\.?\d*%", text, re.IGNORECASE):
        confidence += 8
    if re.search(r"TOTAL\s+CANNABINOIDS\s*:\s*\d+\.?\d*%", text, re.IGNORECASE):
        confidence += 8

    # Length and structure
    if len(text) > 500:
        confidence += 3
    if len(text) > 1000:
        confidence += 3
    if len(text) > 2000:
        confidence += 2
    if "\n" in text:
        confidence += 2
    if re.search(r"[A-Z]{2,}", text):
        confidence += 2

    if provider_confidence is not None:
        scale = 100 if provider_confidence <= 1 else 1
        confidence = min(confidence, provider_confidence * scale)

    # Garbling
    if "�" in text:
        confidence -= 10
    if len(_STANDARD_CHARS.findall(text)) / len(text) < 0.75:
        confidence -= 15

    return int(max(10, min(99, confidence)))


def detect_tables(text: str) -> bool:
    """True when more than 3 lines look like table rows."""
    row_count = 0
    for line in (text or "").split("\n"):
        if (
            "\t" in line
            or "|" in line.strip("|")
            or re.search(r"\s\d+\.\d+\s", line)
            or re.search(r"\S\s{2,}\S+\s{2,}\S", line)
            or re.search(r"\d+\.?\d*%\s+\d+\.?\d*\s*(?:mg|ppm)", line, re.IGNORECASE)
        ):
            row_count += 1
    return row_count > 3


def count_pages(text: str) -> int:
    """Number of distinct page markers ("=== PAGE 2 ===", "Page 2 of 3"), at least 1."""
    pages = {int(number) for number in _PAGE_NUMBER.findall(text or "")}
    return max(1, len(pages))
