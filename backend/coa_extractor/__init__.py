"""COA extraction: structured fields from the OCR text of cannabis Certificates of Analysis."""

__version__ = "1.0.0"
