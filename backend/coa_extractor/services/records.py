"""Record types produced by extraction.

A PartialRecord is what one strategy contributes; the ExtractedRecord is the
merged, confidence-scored result handed to callers. Every field is
independently optional so the merge can tell "absent" from "set".
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .normalizers import Cannabinoid, format_iso_instant, is_valid_cannabinoid


MIN_CONFIDENCE = 5
MAX_CONFIDENCE = 95
FALLBACK_CONFIDENCE = 10
MAX_TERPENES = 5

COMBINED_METHOD = "combined_strategies"

# Fields merged first-writer-wins, in merge order
MERGE_FIELDS = (
    "batch_id",
    "strain_name",
    "category",
    "sub_category",
    "thc_percentage",
    "cbd_percentage",
    "total_cannabinoids",
    "lab_name",
    "test_date",
    "terpenes",
)

CANNABINOID_FIELDS = {
    Cannabinoid.THC: "thc_percentage",
    Cannabinoid.CBD: "cbd_percentage",
    Cannabinoid.TOTAL: "total_cannabinoids",
}


@dataclass(frozen=True)
class Terpene:
    """A named terpene and its amount as a percentage."""
    name: str
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "percentage": self.percentage}


def clamp_confidence(value: int, low: int = MIN_CONFIDENCE, high: int = MAX_CONFIDENCE) -> int:
    """Clamp a confidence score into [low, high]."""
    return int(max(low, min(high, value)))


@dataclass
class PartialRecord:
    """Output of a single extraction strategy. Never persisted, only merged."""
    extraction_method: str = "unknown"
    confidence: int = 0
    batch_id: Optional[str] = None
    strain_name: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    thc_percentage: Optional[float] = None
    cbd_percentage: Optional[float] = None
    total_cannabinoids: Optional[float] = None
    lab_name: Optional[str] = None
    test_date: Optional[datetime] = None
    terpenes: List[Terpene] = field(default_factory=list)

    def bump(self, amount: int) -> None:
        """Add to this record's confidence."""
        self.confidence += amount

    def get_cannabinoid(self, kind: Cannabinoid) -> Optional[float]:
        return getattr(self, CANNABINOID_FIELDS[Cannabinoid(kind)])

    def set_cannabinoid(self, kind: Cannabinoid, value: Optional[float], bonus: int = 0) -> bool:
        """
        Store a cannabinoid value if it is in range.

        Out-of-range values are extraction noise: they are dropped and the
        field stays absent. Returns True when the value was stored.
        """
        if not is_valid_cannabinoid(value, kind):
            return False
        setattr(self, CANNABINOID_FIELDS[Cannabinoid(kind)], float(value))
        self.bump(bonus)
        return True

    def is_set(self, name: str) -> bool:
        value = getattr(self, name)
        if isinstance(value, list):
            return len(value) > 0
        return value is not None and value != ""

    def has_complete_potency(self) -> bool:
        """THC and total cannabinoids both present (the early-exit condition)."""
        return self.thc_percentage is not None and self.total_cannabinoids is not None


@dataclass
class ExtractedRecord(PartialRecord):
    """Final merged record. ``confidence`` is always present."""
    extraction_method: str = COMBINED_METHOD

    @classmethod
    def fallback(cls, lab_name: Optional[str]) -> "ExtractedRecord":
        """Minimal record returned when extraction itself fails."""
        return cls(
            extraction_method="fallback",
            confidence=FALLBACK_CONFIDENCE,
            lab_name=lab_name or "UNKNOWN LAB",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Transport-agnostic dict with the camelCase keys used downstream."""
        return {
            "batchId": self.batch_id,
            "strainName": self.strain_name,
            "category": self.category,
            "subCategory": self.sub_category,
            "thcPercentage": self.thc_percentage,
            "cbdPercentage": self.cbd_percentage,
            "totalCannabinoids": self.total_cannabinoids,
            "labName": self.lab_name,
            "testDate": format_iso_instant(self.test_date),
            "terpenes": [t.to_dict() for t in self.terpenes],
            "confidence": self.confidence,
            "extractionMethod": self.extraction_method,
        }

    def terpenes_json(self) -> str:
        """Terpenes as a JSON-encoded list, e.g. for a string column."""
        return json.dumps([t.to_dict() for t in self.terpenes])
