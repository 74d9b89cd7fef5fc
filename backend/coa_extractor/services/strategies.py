"""Extraction strategies.

Each strategy is one independent heuristic pass over the full COA text and
returns a PartialRecord with its own confidence. Strategies never raise on
a miss; the field simply stays absent.

Priority order (see ``build_strategies``):
1. Lab-specific patterns (only for a recognised lab)
2. Structured sections (headers, method codes, page markers)
3. Numerical ranges (plausible magnitude windows)
4. Contextual keyword search (text window around each keyword)
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from .lab_detection import LabProfile, LabType, get_lab_profile
from .normalizers import NUMBER_PATTERN, Cannabinoid, extract_test_date, is_valid_cannabinoid, parse_number
from .records import PartialRecord
from .terpenes import TerpenePanelParser
from ..config import get_settings

logger = logging.getLogger(__name__)


_KEYWORDS = {
    Cannabinoid.THC: r"\bTHC\b",
    Cannabinoid.CBD: r"\bCBD\b",
    Cannabinoid.TOTAL: r"\bCANNABINOIDS\b",
}

# Most specific first: "TOTAL THC", "THC TOTAL", then bare "THC"
_LAB_VALUE_PATTERNS = {
    kind: [
        re.compile(rf"TOTAL\s+{kw}\s*:?\s*({NUMBER_PATTERN})\s*%", re.IGNORECASE),
        re.compile(rf"{kw}\s+TOTAL\s*:?\s*({NUMBER_PATTERN})\s*%", re.IGNORECASE),
        re.compile(rf"{kw}\s*:?\s*({NUMBER_PATTERN})\s*%", re.IGNORECASE),
    ]
    for kind, kw in _KEYWORDS.items()
}

# Section boundaries: "LABEL:" lines, method codes, markdown headings, page markers
_SECTION_SPLIT = re.compile(r"\n(?=[A-Z-]+:|M-\d+:|#{1,6}\s|=+\s*PAGE)")
_CANNABINOID_SECTION = re.compile(r"POTENCY|CANNABINOID|\bTHC\b|\bCBD\b", re.IGNORECASE)

# Acid forms (THC-A, THCA, CBD A) are reported separately from THC / CBD
_NOT_ACID = r"(?![-\s]?A\b)"
_ACID_FORM = re.compile(r"\b(?:THC|CBD)[-\s]?A\b", re.IGNORECASE)

# Keyword, then a short non-numeric gap, then the first percentage.
# A "TOTAL THC" line anywhere in the section beats a bare "THC" line.
_SECTION_VALUE_PATTERNS = {
    Cannabinoid.THC: [
        re.compile(rf"TOTAL\s+THC\b{_NOT_ACID}[^%\d\n]{{0,25}}?({NUMBER_PATTERN})\s*%", re.IGNORECASE),
        re.compile(rf"(?<![A-Z])THC\b{_NOT_ACID}[^%\d\n]{{0,25}}?({NUMBER_PATTERN})\s*%", re.IGNORECASE),
    ],
    Cannabinoid.CBD: [
        re.compile(rf"TOTAL\s+CBD\b{_NOT_ACID}[^%\d\n]{{0,25}}?({NUMBER_PATTERN})\s*%", re.IGNORECASE),
        re.compile(rf"(?<![A-Z])CBD\b{_NOT_ACID}[^%\d\n]{{0,25}}?({NUMBER_PATTERN})\s*%", re.IGNORECASE),
    ],
    Cannabinoid.TOTAL: [
        re.compile(
            rf"TOTAL\b[^%\d\n]{{0,15}}?CANNABINOIDS?\b[^%\d\n]{{0,25}}?({NUMBER_PATTERN})\s*%", re.IGNORECASE
        ),
    ],
}

_PERCENT_VALUE = re.compile(rf"({NUMBER_PATTERN})\s*%", re.IGNORECASE)
_DECIMAL_TOKEN = re.compile(r"\d+\.\d+")


def extract_cannabinoid_value(text: str, kind: Cannabinoid) -> Optional[float]:
    """First in-range value for ``kind`` using the lab-style "LABEL: n%" patterns."""
    for pattern in _LAB_VALUE_PATTERNS[kind]:
        for match in pattern.finditer(text):
            value = parse_number(match.group(1))
            if is_valid_cannabinoid(value, kind):
                return value
    return None


class ExtractionStrategy(ABC):
    """One heuristic extraction pass: ``extract(text) -> PartialRecord``."""

    name = "strategy"
    baseline_confidence = 0

    def baseline(self) -> PartialRecord:
        """Empty record carrying only this strategy's tag and baseline confidence."""
        return PartialRecord(extraction_method=self.name, confidence=self.baseline_confidence)

    @abstractmethod
    def extract(self, text: str) -> PartialRecord:
        """Extract whatever this strategy can find. Pure and deterministic."""

    def _add_test_date(self, record: PartialRecord, text: str, bonus: int = 5) -> None:
        test_date = extract_test_date(text)
        if test_date:
            record.test_date = test_date
            record.bump(bonus)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class LabSpecificStrategy(ExtractionStrategy):
    """Hand-tuned patterns for one lab's COA layout."""

    baseline_confidence = 40

    def __init__(self, profile: LabProfile, terpene_parser: Optional[TerpenePanelParser] = None, settings=None):
        self.profile = profile
        self.settings = settings or get_settings()
        self.terpene_parser = terpene_parser or TerpenePanelParser(self.settings)
        self.name = f"{profile.lab_type.value}_specific"

    def extract(self, text: str) -> PartialRecord:
        record = self.baseline()
        record.lab_name = self.profile.lab_name
        record.category = self.profile.category
        clean = re.sub(r"\s+", " ", text).strip()

        batch = re.search(self.profile.batch_pattern, clean, re.IGNORECASE)
        if batch:
            record.batch_id = batch.group(1).upper()
            record.bump(15)

        strain = re.search(self.profile.strain_pattern, clean, re.IGNORECASE)
        if strain:
            name = strain.group(1).strip(" -&'")
            if 1 < len(name) <= 60:
                record.strain_name = name
                record.bump(10)

        matrix = re.search(self.profile.matrix_pattern, text, re.IGNORECASE)
        if matrix:
            record.sub_category = matrix.group(1).upper()
            record.bump(5)

        record.set_cannabinoid(Cannabinoid.THC, extract_cannabinoid_value(clean, Cannabinoid.THC), bonus=25)
        record.set_cannabinoid(Cannabinoid.CBD, extract_cannabinoid_value(clean, Cannabinoid.CBD), bonus=20)
        record.set_cannabinoid(Cannabinoid.TOTAL, extract_cannabinoid_value(clean, Cannabinoid.TOTAL), bonus=20)

        self._add_test_date(record, text)

        panel = self.terpene_parser.locate_panel(text)
        if panel:
            terpenes = self.terpene_parser.parse_panel(panel, limit=self.settings.terpene_result_limit)
            if terpenes:
                record.terpenes = terpenes
                record.bump(5)

        return record


class StructuredPatternStrategy(ExtractionStrategy):
    """Split the text into sections and read cannabinoid lines inside each."""

    name = "structured_pattern"
    baseline_confidence = 30

    field_bonus = {
        Cannabinoid.THC: 15,
        Cannabinoid.CBD: 10,
        Cannabinoid.TOTAL: 10,
    }

    def extract(self, text: str) -> PartialRecord:
        record = self.baseline()
        for section in _SECTION_SPLIT.split(text):
            if _CANNABINOID_SECTION.search(section):
                self._read_section(section, record)
            if record.test_date is None:
                self._add_test_date(record, section)
        return record

    def _read_section(self, section: str, record: PartialRecord) -> None:
        lines = section.splitlines()
        for kind, patterns in _SECTION_VALUE_PATTERNS.items():
            if record.get_cannabinoid(kind) is None:
                self._read_value(lines, kind, patterns, record)

    def _read_value(self, lines: List[str], kind: Cannabinoid, patterns, record: PartialRecord) -> None:
        for pattern in patterns:
            for line in lines:
                for match in pattern.finditer(line):
                    if record.set_cannabinoid(kind, parse_number(match.group(1)), bonus=self.field_bonus[kind]):
                        return


class NumericalRangeStrategy(ExtractionStrategy):
    """
    Classify every decimal token by magnitude.

    15-35 is a THC candidate, 0.01-5 a CBD candidate and 15-40 a total
    candidate as long as it is within 5 points of the chosen THC value.
    First qualifying token per field wins; a token fills one field only.
    Lines reporting acid forms (THC-A, CBDA) are skipped.
    """

    name = "numerical_analysis"
    baseline_confidence = 25

    thc_range = (15.0, 35.0)
    cbd_range = (0.01, 5.0)
    total_range = (15.0, 40.0)
    total_thc_gap = 5.0

    def extract(self, text: str) -> PartialRecord:
        record = self.baseline()
        for line in text.splitlines():
            if _ACID_FORM.search(line):
                continue
            for token in _DECIMAL_TOKEN.finditer(line):
                self._classify(float(token.group(0)), record)

        self._add_test_date(record, text)
        return record

    def _classify(self, value: float, record: PartialRecord) -> None:
        if record.thc_percentage is None and self._within(value, self.thc_range):
            record.set_cannabinoid(Cannabinoid.THC, value, bonus=20)
            return
        if record.cbd_percentage is None and self._within(value, self.cbd_range):
            record.set_cannabinoid(Cannabinoid.CBD, value, bonus=15)
            return
        if record.total_cannabinoids is None and self._within(value, self.total_range):
            thc = record.thc_percentage
            if thc is None or abs(value - thc) <= self.total_thc_gap:
                record.set_cannabinoid(Cannabinoid.TOTAL, value, bonus=15)

    @staticmethod
    def _within(value: float, bounds) -> bool:
        low, high = bounds
        return low <= value <= high


class ContextualSearchStrategy(ExtractionStrategy):
    """
    Read the percentage nearest to each keyword occurrence.

    Only the nearest value counts; when it is out of range that occurrence
    is skipped rather than falling back to a farther value, which usually
    belongs to a neighbouring line.
    """

    name = "contextual_search"
    baseline_confidence = 20

    targets = (
        (Cannabinoid.THC, rf"THC{_NOT_ACID}"),
        (Cannabinoid.CBD, rf"CBD{_NOT_ACID}"),
        (Cannabinoid.TOTAL, "CANNABINOID"),
    )

    def __init__(self, window: Optional[int] = None, settings=None):
        settings = settings or get_settings()
        self.window = window if window is not None else settings.context_window_chars

    def extract(self, text: str) -> PartialRecord:
        record = self.baseline()
        for kind, keyword in self.targets:
            value = self.find_value_in_context(text, keyword, kind)
            if value is not None:
                record.set_cannabinoid(kind, value, bonus=15)
        self._add_test_date(record, text)
        return record

    def find_value_in_context(self, text: str, keyword: str, kind: Cannabinoid) -> Optional[float]:
        """
        First keyword occurrence whose nearest percentage (within ``window``
        chars) is in range. Values after the keyword are preferred; one
        before it is only used when nothing follows.
        """
        for occurrence in re.finditer(keyword, text, re.IGNORECASE):
            start = max(0, occurrence.start() - self.window)
            end = min(len(text), occurrence.end() + self.window)
            context = text[start:end]
            kw_start = occurrence.start() - start
            kw_end = occurrence.end() - start

            candidates = []
            for match in _PERCENT_VALUE.finditer(context):
                if match.start() >= kw_end:
                    candidates.append((0, match.start() - kw_end, match.group(1)))
                else:
                    candidates.append((1, max(0, kw_start - match.end()), match.group(1)))
            if not candidates:
                continue

            _, _, token = min(candidates)
            value = parse_number(token)
            if is_valid_cannabinoid(value, kind):
                return value
        return None


def build_strategies(
    lab_type: LabType,
    terpene_parser: Optional[TerpenePanelParser] = None,
    settings=None,
) -> List[ExtractionStrategy]:
    """Strategies for a document, in execution (priority) order."""
    settings = settings or get_settings()
    strategies: List[ExtractionStrategy] = [
        StructuredPatternStrategy(),
        NumericalRangeStrategy(),
        ContextualSearchStrategy(settings=settings),
    ]
    profile = get_lab_profile(lab_type)
    if profile is not None:
        strategies.insert(0, LabSpecificStrategy(profile, terpene_parser, settings))
    return strategies
