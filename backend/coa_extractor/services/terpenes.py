"""Terpene panel locating and parsing.

Terpenes are only read from an explicit panel (a method code such as
M-0255, "TERPENES BY GC-FID" or "TERPENE PROFILE"). Without a panel header
nothing is returned: stray numbers elsewhere in a COA are far more likely
than a headerless terpene table, and a fabricated 0.0x% entry is worse than
no entry.

Parsing runs two passes over the panel:
1. Table-aware: pipe/tab separated rows, amount column and unit learned
   from the header row, analyte recognised from a fixed vocabulary.
2. Plain-text fallback (only when pass 1 finds nothing):
   "<name> ... <number> <unit>" lines.
"""

import logging
import re
from functools import reduce
from typing import Dict, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz, process

from .normalizers import (
    NUMBER_PATTERN,
    PERCENT,
    MG_PER_G,
    UG_PER_G,
    is_below_detection,
    normalize_unit,
    parse_amount_to_percent,
    parse_number,
    to_percent,
)
from .records import MAX_TERPENES, Terpene
from ..config import get_settings

logger = logging.getLogger(__name__)


# Analyte name fragments, without stereo/Greek prefixes
TERPENE_VOCABULARY = (
    "myrcene", "limonene", "caryophyllene oxide", "caryophyllene", "linalool",
    "humulene", "pinene", "bisabolol", "terpinolene", "ocimene", "eucalyptol",
    "geraniol", "guaiol", "cymene", "camphene", "nerolidol", "terpineol",
    "terpinene", "fenchol", "fenchone", "borneol", "isoborneol", "valencene",
    "sabinene hydrate", "sabinene", "phellandrene", "carene", "isopulegol",
    "pulegone", "farnesene", "menthol", "nerol", "camphor", "cedrol",
    "geranyl acetate", "cineole", "selinene", "citral",
)

# Normalized spelling -> display name
CANONICAL_NAMES = {
    "limonene": "Limonene", "d-limonene": "Limonene", "delta-limonene": "Limonene",
    "myrcene": "Myrcene", "beta-myrcene": "Myrcene",
    "caryophyllene": "Caryophyllene", "beta-caryophyllene": "Caryophyllene",
    "caryophyllene oxide": "Caryophyllene Oxide", "beta-caryophyllene oxide": "Caryophyllene Oxide",
    "linalool": "Linalool",
    "humulene": "Humulene", "alpha-humulene": "Humulene",
    "pinene": "Pinene", "alpha-pinene": "Alpha-Pinene", "beta-pinene": "Beta-Pinene",
    "bisabolol": "Bisabolol", "alpha-bisabolol": "Bisabolol",
    "terpinolene": "Terpinolene",
    "ocimene": "Ocimene", "beta-ocimene": "Ocimene", "alpha-ocimene": "Ocimene",
    "eucalyptol": "Eucalyptol", "cineole": "Eucalyptol", "1-8-cineole": "Eucalyptol",
    "geraniol": "Geraniol",
    "guaiol": "Guaiol",
    "p-cymene": "p-Cymene", "cymene": "Cymene",
    "camphene": "Camphene",
    "nerolidol": "Nerolidol",
    "terpineol": "Terpineol", "alpha-terpineol": "Terpineol",
    "terpinene": "Terpinene", "alpha-terpinene": "Alpha-Terpinene", "gamma-terpinene": "Gamma-Terpinene",
    "fenchol": "Fenchol", "fenchone": "Fenchone",
    "borneol": "Borneol", "isoborneol": "Isoborneol",
    "valencene": "Valencene",
    "sabinene": "Sabinene", "sabinene hydrate": "Sabinene Hydrate",
    "phellandrene": "Phellandrene", "alpha-phellandrene": "Alpha-Phellandrene",
    "carene": "Carene", "3-carene": "Carene", "delta-3-carene": "Carene",
    "isopulegol": "Isopulegol", "pulegone": "Pulegone",
    "farnesene": "Farnesene", "beta-farnesene": "Farnesene",
}

_FRAGMENTS = "|".join(
    re.escape(f).replace(r"\ ", r"\s+")
    for f in sorted(TERPENE_VOCABULARY, key=len, reverse=True)
)

# Stereo descriptors, Greek letters and cis/trans qualifiers in front of a name
_PREFIX = (
    r"(?:\(\s*[^()\s]{1,3}\s*\)\s*-?\s*"
    r"|(?:[αβγδΔ]|alpha|beta|gamma|delta)[\s-]*"
    r"|(?:trans|cis|[dlpo]|\d)\s*-\s*)*"
)

_NAME = rf"(?<![A-Za-z])(?P<name>{_PREFIX}(?:{_FRAGMENTS}))(?![A-Za-z])"

NAME_PATTERN = re.compile(_NAME, re.IGNORECASE)
_PREFIX_ONLY = re.compile(rf"^\s*{_PREFIX}", re.IGNORECASE)

_LINE_AMOUNT = re.compile(
    rf"{_NAME}(?P<gap>[^\n\d]{{0,40}}?)(?P<value>{NUMBER_PATTERN})\s*(?P<unit>%|mg\s*/\s*g|[µμu]g\s*/\s*g|ppm)",
    re.IGNORECASE,
)

_PANEL_HEADERS = (
    ("method code M-0255", re.compile(r"M-0?255\b", re.IGNORECASE)),
    ("TERPENES BY GC", re.compile(r"TERPENES?\s+BY\s+GC(?:\s*-?\s*(?:FID|MS))?", re.IGNORECASE)),
    ("TERPENE PROFILE", re.compile(r"TERPENE\s+PROFILE", re.IGNORECASE)),
)

# Next section, next method code or next page
_PANEL_END = re.compile(
    r"\n[ \t]*(?:#{1,6}[ \t]|M-\d{3,4}[A-Z]?\s*:|=+\s*PAGE\b|PAGE\s+\d+\s+OF\s+\d+)",
    re.IGNORECASE,
)

_COLUMN_SEPARATOR = re.compile(r"[|\t]")
_RULE_ROW = re.compile(r"^[\s|:\-+=]+$")
_TOTAL_ROW = re.compile(r"TOTAL\s+TERPENES?", re.IGNORECASE)
_AMOUNT_LABEL = re.compile(
    r"\b(?:AMT|AMOUNT|RESULTS?|CONC(?:ENTRATION)?|MASS|VALUE|LEVEL)\b|%|mg\s*/\s*g|[µμu]g\s*/\s*g|ppm",
    re.IGNORECASE,
)
_NON_AMOUNT_COLUMN = re.compile(r"\b(?:LOD|LOQ|LIMIT|SPEC|PASS|FAIL|ANALYTE|COMPOUND)\b", re.IGNORECASE)
_VALUE_CELL = re.compile(r"\d")
_HEADER_WORDS = re.compile(r"^(?:terpenes?|analytes?|compounds?|name|total.*)$")

# Preferred amount column when a header offers several (percent first)
_UNIT_RANK = {PERCENT: 0, MG_PER_G: 1, UG_PER_G: 2, None: 3}


def normalize_terpene_name(raw: str) -> str:
    """
    Map a raw analyte name to its canonical display form.

    "β-MYRCENE" -> "Myrcene", "trans-Nerolidol" -> "Nerolidol",
    "(-)-α-Bisabolol" -> "Bisabolol". Unknown names are title-cased.
    """
    n = re.sub(r"\([^)]*\)", " ", raw)
    n = re.sub(r"β|&beta;|\bbeta\b", "beta-", n, flags=re.IGNORECASE)
    n = re.sub(r"α|&alpha;|\balpha\b", "alpha-", n, flags=re.IGNORECASE)
    n = re.sub(r"γ|&gamma;|\bgamma\b", "gamma-", n, flags=re.IGNORECASE)
    n = re.sub(r"δ|Δ|&delta;|\bdelta\b", "delta-", n, flags=re.IGNORECASE)
    n = re.sub(r"\b(?:trans|cis)\s*-\s*", "", n, flags=re.IGNORECASE)
    n = re.sub(r"-\s*oxide", " oxide", n, flags=re.IGNORECASE)
    n = re.sub(r"[^A-Za-z0-9 -]", " ", n)
    n = re.sub(r"\s*-[\s-]*", "-", n)
    n = re.sub(r"\s+", " ", n).strip(" -").lower()

    if n in CANONICAL_NAMES:
        return CANONICAL_NAMES[n]
    return n.title()


def _keep_maximum(acc: Dict[str, float], item: Tuple[str, float]) -> Dict[str, float]:
    name, value = item
    if value <= acc.get(name, 0.0):
        return acc
    return {**acc, name: value}


def _split_cells(line: str) -> List[str]:
    return [c.strip() for c in re.split(r"[|\t]", line.strip().strip("|"))]


class TerpenePanelParser:
    """Finds the terpene panel in COA text and parses it into terpene percentages."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    def extract(self, text: str, limit: Optional[int] = None) -> List[Terpene]:
        """Locate and parse the terpene panel. No panel header means no terpenes."""
        panel = self.locate_panel(text)
        if panel is None:
            logger.debug("No terpene panel header found; skipping terpene parsing")
            return []
        return self.parse_panel(panel, limit=limit)

    def locate_panel(self, text: str) -> Optional[str]:
        """
        Return the slice of ``text`` holding the terpene panel, or None.

        Headers are tried in priority order. The slice runs from the header
        to the next section/method/page marker or the maximum span.
        """
        if not text:
            return None

        for label, pattern in _PANEL_HEADERS:
            match = pattern.search(text)
            if not match:
                continue

            start = match.start()
            limit = start + self.settings.terpene_panel_max_chars
            line_end = text.find("\n", match.end())
            end = limit
            if line_end != -1:
                for marker in _PANEL_END.finditer(text, line_end, limit):
                    next_line = text.find("\n", marker.end())
                    marker_line = text[marker.start():next_line if next_line != -1 else len(text)]
                    # A sub-heading of the panel itself does not close it
                    if re.search(r"TERPEN", marker_line, re.IGNORECASE):
                        continue
                    end = marker.start()
                    break
            panel = text[start:min(end, len(text))]
            logger.debug(f"Terpene panel detected ({label}), section length {len(panel)}")
            return panel

        return None

    def parse_panel(self, panel: str, limit: Optional[int] = None) -> List[Terpene]:
        """
        Parse a panel slice into at most ``limit`` terpenes, highest first.

        Duplicate names keep their maximum value; values outside (0, 20)
        percent are discarded as OCR artifacts.
        """
        if limit is None:
            limit = self.settings.terpene_parse_limit
        limit = min(limit, MAX_TERPENES)

        candidates = self._parse_table(panel)
        if not candidates:
            candidates = self._parse_lines(panel)

        in_bounds = ((name, round(pct, 6)) for name, pct in candidates if 0 < pct < 20)
        best = reduce(_keep_maximum, in_bounds, {})

        terpenes = [
            Terpene(name=name, percentage=pct)
            for name, pct in sorted(best.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
        logger.debug(f"Parsed terpene candidates: {terpenes[:6]}")
        return terpenes[:limit]

    # ------------------------------------------------------------------
    # Pass 1: tables
    # ------------------------------------------------------------------

    def _parse_table(self, panel: str) -> List[Tuple[str, float]]:
        amount_col: Optional[int] = None
        header_unit: Optional[str] = None
        found: List[Tuple[str, float]] = []

        for line in panel.splitlines():
            if not _COLUMN_SEPARATOR.search(line) or _RULE_ROW.match(line):
                continue
            cells = _split_cells(line)
            if not any(cells):
                continue

            analyte = self._find_analyte(cells)
            if analyte is None:
                header = self._read_header(cells)
                if header is not None:
                    amount_col, header_unit = header
                    logger.debug(f"Terpene table header: amount column {amount_col}, unit {header_unit}")
                continue
            if _TOTAL_ROW.search(line):
                continue

            name_idx, raw_name = analyte
            amount_cell = self._pick_amount_cell(cells, name_idx, amount_col, raw_name)
            if amount_cell is None:
                continue
            if is_below_detection(amount_cell):
                logger.debug(f"{raw_name}: below detection ({amount_cell})")
                continue

            percent = parse_amount_to_percent(amount_cell, header_unit)
            if percent is None:
                continue
            found.append((normalize_terpene_name(raw_name), percent))

        return found

    def _find_analyte(self, cells: List[str]) -> Optional[Tuple[int, str]]:
        """Index and raw name of the analyte cell in a row, if any."""
        for idx, cell in enumerate(cells):
            match = NAME_PATTERN.search(cell)
            if match:
                return idx, match.group("name")

        # OCR-garbled names ("MYRCENF", "LlNALOOL") against the vocabulary
        for idx, cell in enumerate(cells):
            prefix = _PREFIX_ONLY.match(cell).group(0)
            core = cell[len(prefix):].strip().lower()
            if len(core) < 5 or not core.replace(" ", "").isalpha() or _HEADER_WORDS.match(core):
                continue
            best = process.extractOne(
                core,
                TERPENE_VOCABULARY,
                scorer=fuzz.ratio,
                score_cutoff=self.settings.terpene_fuzzy_threshold,
            )
            if best:
                logger.debug(f"Fuzzy analyte match: '{cell}' -> '{best[0]}' ({best[1]:.0f})")
                return idx, prefix + best[0]
        return None

    def _read_header(self, cells: List[str]) -> Optional[Tuple[Optional[int], Optional[str]]]:
        """Learn the amount column and its unit from a header row."""
        if any(_VALUE_CELL.search(c) for c in cells):
            return None

        options = []
        for idx, cell in enumerate(cells):
            if not cell or not _AMOUNT_LABEL.search(cell) or _NON_AMOUNT_COLUMN.search(cell):
                continue
            unit = normalize_unit(cell)
            options.append((_UNIT_RANK[unit], idx, unit))

        if not options:
            return None
        _, idx, unit = min(options)
        return idx, unit

    def _pick_amount_cell(
        self,
        cells: List[str],
        name_idx: int,
        amount_col: Optional[int],
        raw_name: str,
    ) -> Optional[str]:
        """The learned amount column, else the nearest cell carrying a value."""
        if amount_col is not None and amount_col < len(cells) and amount_col != name_idx:
            return cells[amount_col]

        def holds_value(cell: str) -> bool:
            return bool(_VALUE_CELL.search(cell)) or is_below_detection(cell)

        others = [i for i in range(len(cells)) if i != name_idx and holds_value(cells[i])]
        if others:
            # Prefer cells to the right of the name at equal distance
            nearest = min(others, key=lambda i: (abs(i - name_idx), i < name_idx))
            return cells[nearest]

        # Name and amount squeezed into a single cell
        rest = cells[name_idx].split(raw_name, 1)[-1]
        return rest if holds_value(rest) else None

    # ------------------------------------------------------------------
    # Pass 2: plain text
    # ------------------------------------------------------------------

    def _parse_lines(self, panel: str) -> List[Tuple[str, float]]:
        found: List[Tuple[str, float]] = []
        for match in _LINE_AMOUNT.finditer(panel):
            if is_below_detection(match.group("gap")):
                continue
            if _TOTAL_ROW.search(match.group(0)):
                continue
            value = parse_number(match.group("value"))
            if value is None:
                continue
            percent = to_percent(value, normalize_unit(match.group("unit")))
            found.append((normalize_terpene_name(match.group("name")), percent))
        return found


def top_terpenes(terpenes: Iterable[Terpene], limit: int) -> List[Terpene]:
    """Highest ``limit`` terpenes by percentage."""
    return sorted(terpenes, key=lambda t: (-t.percentage, t.name))[:limit]
