"""Lab-format detection.

Labs lay out their COAs differently; the detected lab decides which
lab-specific strategy runs and which default metadata fills the record.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LabType(str, Enum):
    """Known COA layouts."""
    TWO_RIVER = "2river"
    SC_LABS = "sclabs"
    STEEP_HILL = "steephill"
    GENERIC = "generic"


@dataclass(frozen=True)
class LabProfile:
    """Hand-tuned layout knowledge and record defaults for one lab."""
    lab_type: LabType
    detect_pattern: str
    name_pattern: str
    lab_name: str
    batch_pattern: str
    strain_pattern: str
    matrix_pattern: str
    category: Optional[str] = None
    sub_category: Optional[str] = None


# Priority order matters: first match wins.
LAB_PROFILES = (
    LabProfile(
        lab_type=LabType.TWO_RIVER,
        detect_pattern=r"2\s*RIVER\s*LABS",
        name_pattern=r"2\s*RIVER\s*LABS[^,\n]*(?:,\s*INC\.?)?",
        lab_name="2 RIVER LABS, INC",
        batch_pattern=r"(?:BATCH\s*ID\s*:?\s*)?\b(EVM\d{4,})",
        strain_pattern=r"SAMPLE\s*:\s*([A-Z][A-Z\s&'-]+?)\s*\(?FLOWER",
        matrix_pattern=r"(?:MATRIX\s*:\s*)?(FLOWER)",
        category="INHALABLE",
        sub_category="FLOWER",
    ),
    LabProfile(
        lab_type=LabType.SC_LABS,
        detect_pattern=r"SC\s*LABS",
        name_pattern=r"SC\s*LABS[^,\n]*",
        lab_name="SC LABS",
        batch_pattern=r"(?:BATCH|LOT)\s*(?:ID|#|NO\.?|NUMBER)?\s*:?\s*([A-Z0-9][A-Z0-9-]{4,})",
        strain_pattern=r"(?:SAMPLE\s*NAME|PRODUCT\s*NAME)\s*:\s*([A-Z0-9][A-Z0-9\s&'#-]+?)\s*(?:\(|\b(?:SAMPLE|MATRIX|BATCH|LOT|CATEGORY|TYPE)\b|$)",
        matrix_pattern=r"MATRIX\s*:\s*(FLOWER|PRE-?ROLL|CONCENTRATE|VAPE|CARTRIDGE|EDIBLE|TINCTURE|TOPICAL)",
    ),
    LabProfile(
        lab_type=LabType.STEEP_HILL,
        detect_pattern=r"STEEP\s*HILL",
        name_pattern=r"STEEP\s*HILL[^,\n]*",
        lab_name="STEEP HILL LABS",
        batch_pattern=r"(?:BATCH|LOT)\s*(?:ID|#|NO\.?|NUMBER)?\s*:?\s*([A-Z0-9][A-Z0-9-]{4,})",
        strain_pattern=r"(?:STRAIN|SAMPLE\s*NAME)\s*:\s*([A-Z0-9][A-Z0-9\s&'#-]+?)\s*(?:\(|\b(?:SAMPLE|MATRIX|BATCH|LOT|CATEGORY|TYPE)\b|$)",
        matrix_pattern=r"(?:MATRIX|SAMPLE\s*TYPE)\s*:\s*(FLOWER|PRE-?ROLL|CONCENTRATE|VAPE|CARTRIDGE|EDIBLE|TINCTURE|TOPICAL)",
    ),
)

_PROFILES_BY_TYPE = {profile.lab_type: profile for profile in LAB_PROFILES}


def get_lab_profile(lab_type: LabType) -> Optional[LabProfile]:
    """Profile for a lab type; None for generic."""
    return _PROFILES_BY_TYPE.get(LabType(lab_type))


def detect_lab_type(text: str) -> LabType:
    """Return the lab layout tag for the text. Never fails; defaults to generic."""
    for profile in LAB_PROFILES:
        if re.search(profile.detect_pattern, text, re.IGNORECASE):
            return profile.lab_type
    return LabType.GENERIC


def detect_lab_name(text: str) -> Optional[str]:
    """Return the lab name phrase as written in the document, if any."""
    for profile in LAB_PROFILES:
        match = re.search(profile.name_pattern, text, re.IGNORECASE)
        if match:
            return match.group(0).strip()
    return None
