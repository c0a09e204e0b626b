# utils/hts_codes.py
# Canonical code handling: digits-only storage form, dotted display form and hierarchy level.

import re
from typing import Optional

CODE_LEVELS = {
    2: "chapter",
    4: "heading",
    6: "subheading",
    8: "tariff_line",
    10: "statistical",
}

LEAF_LEVELS = ("tariff_line", "statistical")

_NON_DIGIT = re.compile(r"\D")


def normalize_code(hts_code: str) -> str:
    """Strip dots, spaces and any other separators: '6109.10.00.12' -> '6109100012'."""
    return _NON_DIGIT.sub("", hts_code or "")


def format_code(hts_code: str) -> str:
    """
    Format an HTS code for display: XXXX.XX.XX.XX

    Separators are inserted at the 4/6/8-digit boundaries only as far as the
    code reaches, so '6109' stays '6109' and '61091000' becomes '6109.10.00'.
    """
    clean = normalize_code(hts_code)
    if len(clean) <= 4:
        return clean
    parts = [clean[:4]]
    for start in (4, 6, 8):
        chunk = clean[start:start + 2]
        if chunk:
            parts.append(chunk)
    return ".".join(parts)


def validate_hts_code(hts_code: str) -> bool:
    """True when the digits form a code of one of the five hierarchy lengths."""
    clean = normalize_code(hts_code)
    stripped = (hts_code or "").replace(".", "").replace(" ", "")
    return stripped.isdigit() and len(clean) in CODE_LEVELS


def level_for_code(hts_code: str) -> Optional[str]:
    return CODE_LEVELS.get(len(normalize_code(hts_code)))


def parent_code_of(hts_code: str) -> Optional[str]:
    """Code one level up, or None for chapters."""
    clean = normalize_code(hts_code)
    if len(clean) <= 2:
        return None
    return clean[:-2]


def chapter_of(hts_code: str) -> str:
    return normalize_code(hts_code)[:2]
