# utils/preprocessing.py
"""
Turn the USITC HTS CSV export into catalog rows.

The export is a flat table where hierarchy is carried by the `Indent` column.
Rows with an HTS number become CodeEntry nodes; rows without one are grouping
labels ("Men's or boys':", "Of cotton:") that belong to the next coded rows
beneath them and are kept as `parent_groupings`.
"""

import argparse
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from database_connection.entries import CodeEntry
from utils.hts_codes import CODE_LEVELS, normalize_code
from utils.lexicons import load_lexicons
from utils.text_rules import tokenize

logger = logging.getLogger(__name__)

LIST_SEPARATOR = "|"
CATALOG_COLUMNS = [
    "code", "level", "description", "parent_code", "parent_groupings",
    "base_rate", "special_rates", "keywords",
]

_WS = re.compile(r"\s+")


def _clean(value) -> str:
    return _WS.sub(" ", str(value if value is not None else "")).strip()


def flatten_hts_with_indent(df: pd.DataFrame, max_levels: int = 12,
                            add_chapters: bool = True) -> List[CodeEntry]:
    """
    Flatten an HTS export into CodeEntry rows:
      - Coded rows become entries, parented on the nearest coded row above them
      - Codeless rows at shallower indents become the entry's parent_groupings
      - Inherit general and special duty rates from parents
    """
    df = df.copy()
    df.columns = [c.strip() for c in df.columns]

    # Each level holds (code or "", description, general, special)
    levels: List[Optional[tuple]] = [None] * (max_levels + 1)
    entries: Dict[str, CodeEntry] = {}

    for _, row in df.iterrows():
        desc = _clean(row.get("Description", ""))
        try:
            indent = int(_clean(row.get("Indent", "")))
        except ValueError:
            continue
        indent = max(0, min(indent, max_levels))

        digits = normalize_code(_clean(row.get("HTS Number", "")))
        general = _clean(row.get("General Rate of Duty", ""))
        special = _clean(row.get("Special Rate of Duty", ""))

        levels[indent] = (digits if len(digits) in CODE_LEVELS else "", desc, general, special)
        # clear deeper levels
        for i in range(indent + 1, max_levels + 1):
            levels[i] = None

        if not levels[indent][0]:
            continue

        groupings: List[str] = []
        parent_code = None
        for lvl in range(indent - 1, -1, -1):
            above = levels[lvl]
            if above is None:
                continue
            if above[0]:
                if digits.startswith(above[0]) and len(above[0]) < len(digits):
                    parent_code = above[0]
                break
            if above[1]:
                groupings.append(above[1])
        groupings.reverse()

        def eff(position: int) -> str:
            for lvl in range(indent, -1, -1):
                if levels[lvl] is not None and levels[lvl][position]:
                    return levels[lvl][position]
            return ""

        try:
            entries[digits] = CodeEntry(
                code=digits,
                description=desc,
                parent_code=parent_code,
                parent_groupings=groupings,
                base_rate=eff(2) or None,
                special_rates=eff(3) or None,
                keywords=tokenize(desc),
            )
        except ValueError as e:
            logger.warning("Skipping HTS row %s: %s", digits, e)

    if add_chapters:
        chapters = load_lexicons().chapters
        for chapter in sorted({code[:2] for code in entries}):
            if chapter not in entries:
                description = chapters.describe(chapter)
                entries[chapter] = CodeEntry(code=chapter, description=description, keywords=tokenize(description))
        for code, entry in list(entries.items()):
            if entry.parent_code is None and len(code) == 4 and code[:2] in entries:
                entries[code] = entry.model_copy(update={"parent_code": code[:2]})

    logger.info("Flattened %d HTS rows into %d catalog entries", len(df), len(entries))
    return sorted(entries.values(), key=lambda e: e.code)


def entries_to_frame(entries: Iterable[CodeEntry]) -> pd.DataFrame:
    rows = []
    for e in entries:
        rows.append({
            "code": e.code,
            "level": e.level,
            "description": e.description,
            "parent_code": e.parent_code or "",
            "parent_groupings": LIST_SEPARATOR.join(e.parent_groupings),
            "base_rate": e.base_rate or "",
            "special_rates": e.special_rates or "",
            "keywords": LIST_SEPARATOR.join(e.keywords),
        })
    return pd.DataFrame(rows, columns=CATALOG_COLUMNS)


def _split(value: str) -> List[str]:
    return [v for v in (value or "").split(LIST_SEPARATOR) if v]


def load_catalog_entries(path: Union[str, Path]) -> List[CodeEntry]:
    """Read a catalog CSV written by save_catalog (or hand-made with the same columns)."""
    df = pd.read_csv(path, dtype=str).fillna("")
    entries = []
    for row in df.to_dict(orient="records"):
        keywords = _split(row.get("keywords", ""))
        entries.append(CodeEntry(
            code=row["code"],
            description=row.get("description", ""),
            parent_code=row.get("parent_code") or None,
            parent_groupings=_split(row.get("parent_groupings", "")),
            base_rate=row.get("base_rate") or None,
            special_rates=row.get("special_rates") or None,
            keywords=keywords or tokenize(row.get("description", "")),
        ))
    return entries


def save_catalog(entries: Iterable[CodeEntry], output_path: Union[str, Path]) -> Path:
    out_path = Path(output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    entries_to_frame(entries).to_csv(out_path, index=False)
    return out_path


def build_catalog(input_path: Union[str, Path], output_path: Union[str, Path]) -> Path:
    """Read the raw HTS export and save the flattened catalog CSV."""
    raw = pd.read_csv(input_path, dtype=str, keep_default_na=False)
    return save_catalog(flatten_hts_with_indent(raw), output_path)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Flatten a USITC HTS CSV export into a catalog CSV")
    parser.add_argument("input", help="Raw HTS CSV export (with an Indent column)")
    parser.add_argument("output", help="Catalog CSV to write")
    args = parser.parse_args()
    logger.info("Catalog written to %s", build_catalog(args.input, args.output))
