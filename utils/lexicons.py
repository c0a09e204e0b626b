# utils/lexicons.py
"""
Read-only lookup tables used by attribute detection and scoring.

The tables live as JSON files (see utils/data) so they can be refreshed
without touching scoring code. Each lexicon has a documented fallback:
no chapters for an unknown material, no hint for an unknown product type
and "Chapter NN" for a chapter without a description.
"""

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"


def _load_json(path: Path):
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


@dataclass(frozen=True)
class ProductTypeHint:
    type: Optional[str] = None
    headings: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()


NO_PRODUCT_TYPE = ProductTypeHint()


class MaterialLexicon:
    """Material word -> HTS chapters. Order matters: the first match wins."""

    def __init__(self, table: Dict[str, List[str]]):
        self._table = [(name.lower(), tuple(chapters)) for name, chapters in table.items()]

    @classmethod
    def from_json(cls, path: Path) -> "MaterialLexicon":
        return cls(_load_json(path))

    @property
    def materials(self) -> List[str]:
        return [name for name, _ in self._table]

    def detect(self, description: str) -> Optional[str]:
        desc_lower = (description or "").lower()
        for name, _ in self._table:
            if name in desc_lower:
                return name
        return None

    def chapters_for(self, material: Optional[str]) -> Tuple[str, ...]:
        if not material:
            return ()
        material_lower = material.lower()
        for name, chapters in self._table:
            if name in material_lower or material_lower in name:
                return chapters
        return ()

    def material_for_chapter(self, chapter: str) -> Optional[str]:
        """First material whose chapter set contains the chapter."""
        for name, chapters in self._table:
            if chapter in chapters:
                return name
        return None


class ProductTypeLexicon:
    """Product type -> expected headings and enrichment keywords."""

    def __init__(self, table: Dict[str, Dict[str, List[str]]]):
        hints = [
            ProductTypeHint(name.lower(), tuple(entry.get("headings", [])), tuple(entry.get("keywords", [])))
            for name, entry in table.items()
        ]
        # Longest first so "t-shirt" wins over "shirt"; sorted() keeps file order for ties.
        self._hints = sorted(hints, key=lambda h: len(h.type), reverse=True)

    @classmethod
    def from_json(cls, path: Path) -> "ProductTypeLexicon":
        return cls(_load_json(path))

    def detect(self, description: str) -> ProductTypeHint:
        desc_lower = (description or "").lower()
        for hint in self._hints:
            if hint.type in desc_lower:
                return hint
        return NO_PRODUCT_TYPE

    def get(self, product_type: Optional[str]) -> ProductTypeHint:
        if not product_type:
            return NO_PRODUCT_TYPE
        for hint in self._hints:
            if hint.type == product_type.lower():
                return hint
        return NO_PRODUCT_TYPE


class ChapterLexicon:
    def __init__(self, table: Dict[str, str]):
        self._table = dict(table)

    @classmethod
    def from_json(cls, path: Path) -> "ChapterLexicon":
        return cls(_load_json(path))

    def describe(self, chapter: str) -> str:
        return self._table.get(chapter, f"Chapter {chapter}")


@dataclass
class Lexicons:
    materials: MaterialLexicon
    product_types: ProductTypeLexicon
    chapters: ChapterLexicon = field(default_factory=lambda: ChapterLexicon({}))


@lru_cache(maxsize=4)
def load_lexicons(data_dir: Optional[str] = None) -> Lexicons:
    base = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    logger.info("Loading classification lexicons from %s", base)
    return Lexicons(
        materials=MaterialLexicon.from_json(base / "material_chapters.json"),
        product_types=ProductTypeLexicon.from_json(base / "product_types.json"),
        chapters=ChapterLexicon.from_json(base / "chapter_descriptions.json"),
    )
