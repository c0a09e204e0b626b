# agents/hierarchy_agent.py
# Legal description path for a resolved code: ancestors, their indent groupings and the leaf.

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from database_connection.repository import CodeRepository
from utils.hts_codes import chapter_of, format_code, normalize_code
from utils.lexicons import ChapterLexicon
from utils.text_rules import strip_trailing_colon

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = ": "


@dataclass
class HierarchyPath:
    codes: List[str] = field(default_factory=list)
    descriptions: List[str] = field(default_factory=list)
    groupings: List[str] = field(default_factory=list)
    segments: List[str] = field(default_factory=list)
    short: str = ""
    chapter_description: str = ""

    @property
    def full(self) -> str:
        return SEGMENT_SEPARATOR.join(self.segments)

    def as_dict(self) -> Dict:
        return {
            "codes": list(self.codes),
            "descriptions": list(self.descriptions),
            "groupings": list(self.groupings),
            "chapterDescription": self.chapter_description,
        }


class HierarchyAssembler:
    def __init__(self, repository: CodeRepository, chapters: ChapterLexicon):
        self.repository = repository
        self.chapters = chapters

    async def assemble(self, hts_code: str) -> HierarchyPath:
        """
        Walk chapter -> leaf, placing each node's groupings before its own description.

        Segments already present (case-insensitive) are skipped, "Other" groupings are
        dropped, and an "Other" description is only kept when nothing precedes it.
        """
        clean = normalize_code(hts_code)
        entry = await self.repository.get_by_code(clean)
        nodes = await self.repository.get_ancestors(clean)
        if entry is not None:
            nodes.append(entry)

        path = HierarchyPath(chapter_description=self.chapters.describe(chapter_of(clean)))
        seen = set()
        for node in nodes:
            path.codes.append(format_code(node.code))

            for grouping in node.parent_groupings:
                cleaned = strip_trailing_colon(grouping)
                if not cleaned or cleaned.lower() == "other" or cleaned.lower() in seen:
                    continue
                path.groupings.append(cleaned)
                path.segments.append(cleaned)
                seen.add(cleaned.lower())

            desc = strip_trailing_colon(node.description)
            if not desc or desc.lower() in seen:
                continue
            path.descriptions.append(desc)
            if desc.lower() != "other" or not path.segments:
                path.segments.append(desc)
                seen.add(desc.lower())

        path.short = nodes[-1].description if nodes else ""
        if not nodes:
            logger.warning("No hierarchy found for %s", clean)
        return path
