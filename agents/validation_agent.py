# agents/validation_agent.py
# Catch-all ("Other") validation: an Other code is only right once every specific sibling is ruled out.

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from database_connection.entries import CodeEntry
from database_connection.repository import CodeRepository
from utils.hts_codes import LEAF_LEVELS, format_code, normalize_code
from utils.text_rules import extract_nouns, is_other_code, is_specific_carve_out, nouns_overlap_by_stem

logger = logging.getLogger(__name__)


@dataclass
class ExcludedSibling:
    code: str
    description: str
    reason: str

    def as_dict(self) -> Dict[str, str]:
        return {"code": self.code, "description": self.description, "reason": self.reason}


@dataclass
class OtherValidation:
    is_valid_other: bool
    excluded_siblings: List[ExcludedSibling] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {
            "isValidOther": self.is_valid_other,
            "excludedSiblings": [s.as_dict() for s in self.excluded_siblings],
        }


class CatchAllValidator:
    def __init__(self, repository: CodeRepository):
        self.repository = repository

    async def _leaf_codes_under(self, subheading: str,
                                cache: Optional[Dict[str, List[CodeEntry]]]) -> List[CodeEntry]:
        if cache is not None and subheading in cache:
            return cache[subheading]
        entries = [e for e in await self.repository.get_by_prefix(subheading) if e.level in LEAF_LEVELS]
        if cache is not None:
            cache[subheading] = entries
        return entries

    async def validate(self, terms: Sequence[str], hts_code: str,
                       cache: Optional[Dict[str, List[CodeEntry]]] = None) -> OtherValidation:
        """
        Args:
            terms: Search tokens of the product description.
            hts_code: The catch-all candidate.
            cache: Optional per-request cache of leaf entries by 6-digit subheading.

        Returns:
            OtherValidation. Invalid as soon as one specific sibling's nouns overlap a term,
            with that sibling as the only listed reason.
        """
        clean = normalize_code(hts_code)
        own_line = clean[:8]
        codes = await self._leaf_codes_under(clean[:6], cache)

        specific = [
            s for s in codes
            if s.code[:8] != own_line and not is_other_code(s.description) and is_specific_carve_out(s.description)
        ]
        if not specific:
            return OtherValidation(is_valid_other=True)

        excluded: List[ExcludedSibling] = []
        for sibling in specific:
            nouns = extract_nouns(sibling.description)
            if not nouns:
                continue
            if nouns_overlap_by_stem(terms, nouns):
                logger.debug("Other code %s conflicts with sibling %s", clean, sibling.code)
                return OtherValidation(
                    is_valid_other=False,
                    excluded_siblings=[ExcludedSibling(
                        code=format_code(sibling.code),
                        description=sibling.description,
                        reason=f'Product may match "{sibling.description}"',
                    )],
                )
            excluded.append(ExcludedSibling(
                code=format_code(sibling.code),
                description=sibling.description,
                reason=f'Product is not "{", ".join(nouns[:3])}"',
            ))

        return OtherValidation(is_valid_other=True, excluded_siblings=excluded)
