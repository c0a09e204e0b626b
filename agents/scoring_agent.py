# agents/scoring_agent.py
"""
Multi-factor scoring of HTS candidates.

Every factor is independent and individually bounded; the total is clamped to
[0, 100]. Weights and optional factors come from ScoringWeights / FeatureFlags
so the engine can be tuned without code changes.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from agents.attribute_agent import ProductAttributes
from agents.hierarchy_agent import HierarchyPath
from agents.search_agent import SEMANTIC, SearchResult
from agents.validation_agent import CatchAllValidator, OtherValidation
from database_connection.entries import CodeEntry
from database_connection.repository import CodeRepository
from utils.lexicons import Lexicons
from utils.settings import FeatureFlags, ScoringWeights
from utils.text_rules import (
    extract_nouns,
    find_material_conflict,
    is_other_code,
    is_specific_carve_out,
    nouns_overlap_by_prefix,
    unmentioned_specificity_penalty,
)
from utils.tracing import ClassificationTrace

logger = logging.getLogger(__name__)

SEGMENT_TERMS = ("boys", "boy", "girls", "girl", "men", "mens", "women", "womens")

_FIRST_WORD_SPLIT = re.compile(r"[\s,;:]+")
_SEGMENT_SPLIT = re.compile(r"[,;:]")

SOURCE_RANK = {SEMANTIC: 0}


@dataclass
class ScoringFactors:
    keyword_match: int = 0
    material_match: int = 0
    specificity: int = 0
    hierarchy_coherence: int = 0
    penalties: int = 0

    @property
    def total(self) -> int:
        raw = self.keyword_match + self.material_match + self.specificity + self.hierarchy_coherence + self.penalties
        return max(0, min(100, raw))

    def as_dict(self) -> Dict[str, int]:
        return {
            "keywordMatch": self.keyword_match,
            "materialMatch": self.material_match,
            "specificity": self.specificity,
            "hierarchyCoherence": self.hierarchy_coherence,
            "penalties": self.penalties,
            "total": self.total,
        }


@dataclass
class CandidateContext:
    """Everything the scorer looks at for one catalog entry."""

    entry: CodeEntry
    parent_description: Optional[str] = None
    heading_description: Optional[str] = None
    subheading_description: Optional[str] = None
    is_other: bool = False
    is_specific: bool = False
    other_validation: Optional[OtherValidation] = None


@dataclass
class Candidate:
    entry: CodeEntry
    factors: ScoringFactors
    source: str
    similarity: float = 0.0
    is_other: bool = False
    is_specific: bool = False
    other_validation: Optional[OtherValidation] = None
    parent_description: Optional[str] = None
    heading_description: Optional[str] = None
    full_description: str = ""
    path: Optional[HierarchyPath] = None

    @property
    def code(self) -> str:
        return self.entry.code

    @property
    def score(self) -> int:
        return self.factors.total


def _type_variants(word: str) -> List[str]:
    return [word, word.replace("-", "", 1), word + "s", word.replace("s", "", 1)]


def _term_variants(term: str) -> List[str]:
    return [term, term.replace("-", "", 1), term.replace("s", "", 1), term + "s"]


class MultiFactorScorer:
    def __init__(self, lexicons: Lexicons, weights: Optional[ScoringWeights] = None,
                 flags: Optional[FeatureFlags] = None):
        self.lexicons = lexicons
        self.weights = weights or ScoringWeights()
        self.flags = flags or FeatureFlags()

    def _keyword_match(self, terms: Sequence[str], desc_lower: str, keywords_lower: List[str]) -> int:
        w = self.weights
        score = 0
        first_word = _FIRST_WORD_SPLIT.split(desc_lower)[0] if desc_lower else ""
        if any(first_word == t or first_word == t + "s" or t == first_word + "s" for t in terms):
            score += w.leading_term
        else:
            primaries = [seg.strip().split()[0] for seg in _SEGMENT_SPLIT.split(desc_lower) if seg.strip()]
            if any(p == t or p == t + "s" for t in terms for p in primaries):
                score += w.primary_segment_term

        keyword_hits = [t for t in terms if any(t in kw or kw in t for kw in keywords_lower)]
        score += min(w.keyword_cap, len(keyword_hits) * w.keyword_hit)

        desc_hits = [t for t in terms if t in desc_lower]
        score += min(w.description_cap, len(desc_hits) * w.description_hit)
        return min(w.keyword_match_cap, score)

    def score(self, attrs: ProductAttributes, ctx: CandidateContext) -> ScoringFactors:
        """
        Score one candidate.

        Args:
            attrs: Detected attributes of the user's description.
            ctx: The candidate entry with its hierarchy context.

        Returns:
            ScoringFactors; total is always within [0, 100].
        """
        w = self.weights
        entry = ctx.entry
        terms = attrs.terms
        factors = ScoringFactors()

        desc_lower = entry.description.lower()
        keywords_lower = [k.lower() for k in entry.keywords]

        # 1. keyword match
        factors.keyword_match = self._keyword_match(terms, desc_lower, keywords_lower)

        # 2. material
        if attrs.material:
            chapters = self.lexicons.materials.chapters_for(attrs.material)
            if entry.chapter in chapters:
                factors.material_match = w.material_match
            elif chapters:
                factors.penalties -= w.material_mismatch

            hierarchy_text = " ".join([
                desc_lower,
                (ctx.parent_description or "").lower(),
                (ctx.subheading_description or "").lower(),
            ])
            conflict = find_material_conflict(attrs.material, hierarchy_text)
            if conflict:
                factors.penalties -= w.material_conflict
                logger.debug("Material conflict for %s: user=%s vs catalog=%s", entry.code, attrs.material, conflict)

        # product type gates the heading
        product_type = attrs.product_type
        if product_type.type and product_type.headings and entry.heading:
            in_expected = entry.heading in product_type.headings
            heading_lower = (ctx.heading_description or "").lower()
            described = bool(heading_lower) and any(v in heading_lower for v in _type_variants(product_type.type))
            if in_expected or described:
                factors.hierarchy_coherence += w.product_type_match
            else:
                factors.penalties -= w.product_type_mismatch
                logger.debug(
                    "Product type mismatch for %s: '%s' expects %s", entry.code, product_type.type, product_type.headings
                )

        # 3. specificity
        if ctx.is_specific:
            matches = any(t in desc_lower or any(t in kw for kw in keywords_lower) for t in terms)
            if matches:
                factors.specificity = w.carve_out_match
            else:
                factors.penalties -= w.carve_out_mismatch
        elif ctx.is_other:
            valid = ctx.other_validation is not None and ctx.other_validation.is_valid_other
            factors.specificity = w.other_validated if valid else w.other_unvalidated
        else:
            factors.specificity = w.general_specificity

        # 4. hierarchy coherence
        if ctx.parent_description:
            parent_lower = ctx.parent_description.lower()
            parent_hits = [t for t in terms if t in parent_lower]
            factors.hierarchy_coherence += min(w.parent_cap, len(parent_hits) * w.parent_hit)

        if ctx.heading_description and not product_type.type:
            heading_lower = ctx.heading_description.lower()
            heading_bonus = 0
            for term in terms:
                if any(v in heading_lower for v in _term_variants(term)):
                    heading_bonus += w.heading_hit
            factors.hierarchy_coherence += min(w.heading_cap, heading_bonus)

        # demographic segment
        if self.flags.segment_matching:
            segment = next((t for t in terms if t.lower() in SEGMENT_TERMS), None)
            if segment:
                segment_lower = segment.lower()
                all_text = " ".join([desc_lower] + [g.lower() for g in entry.parent_groupings])
                variants = [segment_lower, segment_lower + "'s", segment_lower.replace("s", "", 1) + "'s"]
                if any(v in all_text for v in variants):
                    factors.keyword_match += w.segment_match
                    logger.debug("Segment match for %s: %s", entry.code, segment)
                elif len(entry.code) == 8:
                    factors.penalties -= w.segment_missing_tariff_line

        # 5. carve-out nouns the product does not mention
        if ctx.is_specific:
            nouns = extract_nouns(entry.description)
            if nouns and not nouns_overlap_by_prefix(terms, nouns):
                factors.penalties -= w.noun_mismatch

        if self.flags.unmentioned_specificity:
            factors.penalties -= unmentioned_specificity_penalty(
                desc_lower, list(terms), attrs.query_lower, cap=w.unmentioned_cap
            )

        # 6. catch-all validation
        if ctx.is_other and ctx.other_validation is not None:
            if ctx.other_validation.is_valid_other:
                excluded = len(ctx.other_validation.excluded_siblings)
                factors.specificity += min(
                    w.other_bonus_cap, w.other_bonus_base + excluded * w.other_bonus_per_exclusion
                )
            else:
                factors.penalties -= w.other_invalid
        elif ctx.is_other:
            factors.penalties -= w.other_unverified

        return factors

    async def score_candidates(self, attrs: ProductAttributes, results: Sequence[SearchResult],
                               repository: CodeRepository, validator: Optional[CatchAllValidator] = None,
                               trace: Optional[ClassificationTrace] = None) -> List[Candidate]:
        """Load hierarchy context for every search result, validate catch-alls and score."""
        context_codes = set()
        for r in results:
            e = r.entry
            if e.parent_code:
                context_codes.add(e.parent_code)
            if e.heading:
                context_codes.add(e.heading)
            if len(e.code) >= 6:
                context_codes.add(e.code[:6])
        descriptions = {e.code: e.description for e in await repository.get_by_codes(sorted(context_codes))}

        sibling_cache: Dict[str, List[CodeEntry]] = {}
        candidates: List[Candidate] = []
        for r in results:
            e = r.entry
            is_other = is_other_code(e.description)
            is_specific = is_specific_carve_out(e.description)

            validation = None
            if is_other and e.parent_code and validator is not None and self.flags.validate_other_codes:
                validation = await validator.validate(attrs.terms, e.code, sibling_cache)

            ctx = CandidateContext(
                entry=e,
                parent_description=descriptions.get(e.parent_code) if e.parent_code else None,
                heading_description=descriptions.get(e.heading) if e.heading else None,
                subheading_description=descriptions.get(e.code[:6]) if len(e.code) >= 6 else None,
                is_other=is_other,
                is_specific=is_specific,
                other_validation=validation,
            )
            candidates.append(Candidate(
                entry=e,
                factors=self.score(attrs, ctx),
                source=r.source,
                similarity=r.similarity,
                is_other=is_other,
                is_specific=is_specific,
                other_validation=validation,
                parent_description=ctx.parent_description,
                heading_description=ctx.heading_description,
            ))

        if trace is not None:
            trace.record("scored", candidates=len(candidates))
        return candidates


def rank_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    """
    Order by total descending; ties go to the semantic path, then the shorter (more
    general) code. Statistical variants of one tariff line collapse to the best.
    """
    ordered = sorted(
        candidates,
        key=lambda c: (-c.score, SOURCE_RANK.get(c.source, 1), len(c.code), -c.similarity, c.code),
    )
    seen = set()
    unique = []
    for c in ordered:
        line = c.code[:8]
        if line in seen:
            continue
        seen.add(line)
        unique.append(c)
    return unique
