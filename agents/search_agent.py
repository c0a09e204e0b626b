# agents/search_agent.py
# Candidate search: semantic similarity first, keyword fallback always available.

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from agents.attribute_agent import ProductAttributes
from database_connection.entries import CodeEntry, KeywordFilter
from database_connection.repository import CodeRepository
from utils.exceptions import CollaboratorUnavailableError
from utils.hts_codes import LEAF_LEVELS
from utils.settings import Settings
from utils.tracing import ClassificationTrace

logger = logging.getLogger(__name__)

SEMANTIC = "semantic"
KEYWORD = "keyword"

HEADING_FALLBACK_TARGET = 30
BROAD_FALLBACK_TARGET = 20
KEYWORD_TAKE = 50


@dataclass
class SearchResult:
    entry: CodeEntry
    source: str
    similarity: float = 0.0


class CandidateSearch:
    """
    Two-path retrieval. The semantic collaborator is optional: any failure or an
    empty above-threshold result drops silently to the keyword priorities.
    """

    def __init__(self, repository: CodeRepository, settings: Settings, semantic_client=None):
        self.repository = repository
        self.settings = settings
        self.semantic_client = semantic_client

    async def search(self, attrs: ProductAttributes, trace: Optional[ClassificationTrace] = None) -> List[SearchResult]:
        trace = trace or ClassificationTrace()
        if self.semantic_client is not None and self.settings.flags.semantic_search:
            try:
                results = await self._semantic_search(attrs, trace)
                if results:
                    trace.search_path = SEMANTIC
                    return results
                trace.record("semantic_empty")
            except CollaboratorUnavailableError as e:
                logger.warning("Semantic search unavailable, falling back to keywords: %s", e.reason)
                trace.record("semantic_unavailable", reason=e.reason)

        trace.search_path = KEYWORD
        return await self._keyword_search(attrs, trace)

    async def _semantic_search(self, attrs: ProductAttributes, trace: ClassificationTrace) -> List[SearchResult]:
        hits = await self.semantic_client.similarity_search(
            attrs.enriched_query, self.settings.semantic_search_limit
        )
        primary = self.settings.primary_similarity_threshold
        diversity = self.settings.diversity_similarity_threshold

        chapter_best: Dict[str, object] = {}
        for hit in hits:
            if hit.similarity < diversity:
                continue
            chapter = hit.code[:2]
            best = chapter_best.get(chapter)
            if best is None or hit.similarity > best.similarity:
                chapter_best[chapter] = hit

        diverse = [h for h in hits if h.similarity >= primary]
        for chapter, hit in chapter_best.items():
            if not any(h.code[:2] == chapter for h in diverse):
                diverse.append(hit)
        diverse.sort(key=lambda h: h.similarity, reverse=True)

        trace.record(
            "semantic_filter",
            hits=len(hits),
            above_primary=sum(1 for h in hits if h.similarity >= primary),
            chapters=len(chapter_best),
        )
        if not diverse:
            return []

        similarity = {}
        for hit in diverse:
            similarity.setdefault(hit.code, hit.similarity)
        entries = await self.repository.get_by_codes(list(similarity))
        results = [SearchResult(entry=e, source=SEMANTIC, similarity=similarity[e.code]) for e in entries]
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results

    async def _keyword_search(self, attrs: ProductAttributes, trace: ClassificationTrace) -> List[SearchResult]:
        found: List[CodeEntry] = []
        seen = set()

        def add(entries: List[CodeEntry]) -> int:
            added = 0
            for e in entries:
                if e.code not in seen:
                    seen.add(e.code)
                    found.append(e)
                    added += 1
            return added

        leaf_levels = list(LEAF_LEVELS)
        chapters = list(attrs.material_chapters)

        # Priority 1: product-type headings inside the material's chapters
        if attrs.expected_headings and chapters:
            headings = [h for h in attrs.expected_headings if h[:2] in chapters]
            if headings:
                added = add(await self.repository.search_by_keyword(
                    [], KeywordFilter(headings=headings, levels=leaf_levels, limit=KEYWORD_TAKE)
                ))
                trace.record("keyword_headings", headings=headings, added=added)

        # Priority 2: material chapters with terms plus product-type keywords
        if len(found) < HEADING_FALLBACK_TARGET and chapters:
            expanded = list(dict.fromkeys(attrs.terms + list(attrs.product_type.keywords)))
            if expanded:
                added = add(await self.repository.search_by_keyword(
                    expanded, KeywordFilter(chapters=chapters, levels=leaf_levels, limit=KEYWORD_TAKE)
                ))
                trace.record("keyword_chapters", chapters=chapters, added=added)

        # Priority 3: unrestricted term match
        if len(found) < BROAD_FALLBACK_TARGET and attrs.terms:
            added = add(await self.repository.search_by_keyword(
                attrs.terms, KeywordFilter(levels=leaf_levels, limit=KEYWORD_TAKE)
            ))
            trace.record("keyword_broad", added=added)

        logger.info("Keyword search found %d candidates for '%s'", len(found), attrs.description)
        return [SearchResult(entry=e, source=KEYWORD) for e in found]
