# chains/hts_chain.py
"""
ClassificationEngine: the single consolidated pipeline.

description -> attributes -> candidate search -> scoring/validation -> ranking
-> hierarchy + conditional siblings -> duty stacking -> result envelope.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from agents.attribute_agent import AttributeAgent, ProductAttributes
from agents.hierarchy_agent import HierarchyAssembler, HierarchyPath
from agents.query_agent import ConditionalClassification, ConditionalSiblingDetector, build_clarification
from agents.scoring_agent import Candidate, MultiFactorScorer, rank_candidates
from agents.search_agent import KEYWORD, CandidateSearch, SearchResult
from agents.validation_agent import CatchAllValidator
from database_connection.entries import CodeEntry
from database_connection.repository import CodeRepository
from services.duty_calculator import DutyCalculation, DutyStackingCalculator
from tariff_programs.programs import TariffProgramRegistry, load_tariff_programs
from utils.exceptions import HTSEngineError, InvalidInputError
from utils.hts_codes import format_code
from utils.lexicons import Lexicons, load_lexicons
from utils.llm_utils import Justification, LLMAssistant
from utils.settings import Settings, get_settings
from utils.tracing import ClassificationTrace

logger = logging.getLogger(__name__)

TOP_CANDIDATES = 15
MAX_ALTERNATIVES = 10
MAX_DESCRIPTION_LENGTH = 2000
CONDITIONAL_ANSWERS = ("value", "size")


def select_diverse_alternatives(primary: Candidate, ranked: Sequence[Candidate],
                                limit: int = MAX_ALTERNATIVES) -> List[Candidate]:
    """
    Different chapters first, then different headings, then the best of the rest.
    The selection is returned ordered by score.
    """
    pool = list(ranked[1:])
    chosen: List[Candidate] = []
    used_chapters = {primary.entry.chapter}
    used_headings = {primary.code[:4]}

    for c in pool:
        if len(chosen) >= limit:
            break
        if c.entry.chapter not in used_chapters:
            used_chapters.add(c.entry.chapter)
            chosen.append(c)

    for c in pool:
        if len(chosen) >= limit:
            break
        heading = c.code[:4]
        if heading not in used_headings and c not in chosen:
            used_headings.add(heading)
            chosen.append(c)

    for c in pool:
        if len(chosen) >= limit:
            break
        if c not in chosen:
            chosen.append(c)

    chosen.sort(key=lambda c: c.score, reverse=True)
    return chosen


def summarize_duty(calculation: DutyCalculation, base_rate: Optional[str], special_rates: Optional[str]) -> Dict:
    additional = [f"+{d.rate:g}% ({d.program_name})" for d in calculation.additional_duties]
    return {
        "baseMfn": base_rate or "N/A",
        "additional": ", ".join(additional) if additional else "None",
        "effective": f"{calculation.total_rate:.1f}%",
        "special": special_rates,
    }


class ClassificationEngine:
    """
    Classifies a free-text product description into an HTS code and stacks its duties.

    Args:
        repository: Code catalog (in-memory or SQL).
        settings: Thresholds, weights and feature flags.
        lexicons: Material / product-type / chapter lookup tables.
        registry: Tariff program data for the duty calculator.
        semantic_client: Optional similarity-search collaborator.
        llm: Optional LLMAssistant for interpretation hints, translations and justification.
    """

    def __init__(self, repository: CodeRepository, settings: Optional[Settings] = None,
                 lexicons: Optional[Lexicons] = None, registry: Optional[TariffProgramRegistry] = None,
                 semantic_client=None, llm: Optional[LLMAssistant] = None):
        self.settings = settings or get_settings()
        self.repository = repository
        self.lexicons = lexicons or load_lexicons(str(self.settings.lexicon_data_dir))
        self.registry = registry or load_tariff_programs(str(self.settings.tariff_data_dir))
        self.llm = llm

        self.attributes = AttributeAgent(self.lexicons)
        self.search = CandidateSearch(repository, self.settings, semantic_client)
        self.scorer = MultiFactorScorer(self.lexicons, self.settings.weights, self.settings.flags)
        self.validator = CatchAllValidator(repository)
        self.hierarchy = HierarchyAssembler(repository, self.lexicons.chapters)
        self.conditionals = ConditionalSiblingDetector(repository)
        self.calculator = DutyStackingCalculator(self.registry)

    async def resolve_rates(self, entry: CodeEntry) -> Tuple[Optional[str], Optional[str]]:
        """Base and special rate for an entry, inherited from the nearest ancestor that has one."""
        base_rate, special_rates = entry.base_rate, entry.special_rates
        if base_rate:
            return base_rate, special_rates
        for ancestor in reversed(await self.repository.get_ancestors(entry.code)):
            if ancestor.base_rate:
                logger.debug("Inherited rate for %s from %s: %s", entry.code, ancestor.code, ancestor.base_rate)
                return ancestor.base_rate, special_rates or ancestor.special_rates
        return None, special_rates

    async def _detect_attributes(self, description: str, material: Optional[str],
                                 trace: ClassificationTrace) -> ProductAttributes:
        attrs = self.attributes.detect(description, material_hint=material)
        if self.llm is not None and self.settings.flags.llm_enrichment and (
            attrs.material is None or not attrs.product_type.type
        ):
            hints = await self.llm.interpret(description)
            if hints.material or hints.product_type:
                trace.record("interpretation_hints", material=hints.material, product_type=hints.product_type)
                attrs = self.attributes.detect(
                    description, material_hint=material,
                    hint_material=hints.material, hint_product_type=hints.product_type,
                )
        return attrs

    async def _attach_path(self, candidate: Candidate) -> HierarchyPath:
        if candidate.path is None:
            candidate.path = await self.hierarchy.assemble(candidate.code)
            candidate.full_description = candidate.path.full
        return candidate.path

    async def _answered_candidate(self, hts_code: str, attrs: ProductAttributes,
                                  scored: Sequence[Candidate]) -> Optional[Candidate]:
        """The scored candidate for a code picked by an answer; scored on demand when search missed it."""
        candidate = next((c for c in scored if c.code == hts_code), None)
        if candidate is None:
            entry = await self.repository.get_by_code(hts_code)
            if entry is None:
                return None
            results = [SearchResult(entry=entry, source=KEYWORD)]
            candidate = (await self.scorer.score_candidates(attrs, results, self.repository, self.validator))[0]
        await self._attach_path(candidate)
        return candidate

    async def _alternative_dict(self, rank: int, candidate: Candidate, primary: Candidate) -> Dict:
        chapter = candidate.entry.chapter
        material_note = None
        if chapter != primary.entry.chapter:
            material = self.lexicons.materials.material_for_chapter(chapter)
            if material:
                material_note = f"If your product is {material}"
        return {
            "rank": rank,
            "htsCode": candidate.code,
            "htsCodeFormatted": candidate.entry.code_formatted,
            "confidence": candidate.score,
            "description": candidate.entry.description,
            "fullDescription": candidate.full_description,
            "chapter": chapter,
            "chapterDescription": self.lexicons.chapters.describe(chapter),
            "headingDescription": candidate.heading_description or "",
            "materialNote": material_note,
            "source": candidate.source,
        }

    def _empty_result(self, attrs: ProductAttributes, trace: ClassificationTrace) -> Dict:
        trace.finish()
        return {
            "success": False,
            "primary": None,
            "alternatives": [],
            "showMore": 0,
            "detectedMaterial": attrs.material,
            "detectedChapters": list(attrs.material_chapters),
            "searchTerms": list(attrs.terms),
            "needsClarification": None,
            "conditionalClassification": None,
            "timing": dict(trace.timings_ms),
            "trace": trace.as_dict(),
        }

    async def classify(self, description: str, material: Optional[str] = None,
                       country: Optional[str] = None, unit_value: Optional[float] = None,
                       answers: Optional[Dict[str, str]] = None) -> Dict:
        """
        Classify a product description.

        Args:
            description: Free-text product description.
            material: Optional material; overrides detection.
            country: Optional ISO-2 origin; enables the duty breakdown.
            unit_value: Optional shipment value in USD for the estimated duty.
            answers: Answers to earlier questions ({"material", "use", "value", "size"}).

        Returns:
            Result envelope dict with camelCase keys.

        Raises:
            InvalidInputError: empty or oversized description.
        """
        if description is None or not description.strip():
            raise InvalidInputError("Product description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidInputError(f"Product description exceeds {MAX_DESCRIPTION_LENGTH} characters")
        if unit_value is not None and unit_value < 0:
            raise InvalidInputError("unitValue must not be negative")

        answers = {k: str(v) for k, v in (answers or {}).items() if v is not None and str(v).strip()}
        description = description.strip()
        if answers.get("material"):
            material = answers["material"]
        if answers.get("use"):
            description = f"{description} {answers['use']}"

        trace = ClassificationTrace()
        logger.info("Classifying '%s' (request %s)", description, trace.request_id)

        with trace.phase("attributes"):
            attrs = await self._detect_attributes(description, material, trace)
        if not attrs.terms:
            return self._empty_result(attrs, trace)

        with trace.phase("search"):
            results = await self.search.search(attrs, trace)
        if not results:
            logger.info("No candidates for '%s'", description)
            return self._empty_result(attrs, trace)

        with trace.phase("scoring"):
            scored = await self.scorer.score_candidates(attrs, results, self.repository, self.validator, trace)
            ranked = rank_candidates(scored)

        top = ranked[:TOP_CANDIDATES]
        with trace.phase("hierarchy"):
            for candidate in top:
                await self._attach_path(candidate)

        primary = top[0]
        base_rate, special_rates = await self.resolve_rates(primary.entry)

        conditional: Optional[ConditionalClassification] = None
        if self.settings.flags.conditional_detection:
            with trace.phase("conditional"):
                conditional = await self.conditionals.detect(primary.code, base_rate)
                for question_id in CONDITIONAL_ANSWERS:
                    if question_id not in answers or conditional is None:
                        continue
                    option = conditional.find_option(question_id, answers[question_id])
                    if option is None or not option.hts_code or option.hts_code == primary.code:
                        continue
                    chosen = await self._answered_candidate(option.hts_code, attrs, scored)
                    if chosen is None:
                        continue
                    trace.record("answer_applied", question=question_id, code=chosen.code, replaced=primary.code)
                    primary = chosen
                    base_rate, special_rates = await self.resolve_rates(primary.entry)
                    conditional = await self.conditionals.detect(primary.code, base_rate)

        primary_entry = primary.entry
        primary_path = primary.path
        pool = [primary] + [c for c in top if c.code[:8] != primary.code[:8]]
        alternatives = select_diverse_alternatives(primary, pool)
        alternative_dicts = [
            await self._alternative_dict(i + 2, c, primary) for i, c in enumerate(alternatives)
        ]
        show_more = max(0, len(ranked) - (MAX_ALTERNATIVES + 1))

        needs_clarification = build_clarification(
            primary.score, self.settings.confidence_threshold, primary.entry,
            [c.entry for c in alternatives], attrs.material, self.lexicons.materials,
        )
        if needs_clarification:
            trace.record("clarification", reason=needs_clarification["reason"], score=primary.score)

        duty = None
        duty_breakdown = None
        if country:
            with trace.phase("tariff"):
                calculation = self.calculator.calculate(
                    primary_entry.code, base_rate, country, unit_value=unit_value, special_rates=special_rates,
                )
            duty = summarize_duty(calculation, base_rate, special_rates)
            duty_breakdown = calculation.to_json_dict()

        plain_language = {}
        if self.llm is not None and self.settings.flags.llm_enrichment:
            with trace.phase("translation"):
                items = [(primary_entry.code, primary_path.full)]
                items.extend((c.code, c.full_description) for c in alternatives)
                plain_language = await self.llm.translate_many(items)
            for alt in alternative_dicts:
                alt["plainDescription"] = plain_language.get(alt["htsCode"])

        other_exclusions = None
        if primary.is_other and primary.other_validation is not None:
            other_exclusions = [s.description for s in primary.other_validation.excluded_siblings]

        trace.finish()
        logger.info(
            "Classified '%s' as %s (score %d, %d candidates, %s path) in %dms",
            description, format_code(primary_entry.code), primary.score, len(ranked),
            trace.search_path, trace.timings_ms.get("total", 0),
        )

        return {
            "success": True,
            "primary": {
                "htsCode": primary_entry.code,
                "htsCodeFormatted": primary_entry.code_formatted,
                "confidence": max(self.settings.confidence_floor, primary.score),
                "path": primary_path.as_dict(),
                "fullDescription": primary_path.full,
                "shortDescription": primary_entry.description,
                "plainDescription": plain_language.get(primary_entry.code),
                "baseRate": base_rate,
                "specialRates": special_rates,
                "duty": duty,
                "dutyBreakdown": duty_breakdown,
                "isOther": primary.is_other,
                "otherExclusions": other_exclusions,
                "otherValidation": primary.other_validation.as_dict() if primary.other_validation else None,
                "scoringFactors": primary.factors.as_dict(),
            },
            "alternatives": alternative_dicts,
            "showMore": show_more,
            "detectedMaterial": attrs.material,
            "detectedChapters": list(attrs.material_chapters),
            "searchTerms": list(attrs.terms),
            "needsClarification": needs_clarification,
            "conditionalClassification": (
                conditional.as_dict() if conditional is not None and conditional.has_conditions else None
            ),
            "timing": dict(trace.timings_ms),
            "trace": trace.as_dict(),
        }

    async def justify(self, description: str, material: Optional[str] = None,
                      country: Optional[str] = None) -> Justification:
        """Classify, then explain the result in GRI 1 / GRI 6 terms."""
        result = await self.classify(description, material=material, country=country)
        llm = self.llm or LLMAssistant(self.settings)
        return await llm.justify(description.strip(), result)


def build_repository(settings: Settings) -> CodeRepository:
    """SQL repository when DATABASE_URL is set, otherwise the CSV-backed in-memory one."""
    from database_connection.config import DatabaseConfig
    from database_connection.repository import InMemoryCodeRepository, SqlCodeRepository

    if settings.database_url:
        config = DatabaseConfig(settings.database_url)
        logger.info("Using SQL code repository")
        return SqlCodeRepository(config.get_session_factory())
    if settings.catalog_csv:
        logger.info("Using in-memory code repository from %s", settings.catalog_csv)
        return InMemoryCodeRepository.from_csv(settings.catalog_csv)
    raise HTSEngineError("No code catalog configured: set HTS_CATALOG_CSV or DATABASE_URL")


def build_engine(settings: Optional[Settings] = None) -> ClassificationEngine:
    settings = settings or get_settings()
    semantic_client = None
    if settings.flags.semantic_search:
        from utils.vectorstore import SemanticSearchClient

        client = SemanticSearchClient(settings)
        if client.is_configured:
            semantic_client = client
        else:
            logger.warning("Semantic search enabled but OPENAI_API_KEY / QDRANT_URL missing; keyword search only")
    llm = LLMAssistant(settings) if settings.flags.llm_enrichment else None
    return ClassificationEngine(
        build_repository(settings), settings, semantic_client=semantic_client, llm=llm,
    )
