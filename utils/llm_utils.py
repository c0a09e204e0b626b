# utils/llm_utils.py
# Optional LLM enrichment: interpretation hints, plain-language translations and prose justification.
# Nothing here is needed for a correct classification or duty result; every call has a
# deterministic fallback and every reply is validated against a pydantic schema.

import asyncio
import json
import logging
from typing import Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from langchain_core.prompts import PromptTemplate
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, ValidationError

from utils.exceptions import CollaboratorUnavailableError
from utils.serialization import CamelModel
from utils.settings import Settings, get_settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class InterpretationHints(CamelModel):
    material: Optional[str] = None
    product_type: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)


class Justification(CamelModel):
    gri1_analysis: str
    gri6_analysis: str
    carve_out_exclusions: List[str] = Field(default_factory=list)
    confidence_factors: List[str] = Field(default_factory=list)
    full_justification: str


INTERPRET_TEMPLATE = """
You are an expert in HTS (Harmonized Tariff Schedule) classification.

Analyze this product description and extract the features relevant to HTS classification:

Product: {description}

Return a JSON object with these fields:
- material: Primary material composition (single lowercase word, or null)
- productType: What the product is (e.g. "t-shirt", "planter"), or null
- keywords: Up to 5 search keywords

Return ONLY valid JSON, no additional text.
"""

TRANSLATE_TEMPLATE = """
Explain in one plain-English sentence what kind of product falls under HTS code {code}.

Legal description: {description}

Return ONLY the sentence.
"""

JUSTIFY_TEMPLATE = """
You are a licensed customs broker. Write a classification justification for the product below
using the General Rules of Interpretation.

Product: {description}
HTS code: {code}
Legal description: {full_description}
Ruled-out sibling codes: {exclusions}
Scoring factors: {factors}

Return a JSON object with these fields:
- gri1Analysis: GRI 1 reasoning for the chapter and heading
- gri6Analysis: GRI 6 reasoning for the subheading
- carveOutExclusions: list of excluded specific categories
- confidenceFactors: list of short factor statements
- fullJustification: markdown document combining the above

Return ONLY valid JSON, no additional text.
"""


def strip_json_fences(response: str) -> str:
    response = (response or "").strip()
    if response.startswith("```json"):
        response = response[7:]
    elif response.startswith("```"):
        response = response[3:]
    if response.endswith("```"):
        response = response[:-3]
    return response.strip()


def parse_llm_json(response: str, schema: Type[ModelT]) -> Optional[ModelT]:
    """Parse a (possibly fenced) JSON reply into the schema, or None when it does not fit."""
    try:
        return schema.model_validate(json.loads(strip_json_fences(response)))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.warning("Discarding LLM reply that does not match %s: %s", schema.__name__, e)
        return None


def build_justification(description: str, result: Dict) -> Justification:
    """
    Deterministic GRI 1 / GRI 6 justification built from a classification result envelope.
    """
    primary = result.get("primary")
    if not primary:
        return Justification(
            gri1_analysis="No classification result available.",
            gri6_analysis="",
            full_justification="Unable to generate justification without classification result.",
        )

    code = primary["htsCode"]
    chapter, heading = code[:2], code[:4]
    material = result.get("detectedMaterial")
    descriptions = primary.get("path", {}).get("descriptions", [])
    heading_text = descriptions[1] if len(descriptions) > 1 else primary.get("shortDescription", "")

    basis = f"its {material} material" if material else "its essential character"
    gri1 = (
        f'The product "{description}" is classified under Chapter {chapter} based on {basis}. '
        f'Heading {heading} specifically provides for "{heading_text}".'
    )
    if primary.get("isOther"):
        gri6 = (
            f'Within heading {heading}, the product falls under the "Other" subheading because it does '
            "not match any specific carve-out codes."
        )
    else:
        gri6 = f'The specific subheading {primary["htsCodeFormatted"]} provides for "{primary.get("shortDescription", "")}".'

    exclusions = list(primary.get("otherExclusions") or [])
    scoring = primary.get("scoringFactors", {})
    factors = []
    if scoring.get("keywordMatch", 0) > 20:
        factors.append(f"Strong keyword match (+{scoring['keywordMatch']})")
    if scoring.get("materialMatch", 0) > 0:
        factors.append(f"Material match ({material} → Chapter {chapter})")
    if primary.get("isOther") and exclusions:
        factors.append(f'"Other" verified via {len(exclusions)} exclusions')
    if scoring.get("hierarchyCoherence", 0) > 5:
        factors.append(f"Hierarchy coherence (+{scoring['hierarchyCoherence']})")

    lines = ["## GRI 1 - Terms of Headings", gri1, "## GRI 6 - Subheading Classification", gri6]
    if exclusions:
        lines.append("## Specific Carve-Out Exclusions")
        lines.extend(f'- Not "{e}" - product does not match this specific category' for e in exclusions)
    lines.append("## Confidence Factors")
    lines.extend(f"- {f}" for f in factors)
    lines.append(f"**Total Confidence: {primary.get('confidence', 0)}%**")

    return Justification(
        gri1_analysis=gri1,
        gri6_analysis=gri6,
        carve_out_exclusions=exclusions,
        confidence_factors=factors,
        full_justification="\n".join(lines),
    )


class LLMAssistant:
    """
    LLM collaborator behind a small capability interface.

    Args:
        settings: Runtime settings (model, timeout, concurrency cap).
        llm: Optional pre-built chat model; defaults to ChatOpenAI when enabled.
    """

    def __init__(self, settings: Optional[Settings] = None, llm=None):
        self.settings = settings or get_settings()
        self._llm = llm

    @property
    def is_enabled(self) -> bool:
        if self._llm is not None:
            return True
        return self.settings.flags.llm_enrichment and bool(self.settings.openai_api_key)

    def get_llm(self, temperature: float = 0.0, max_tokens: int = 500):
        if self._llm is None:
            self._llm = ChatOpenAI(
                temperature=temperature,
                max_completion_tokens=max_tokens,
                model=self.settings.llm_model,
            )
        return self._llm

    async def _complete(self, template: str, **variables) -> str:
        if not self.is_enabled:
            raise CollaboratorUnavailableError("llm", "LLM enrichment disabled")
        prompt = PromptTemplate.from_template(template)
        try:
            response = await asyncio.wait_for(
                self.get_llm().ainvoke(prompt.format(**variables)), timeout=self.settings.llm_timeout
            )
        except asyncio.TimeoutError as e:
            raise CollaboratorUnavailableError("llm", "timed out") from e
        except Exception as e:
            raise CollaboratorUnavailableError("llm", str(e)) from e
        return getattr(response, "content", response) or ""

    async def interpret(self, description: str) -> InterpretationHints:
        try:
            reply = await self._complete(INTERPRET_TEMPLATE, description=description)
        except CollaboratorUnavailableError as e:
            logger.info("Interpretation skipped: %s", e.reason)
            return InterpretationHints()
        return parse_llm_json(reply, InterpretationHints) or InterpretationHints()

    async def translate(self, code: str, description: str) -> Optional[str]:
        try:
            reply = await self._complete(TRANSLATE_TEMPLATE, code=code, description=description)
        except CollaboratorUnavailableError as e:
            logger.info("Translation of %s skipped: %s", code, e.reason)
            return None
        text = reply.strip()
        return text or None

    async def translate_many(self, items: Sequence[Tuple[str, str]]) -> Dict[str, str]:
        """Translate (code, description) pairs with at most LLM_MAX_CONCURRENCY calls in flight."""
        if not self.is_enabled or not items:
            return {}
        semaphore = asyncio.Semaphore(max(1, self.settings.llm_max_concurrency))

        async def bounded(code: str, description: str):
            async with semaphore:
                return code, await self.translate(code, description)

        results = await asyncio.gather(*(bounded(code, desc) for code, desc in items))
        return {code: text for code, text in results if text}

    async def justify(self, description: str, result: Dict) -> Justification:
        fallback = build_justification(description, result)
        primary = result.get("primary")
        if not primary or not self.is_enabled:
            return fallback
        try:
            reply = await self._complete(
                JUSTIFY_TEMPLATE,
                description=description,
                code=primary["htsCodeFormatted"],
                full_description=primary.get("fullDescription", ""),
                exclusions=", ".join(primary.get("otherExclusions") or []) or "none",
                factors=json.dumps(primary.get("scoringFactors", {})),
            )
        except CollaboratorUnavailableError as e:
            logger.warning("LLM justification unavailable, using deterministic version: %s", e.reason)
            return fallback
        return parse_llm_json(reply, Justification) or fallback
