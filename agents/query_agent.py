# agents/query_agent.py
# This module handles question generation: value/size decision questions built from
# conditional siblings, and clarification questions for low-confidence results.

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from database_connection.entries import CodeEntry
from database_connection.repository import CodeRepository
from services.duty_calculator import parse_rate
from utils.hts_codes import LEAF_LEVELS, format_code, normalize_code
from utils.lexicons import MaterialLexicon

logger = logging.getLogger(__name__)

MAX_CONDITIONAL_ALTERNATIVES = 5

VALUE_THRESHOLD_RE = re.compile(
    r"(?:aggregate\s+)?value[^$]*?(?:not\s+over|over|is\s+(?:not\s+)?over)\s+\$?([\d,.]+)", re.IGNORECASE
)
SIZE_THRESHOLD_RE = re.compile(r"not\s+over\s+([\d,.]+)\s*(cm)\s+in\s+maximum\s+dimension", re.IGNORECASE)
KEY_VALUE_RE = re.compile(
    r"(?:aggregate\s+)?value[^$]*(?:not\s+over|over|is\s+(?:not\s+)?over)\s+\$?([\d,.]+)", re.IGNORECASE
)
KEY_SIZE_RE = re.compile(r"(?:not\s+over|over)\s+([\d,.]+)\s*(cm|mm)", re.IGNORECASE)
NOT_OVER_RE = re.compile(r"not\s+over", re.IGNORECASE)
OVER_AMOUNT_RE = re.compile(r"\b(not\s+)?over\s+\$?(\d+(?:\.\d+)?)", re.IGNORECASE)
CONDITIONAL_TEXT_RE = re.compile(r"not\s+over|over\s+\$|valued", re.IGNORECASE)
_THOUSANDS_COMMA = re.compile(r"(?<=\d),(?=\d)")


def format_threshold(value: float) -> str:
    """1000.0 -> '1000', 2.5 -> '2.5'."""
    return str(int(value)) if float(value).is_integer() else str(value)


def _to_number(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(",", "").rstrip("."))
    except ValueError:
        return None


@dataclass
class DecisionOption:
    label: str
    value: str
    hts_code: Optional[str] = None
    duty_rate: Optional[str] = None

    def as_dict(self) -> Dict:
        return {
            "label": self.label,
            "value": self.value,
            "htsCode": self.hts_code,
            "htsCodeFormatted": format_code(self.hts_code) if self.hts_code else None,
            "dutyRate": self.duty_rate,
        }


@dataclass
class DecisionQuestion:
    id: str
    question: str
    type: str
    options: List[DecisionOption] = field(default_factory=list)

    def as_dict(self) -> Dict:
        return {
            "id": self.id,
            "question": self.question,
            "type": self.type,
            "options": [o.as_dict() for o in self.options],
        }


@dataclass
class ConditionalAlternative:
    code: str
    description: str
    duty_rate: Optional[str]
    key_condition: str
    duty_difference: Optional[str] = None

    def as_dict(self) -> Dict:
        return {
            "code": self.code,
            "codeFormatted": format_code(self.code),
            "description": self.description,
            "dutyRate": self.duty_rate,
            "dutyDifference": self.duty_difference,
            "keyCondition": self.key_condition,
        }


@dataclass
class ConditionalClassification:
    primary_code: str
    questions: List[DecisionQuestion] = field(default_factory=list)
    alternatives: List[ConditionalAlternative] = field(default_factory=list)

    @property
    def has_conditions(self) -> bool:
        return bool(self.questions or self.alternatives)

    @property
    def guidance(self) -> Optional[str]:
        if not self.questions:
            return None
        which = "this question" if len(self.questions) == 1 else "these questions"
        return f"Answer {which} to find the most accurate HTS code:"

    def find_option(self, question_id: str, value: str) -> Optional[DecisionOption]:
        for q in self.questions:
            if q.id != question_id:
                continue
            for option in q.options:
                if option.value == value:
                    return option
        return None

    def as_dict(self) -> Dict:
        return {
            "hasConditions": self.has_conditions,
            "primaryCode": self.primary_code,
            "questions": [q.as_dict() for q in self.questions],
            "alternatives": [a.as_dict() for a in self.alternatives],
            "guidance": self.guidance,
        }


def has_distinct_codes(options: Sequence[DecisionOption]) -> bool:
    """A question is only useful when its options lead to at least two different codes."""
    codes = [o.hts_code for o in options if o.hts_code]
    return len(codes) >= 2 and len(set(codes)) > 1


def _sibling_text(sibling: CodeEntry) -> str:
    text = " ".join(list(sibling.parent_groupings) + [sibling.description]).lower()
    return _THOUSANDS_COMMA.sub("", text)


def _states_threshold(text: str, threshold: float, not_over: bool) -> bool:
    """True when text says "(not) over [$]N" with N equal to threshold; $1 never matches $10."""
    for match in OVER_AMOUNT_RE.finditer(text):
        if bool(match.group(1)) == not_over and float(match.group(2)) == threshold:
            return True
    return False


def _dedupe_options(options: List[DecisionOption]) -> List[DecisionOption]:
    seen = set()
    kept = []
    for o in options:
        if not o.hts_code or o.value in seen:
            continue
        seen.add(o.value)
        kept.append(o)
    return kept


def key_condition(description: str, parent_groupings: Sequence[str]) -> str:
    """Single human-readable condition that distinguishes a sibling code."""
    full_text = " ".join(list(parent_groupings) + [description])
    value_match = KEY_VALUE_RE.search(full_text)
    if value_match:
        if NOT_OVER_RE.search(value_match.group(0)):
            return f"Value ${value_match.group(1)} or less"
        return f"Value more than ${value_match.group(1)}"
    size_match = KEY_SIZE_RE.search(full_text)
    if size_match:
        if NOT_OVER_RE.search(size_match.group(0)):
            return f"{size_match.group(1)} {size_match.group(2)} or smaller"
        return f"Larger than {size_match.group(1)} {size_match.group(2)}"
    return description[:60] + ("..." if len(description) > 60 else "")


def duty_difference(primary_rate: Optional[str], sibling_rate: Optional[str]) -> Optional[str]:
    if not primary_rate or not sibling_rate:
        return None
    diff = parse_rate(sibling_rate) - parse_rate(primary_rate)
    if diff == 0:
        return None
    if diff < 0:
        return f"{abs(diff):.1f}% lower duty"
    return f"{diff:.1f}% higher duty"


class ConditionalSiblingDetector:
    """
    Finds value- and size-gated siblings under the same 6-digit subheading and turns
    their thresholds into binary decision questions.
    """

    def __init__(self, repository: CodeRepository):
        self.repository = repository

    @staticmethod
    def extract_thresholds(texts: Sequence[str]) -> Dict[str, List[float]]:
        found: Dict[str, List[float]] = {"value": [], "size": []}
        for text in texts:
            for match in VALUE_THRESHOLD_RE.finditer(text):
                value = _to_number(match.group(1))
                if value is not None and value not in found["value"]:
                    found["value"].append(value)
            for match in SIZE_THRESHOLD_RE.finditer(text):
                value = _to_number(match.group(1))
                if value is not None and value not in found["size"]:
                    found["size"].append(value)
        return {kind: sorted(values) for kind, values in found.items()}

    @staticmethod
    def value_options(thresholds: Sequence[float], siblings: Sequence[CodeEntry]) -> List[DecisionOption]:
        options = []
        for threshold in thresholds:
            t = format_threshold(threshold)
            lte = next((s for s in siblings if _states_threshold(_sibling_text(s), threshold, not_over=True)), None)
            gt = next((s for s in siblings
                       if _states_threshold(_sibling_text(s), threshold, not_over=False)
                       and "not over" not in _sibling_text(s)), None)
            options.append(DecisionOption(f"${t} or less", f"lte_{t}",
                                          lte.code if lte else None, lte.base_rate if lte else None))
            options.append(DecisionOption(f"More than ${t}", f"gt_{t}",
                                          gt.code if gt else None, gt.base_rate if gt else None))
        return _dedupe_options(options)

    @staticmethod
    def size_options(thresholds: Sequence[float], unit: str, siblings: Sequence[CodeEntry]) -> List[DecisionOption]:
        options = []
        for threshold in thresholds:
            t = format_threshold(threshold)
            lte = next((s for s in siblings
                        if _states_threshold(_sibling_text(s), threshold, not_over=True)
                        and unit in _sibling_text(s)), None)
            gt = next((s for s in siblings
                       if _states_threshold(_sibling_text(s), threshold, not_over=False)
                       and "not over" not in _sibling_text(s) and unit in _sibling_text(s)), None)
            options.append(DecisionOption(f"{t} {unit} or smaller", f"lte_{t}",
                                          lte.code if lte else None, lte.base_rate if lte else None))
            options.append(DecisionOption(f"Larger than {t} {unit}", f"gt_{t}",
                                          gt.code if gt else None, gt.base_rate if gt else None))
        return _dedupe_options(options)

    async def detect(self, primary_code: str, primary_rate: Optional[str] = None) -> ConditionalClassification:
        """
        Args:
            primary_code: The resolved code.
            primary_rate: Its base rate, used for the alternatives' duty difference.

        Returns:
            ConditionalClassification; questions whose options all resolve to one code are dropped.
        """
        clean = normalize_code(primary_code)
        result = ConditionalClassification(primary_code=clean)
        siblings = [
            e for e in await self.repository.get_by_prefix(clean[:6])
            if e.level in LEAF_LEVELS and e.code != clean
        ]
        if not siblings:
            return result

        texts = []
        for s in siblings:
            texts.extend(s.parent_groupings)
            texts.append(s.description)
        texts = [_THOUSANDS_COMMA.sub("", t) for t in texts]
        thresholds = self.extract_thresholds(texts)

        if thresholds["value"]:
            options = self.value_options(thresholds["value"], siblings)
            if has_distinct_codes(options):
                result.questions.append(DecisionQuestion(
                    id="value", question="What is the value of your item?", type="value", options=options,
                ))
        if thresholds["size"]:
            options = self.size_options(thresholds["size"], "cm", siblings)
            if has_distinct_codes(options):
                result.questions.append(DecisionQuestion(
                    id="size", question="What is the maximum dimension of your item?", type="size", options=options,
                ))

        conditional = [s for s in siblings if CONDITIONAL_TEXT_RE.search(" ".join(list(s.parent_groupings) + [s.description]))]
        for s in conditional[:MAX_CONDITIONAL_ALTERNATIVES]:
            result.alternatives.append(ConditionalAlternative(
                code=s.code,
                description=s.description,
                duty_rate=s.base_rate,
                key_condition=key_condition(s.description, s.parent_groupings),
                duty_difference=duty_difference(primary_rate, s.base_rate),
            ))

        logger.debug(
            "Conditional siblings for %s: %d questions, %d alternatives",
            clean, len(result.questions), len(result.alternatives),
        )
        return result


# ----------------------------
# Clarification for low-confidence results
# ----------------------------
MATERIAL_OPTIONS = [
    {"value": "plastic", "label": "Plastic", "hint": "Chapter 39"},
    {"value": "ceramic", "label": "Ceramic/Clay", "hint": "Chapter 69"},
    {"value": "metal", "label": "Metal", "hint": "Chapters 72-83"},
    {"value": "wood", "label": "Wood", "hint": "Chapter 44"},
    {"value": "glass", "label": "Glass", "hint": "Chapter 70"},
]
USE_OPTIONS = [
    {"value": "household", "label": "Household/Residential", "hint": "For home use"},
    {"value": "commercial", "label": "Commercial/Industrial", "hint": "For hotels, restaurants, businesses"},
]
GENERIC_MATERIAL_OPTIONS = [
    {"value": "plastic", "label": "Plastic", "hint": "Chapter 39"},
    {"value": "ceramic", "label": "Ceramic/Clay", "hint": "Chapter 69"},
    {"value": "metal", "label": "Metal", "hint": "Chapters 72-83"},
    {"value": "textile", "label": "Textile/Fabric", "hint": "Chapters 50-63"},
    {"value": "other", "label": "Other", "hint": "Please specify in description"},
]
VERY_LOW_CONFIDENCE = 25

_HOUSEHOLD = ("household", "domestic")
_COMMERCIAL = ("hotel", "restaurant", "commercial")


def _use_context(description: str):
    desc = description.lower()
    return any(w in desc for w in _HOUSEHOLD), any(w in desc for w in _COMMERCIAL)


def build_clarification(score: int, threshold: int, primary: CodeEntry, alternatives: Sequence[CodeEntry],
                        material: Optional[str], materials: MaterialLexicon) -> Optional[Dict]:
    """
    Pick the most useful clarification for a below-threshold result:
    material ambiguity first, then household vs commercial use, then a generic material prompt.
    """
    if score >= threshold:
        return None

    diverse = any(a.chapter != primary.chapter for a in alternatives)

    if material is None and diverse:
        represented = {materials.material_for_chapter(a.chapter) for a in alternatives}
        represented.discard(None)
        if len(represented) > 1:
            return {
                "id": "material",
                "reason": "material_ambiguous",
                "question": "What material is your product made of?",
                "options": MATERIAL_OPTIONS,
            }

    if diverse:
        primary_household, primary_commercial = _use_context(primary.description)
        for alt in alternatives:
            alt_household, alt_commercial = _use_context(alt.description)
            if (primary_household and alt_commercial) or (primary_commercial and alt_household):
                return {
                    "id": "use",
                    "reason": "use_ambiguous",
                    "question": "What is the intended use of your product?",
                    "options": USE_OPTIONS,
                }

    if score < VERY_LOW_CONFIDENCE:
        return {
            "id": "material",
            "reason": "low_confidence",
            "question": "We need more details to classify this product accurately. What is the primary material?",
            "options": GENERIC_MATERIAL_OPTIONS,
        }
    return None
