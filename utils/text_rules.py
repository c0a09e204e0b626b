# utils/text_rules.py
# Named text rules used across search, scoring and validation.
# Each rule family is a small table plus a predicate so it can be tested on its own.

import re
from typing import Iterable, List, NamedTuple, Optional, Pattern

STOPWORDS = frozenset(["the", "a", "an", "of", "for", "and", "or", "with", "to", "in", "on"])

_TOKEN_SPLIT = re.compile(r"[\s,\-/]+")


def tokenize(description: str) -> List[str]:
    """
    Build the search-token list for a free-text description.

    Lowercases, drops single characters and stopwords, and adds possessive-stripped
    and singular variants next to each word ('boys' -> 'boys', 'boy').
    T-shirt spellings are expanded to all three forms.
    """
    desc_lower = (description or "").lower().strip()
    if not desc_lower:
        return []

    tokens: List[str] = []

    def add(token: str) -> None:
        if token and token not in tokens:
            tokens.append(token)

    for word in _TOKEN_SPLIT.split(desc_lower):
        if len(word) <= 1 or word in STOPWORDS:
            continue
        add(word)
        if word.endswith("'s"):
            add(word[:-2])
        if word.endswith("s") and len(word) > 3:
            add(word[:-1])
        if word.endswith("es") and len(word) > 4:
            add(word[:-2])
        if word.endswith("ies") and len(word) > 5:
            add(word[:-3] + "y")

    if "t-shirt" in desc_lower or "tshirt" in desc_lower:
        for variant in ("t-shirt", "tshirt", "shirt"):
            add(variant)

    return tokens


# ----------------------------
# Catch-all ("Other") detection
# ----------------------------
OTHER_EXACT = ("other", "other:")
OTHER_PREFIXES = ("other ", "other,", "other:")
OTHER_SUFFIXES = (": other", ":other")
OTHER_CONTAINS = ("not elsewhere specified", "nesoi", "n.e.s.o.i")


def is_other_code(description: str) -> bool:
    desc = (description or "").lower().strip()
    return (
        desc in OTHER_EXACT
        or desc.startswith(OTHER_PREFIXES)
        or desc.endswith(OTHER_SUFFIXES)
        or any(marker in desc for marker in OTHER_CONTAINS)
    )


# ----------------------------
# Specific carve-out detection
# ----------------------------
GENERAL_CATEGORY_PATTERNS = (
    "tableware", "kitchenware", "household articles", "articles of",
    "parts and accessories", "parts thereof", "not elsewhere",
    "of plastics", "of rubber", "of metal", "of wood", "of glass",
    "of ceramic", "of iron", "of steel", "of aluminum",
)


def is_specific_carve_out(description: str) -> bool:
    """Short, concrete, non-catch-all description such as 'Nursing nipples'."""
    if is_other_code(description):
        return False

    desc = (description or "").lower().strip()
    if any(pattern in desc for pattern in GENERAL_CATEGORY_PATTERNS):
        return False

    word_count = len(desc.split())
    comma_count = desc.count(",")

    if len(desc) < 60 and word_count <= 8 and comma_count <= 1:
        return True
    if (" and " in desc or " or " in desc) and word_count <= 10 and comma_count <= 2:
        return True
    return False


# ----------------------------
# Head-noun extraction
# ----------------------------
_BOILERPLATE = (
    re.compile(r"other", re.IGNORECASE),
    re.compile(r"articles? of", re.IGNORECASE),
    re.compile(r"parts? (?:and|&) accessories", re.IGNORECASE),
    re.compile(r"not elsewhere specified", re.IGNORECASE),
    re.compile(r"nesoi", re.IGNORECASE),
    re.compile(r"thereof", re.IGNORECASE),
)
NOUN_STOPWORDS = frozenset(["the", "and", "for", "with", "other", "not", "than", "more"])


def extract_nouns(description: str) -> List[str]:
    cleaned = (description or "").lower()
    for pattern in _BOILERPLATE:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.replace(":", "").replace(",", " ")
    return [w for w in cleaned.split() if len(w) > 2 and w not in NOUN_STOPWORDS]


def nouns_overlap_by_prefix(terms: Iterable[str], nouns: Iterable[str]) -> bool:
    """Substring either way, or same first four letters for words longer than three."""
    nouns = list(nouns)
    for term in terms:
        for noun in nouns:
            if term in noun or noun in term:
                return True
            if len(term) > 3 and len(noun) > 3 and term[:4] == noun[:4]:
                return True
    return False


def nouns_overlap_by_stem(terms: Iterable[str], nouns: Iterable[str]) -> bool:
    """Substring either way, or equal once the last character is dropped (plurals)."""
    nouns = list(nouns)
    for term in terms:
        for noun in nouns:
            if term in noun or noun in term:
                return True
            if len(term) > 3 and len(noun) > 3 and term[:-1] == noun[:-1]:
                return True
    return False


# ----------------------------
# Material conflicts between the user's material and catalog text
# ----------------------------
class MaterialConflict(NamedTuple):
    pattern: Pattern
    conflicts: tuple


MATERIAL_CONFLICTS = (
    MaterialConflict(re.compile(r"man-made fibers?|synthetic|polyester|nylon|acrylic", re.IGNORECASE),
                     ("cotton", "wool", "silk", "linen")),
    MaterialConflict(re.compile(r"\bcotton\b", re.IGNORECASE),
                     ("polyester", "nylon", "synthetic", "man-made")),
    MaterialConflict(re.compile(r"\bwool\b", re.IGNORECASE),
                     ("cotton", "polyester", "synthetic", "man-made")),
    MaterialConflict(re.compile(r"\bsilk\b", re.IGNORECASE),
                     ("cotton", "polyester", "synthetic", "man-made")),
)


def find_material_conflict(material: str, catalog_text: str) -> Optional[str]:
    """Return the catalog wording that contradicts the material, if any."""
    material_lower = (material or "").lower()
    if not material_lower:
        return None
    for rule in MATERIAL_CONFLICTS:
        match = rule.pattern.search(catalog_text or "")
        if match and any(c in material_lower for c in rule.conflicts):
            return match.group(0)
    return None


# ----------------------------
# Restrictive qualifiers the user may not have mentioned
# ----------------------------
class SpecificityQualifier(NamedTuple):
    pattern: Pattern
    term: str
    penalty: int


SPECIFICITY_QUALIFIERS = (
    # color / appearance
    SpecificityQualifier(re.compile(r"\ball white\b"), "white", 15),
    SpecificityQualifier(re.compile(r"\bwhite\b"), "white", 10),
    SpecificityQualifier(re.compile(r"\bblack\b"), "black", 10),
    SpecificityQualifier(re.compile(r"\bprinted\b"), "print", 8),
    SpecificityQualifier(re.compile(r"\bdyed\b"), "dye", 6),
    # garment features
    SpecificityQualifier(re.compile(r"\bshort hemmed sleeves?\b"), "short sleeve", 10),
    SpecificityQualifier(re.compile(r"\blong sleeves?\b"), "long sleeve", 10),
    SpecificityQualifier(re.compile(r"\bsleeveless\b"), "sleeveless", 10),
    SpecificityQualifier(re.compile(r"\bhemmed bottom\b"), "hemmed", 8),
    SpecificityQualifier(re.compile(r"\bcrew.{0,5}neckline\b"), "crew neck", 8),
    SpecificityQualifier(re.compile(r"\bv.?neck\b"), "v-neck", 8),
    SpecificityQualifier(re.compile(r"\bround neckline\b"), "round neck", 8),
    SpecificityQualifier(re.compile(r"\bwithout pockets\b"), "pocket", 10),
    SpecificityQualifier(re.compile(r"\bwith pockets\b"), "pocket", 8),
    SpecificityQualifier(re.compile(r"\bwithout.{0,10}trim\b"), "trim", 8),
    SpecificityQualifier(re.compile(r"\bwithout.{0,10}embroidery\b"), "embroider", 8),
    SpecificityQualifier(re.compile(r"\bthermal\b"), "thermal", 12),
    SpecificityQualifier(re.compile(r"\bknitted\b"), "knit", 5),
    SpecificityQualifier(re.compile(r"\bcrocheted\b"), "crochet", 8),
    # value / size thresholds
    SpecificityQualifier(re.compile(r"\bover \d+"), "over", 12),
    SpecificityQualifier(re.compile(r"\bnot over \d+"), "not over", 12),
    SpecificityQualifier(re.compile(r"\bvalued over\b"), "value", 10),
    SpecificityQualifier(re.compile(r"\bvalued not over\b"), "value", 10),
    # fiber content
    SpecificityQualifier(re.compile(r"\b100.?percent\b"), "100%", 8),
    SpecificityQualifier(re.compile(r"\bchiefly of\b"), "chiefly", 6),
)


def unmentioned_specificity_penalty(catalog_text: str, terms: List[str], query: str, cap: int = 40) -> int:
    """Sum the penalties of qualifiers present in the catalog text but absent from the query."""
    text_lower = (catalog_text or "").lower()
    query_lower = (query or "").lower()
    penalty = 0
    for qualifier in SPECIFICITY_QUALIFIERS:
        if not qualifier.pattern.search(text_lower):
            continue
        mentioned = qualifier.term in query_lower or any(
            qualifier.term in term or term in qualifier.term for term in terms
        )
        if not mentioned:
            penalty += qualifier.penalty
    return min(cap, penalty)


def strip_trailing_colon(text: str) -> str:
    return re.sub(r":$", "", (text or "").strip()).strip()
