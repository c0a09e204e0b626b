# tests/test_llm_utils.py
import asyncio

from utils.llm_utils import (
    InterpretationHints,
    Justification,
    LLMAssistant,
    build_justification,
    parse_llm_json,
    strip_json_fences,
)
from utils.settings import FeatureFlags

from tests.fakes import FakeLLM


PLANTER_RESULT = {
    "primary": {
        "htsCode": "39249056",
        "htsCodeFormatted": "3924.90.56",
        "confidence": 100,
        "path": {"descriptions": ["Plastics and articles thereof", "Tableware, kitchenware, other household articles"]},
        "shortDescription": "Other",
        "fullDescription": "Plastics and articles thereof: Tableware, kitchenware, other household articles: Other",
        "isOther": True,
        "otherExclusions": ["Nursing nipples and finger cots", "Picture frames"],
        "scoringFactors": {"keywordMatch": 12, "materialMatch": 30, "specificity": 31, "hierarchyCoherence": 30},
    },
    "detectedMaterial": "plastic",
}


def _assistant(settings, llm):
    settings.flags = FeatureFlags(semantic_search=False, llm_enrichment=True)
    return LLMAssistant(settings, llm=llm)


def test_strip_json_fences():
    assert strip_json_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_json_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_json_fences(' {"a": 1} ') == '{"a": 1}'


def test_parse_llm_json_rejects_bad_replies():
    assert parse_llm_json("not json", InterpretationHints) is None
    assert parse_llm_json('{"keywords": "not a list"}', InterpretationHints) is None
    hints = parse_llm_json('```json {"material": "cotton", "productType": "t-shirt"} ```', InterpretationHints)
    assert hints.material == "cotton"
    assert hints.product_type == "t-shirt"


def test_disabled_without_key_or_flag(settings):
    settings.openai_api_key = None
    assistant = LLMAssistant(settings)
    assert not assistant.is_enabled
    assert asyncio.run(assistant.interpret("cotton tee")) == InterpretationHints()
    assert asyncio.run(assistant.translate_many([("61", "Apparel")])) == {}


def test_interpret(settings):
    llm = FakeLLM(interpret_reply='{"material": "cotton", "productType": "t-shirt", "keywords": ["tee"]}')
    hints = asyncio.run(_assistant(settings, llm).interpret("boys tee"))
    assert hints.product_type == "t-shirt"
    assert hints.keywords == ["tee"]


def test_failures_fall_back(settings):
    failing = _assistant(settings, FakeLLM(error=RuntimeError("rate limited")))
    assert asyncio.run(failing.interpret("boys tee")) == InterpretationHints()
    assert asyncio.run(failing.translate("61", "Apparel")) is None


def test_timeout_is_a_fallback(settings):
    settings.llm_timeout = 0.01
    slow = _assistant(settings, FakeLLM(delay=0.5))
    assert asyncio.run(slow.translate("61", "Apparel")) is None


def test_translate_many_caps_concurrency(settings):
    settings.llm_max_concurrency = 3
    llm = FakeLLM(delay=0.01)
    items = [(f"6109{i:06d}", "Other T-shirts") for i in range(20)]
    translated = asyncio.run(_assistant(settings, llm).translate_many(items))

    assert len(translated) == 20
    assert set(translated.values()) == {"A plain sentence."}
    assert llm.calls == 20
    assert llm.max_active <= 3


def test_deterministic_justification():
    justification = build_justification("plastic planter", PLANTER_RESULT)

    assert justification.gri1_analysis.startswith('The product "plastic planter" is classified under Chapter 39')
    assert "plastic material" in justification.gri1_analysis
    assert '"Other" subheading' in justification.gri6_analysis
    assert justification.carve_out_exclusions == ["Nursing nipples and finger cots", "Picture frames"]
    assert '"Other" verified via 2 exclusions' in justification.confidence_factors
    assert "## Specific Carve-Out Exclusions" in justification.full_justification
    assert '- Not "Picture frames" - product does not match this specific category' in justification.full_justification
    assert justification.full_justification.endswith("**Total Confidence: 100%**")


def test_justification_without_result():
    justification = build_justification("gizmo", {"primary": None})
    assert justification.gri1_analysis == "No classification result available."


def test_llm_justification_is_validated(settings):
    reply = Justification(
        gri1_analysis="Chapter 39 covers plastics.",
        gri6_analysis="Other.",
        full_justification="## GRI 1\nChapter 39 covers plastics.",
    ).model_dump_json(by_alias=True)
    good = asyncio.run(_assistant(settings, FakeLLM(justify_reply=reply)).justify("plastic planter", PLANTER_RESULT))
    assert good.gri1_analysis == "Chapter 39 covers plastics."

    bad = asyncio.run(_assistant(settings, FakeLLM(justify_reply="sorry")).justify("plastic planter", PLANTER_RESULT))
    assert bad == build_justification("plastic planter", PLANTER_RESULT)
