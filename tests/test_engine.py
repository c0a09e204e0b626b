# tests/test_engine.py
import asyncio

import pytest

from agents.scoring_agent import Candidate, ScoringFactors
from chains.hts_chain import ClassificationEngine, build_repository, select_diverse_alternatives
from database_connection.entries import CodeEntry
from utils.exceptions import HTSEngineError, InvalidInputError
from utils.llm_utils import LLMAssistant
from utils.settings import FeatureFlags, ScoringWeights

from tests.fakes import FakeLLM


def classify(engine, description, **kwargs):
    return asyncio.run(engine.classify(description, **kwargs))


def test_tshirt_lands_in_heading_6109(engine):
    result = classify(engine, "cotton t-shirt for boys")

    assert result["success"]
    primary = result["primary"]
    assert primary["htsCode"].startswith("6109")
    assert primary["baseRate"] == "16.5%"
    assert 15 <= primary["confidence"] <= 100
    assert primary["path"]["codes"][0] == "61"
    assert result["detectedMaterial"] == "cotton"
    assert result["detectedChapters"] == ["52", "61", "62"]
    assert "t-shirt" in result["searchTerms"]
    assert result["needsClarification"] is None
    assert result["conditionalClassification"] is None
    assert result["trace"]["search_path"] == "keyword"
    assert "total" in result["timing"]

    alternatives = result["alternatives"]
    assert [a["rank"] for a in alternatives] == list(range(2, len(alternatives) + 2))
    assert all(a["htsCode"][:8] != primary["htsCode"][:8] for a in alternatives)
    assert "62052020" in [a["htsCode"] for a in alternatives]


def test_catch_all_with_fta_waiver(engine):
    result = classify(engine, "plastic planter", country="MX")
    primary = result["primary"]

    assert primary["htsCode"] == "39249056"
    assert primary["isOther"]
    assert primary["otherExclusions"] == ["Nursing nipples and finger cots", "Picture frames"]
    assert primary["confidence"] == 100
    assert primary["dutyBreakdown"]["baseRateWaived"] is True
    assert primary["dutyBreakdown"]["totalRate"] == 0.0
    assert primary["duty"]["effective"] == "0.0%"
    assert len(result["alternatives"]) == 3


def test_value_question_and_answer(engine):
    result = classify(engine, "rubber footwear", country="CN")
    primary = result["primary"]
    assert primary["htsCode"] == "64029905"
    assert primary["dutyBreakdown"]["totalRate"] == 33.5
    assert "Section 301 List 4A" in primary["duty"]["additional"]

    conditional = result["conditionalClassification"]
    question = conditional["questions"][0]
    assert question["id"] == "value"
    assert [o["value"] for o in question["options"]] == ["lte_3", "gt_3"]

    answered = classify(engine, "rubber footwear", country="CN", answers={"value": "lte_3"})
    assert answered["primary"]["htsCode"] == "64029931"
    assert answered["primary"]["baseRate"] == "48%"
    assert answered["primary"]["shortDescription"] == "Valued not over $3/pair"
    assert answered["primary"]["dutyBreakdown"]["totalRate"] == 75.5


def test_answer_replaces_primary_in_the_whole_result(engine):
    unanswered = classify(engine, "rubber footwear", country="CN")
    sibling = next(a for a in unanswered["alternatives"] if a["htsCode"] == "64029931")

    answered = classify(engine, "rubber footwear", country="CN", answers={"value": "lte_3"})
    primary = answered["primary"]
    codes = [a["htsCode"] for a in answered["alternatives"]]

    assert primary["htsCode"] == "64029931"
    assert all(code[:8] != "64029931" for code in codes)
    assert "64029905" in codes
    assert answered["showMore"] == 0
    assert primary["scoringFactors"]["total"] == sibling["confidence"]
    assert primary["isOther"] is False
    assert primary["otherValidation"] is None
    applied = [e for e in answered["trace"]["events"] if e["event"] == "answer_applied"]
    assert applied == [{"event": "answer_applied", "question": "value", "code": "64029931", "replaced": "64029905"}]

    conditional = answered["conditionalClassification"]
    assert conditional["primaryCode"] == "64029931"
    assert [a["code"] for a in conditional["alternatives"]] == ["64029990"]


def test_material_answer_overrides_detection(engine):
    result = classify(engine, "t-shirt", answers={"material": "cotton"})
    assert result["detectedMaterial"] == "cotton"
    assert result["primary"]["htsCode"].startswith("6109")


def test_no_duty_without_country(engine):
    result = classify(engine, "plastic planter")
    assert result["primary"]["duty"] is None
    assert result["primary"]["dutyBreakdown"] is None


def test_estimated_duty_with_unit_value(engine):
    result = classify(engine, "plastic planter", country="ZZ", unit_value=200)
    assert result["primary"]["dutyBreakdown"]["estimatedDuty"] == 26.8


def test_no_candidates(engine):
    result = classify(engine, "zzzz qqqq")
    assert result["success"] is False
    assert result["primary"] is None
    assert result["alternatives"] == []


@pytest.mark.parametrize("description", ["", "   ", "x" * 2001])
def test_invalid_descriptions(engine, description):
    with pytest.raises(InvalidInputError):
        classify(engine, description)


def test_negative_unit_value(engine):
    with pytest.raises(InvalidInputError):
        classify(engine, "plastic planter", unit_value=-1)


def test_low_confidence_asks_for_material(repository, settings, lexicons, registry):
    settings.weights = ScoringWeights(
        leading_term=0, primary_segment_term=0, keyword_hit=0, description_hit=0, segment_match=0,
        product_type_match=0, general_specificity=0, other_validated=0, other_bonus_base=0,
        other_bonus_per_exclusion=0, parent_hit=0, heading_hit=0,
    )
    engine = ClassificationEngine(repository, settings, lexicons=lexicons, registry=registry)
    result = classify(engine, "shirts")

    assert result["success"]
    assert result["primary"]["confidence"] == settings.confidence_floor
    assert result["needsClarification"]["reason"] == "low_confidence"
    assert result["trace"]["events"][-1]["event"] == "clarification"


def test_llm_enrichment_fills_gaps(repository, settings, lexicons, registry):
    settings.flags = FeatureFlags(semantic_search=False, llm_enrichment=True)
    llm = LLMAssistant(settings, llm=FakeLLM(interpret_reply='{"productType": "t-shirt"}'))
    engine = ClassificationEngine(repository, settings, lexicons=lexicons, registry=registry, llm=llm)
    result = classify(engine, "boys cotton tee")

    assert result["primary"]["htsCode"].startswith("6109")
    assert result["primary"]["plainDescription"] == "A plain sentence."
    assert all(a["plainDescription"] == "A plain sentence." for a in result["alternatives"])
    assert any(e["event"] == "interpretation_hints" for e in result["trace"]["events"])


def test_rates_are_inherited_from_ancestors(engine, repository):
    entry = asyncio.run(repository.get_by_code("6109100012"))
    assert asyncio.run(engine.resolve_rates(entry)) == ("16.5%", "Free (AU,BH,CL,CO,IL,JO,KR,MA,OM,P,PA,PE,S,SG)")


def test_justify_uses_deterministic_fallback(engine):
    justification = asyncio.run(engine.justify("plastic planter"))
    assert "Chapter 39" in justification.gri1_analysis
    assert justification.carve_out_exclusions == ["Nursing nipples and finger cots", "Picture frames"]


def test_repository_requires_a_catalog(settings):
    settings.database_url = None
    settings.catalog_csv = None
    with pytest.raises(HTSEngineError):
        build_repository(settings)


def _candidate(code, score):
    return Candidate(entry=CodeEntry(code=code), factors=ScoringFactors(keyword_match=score), source="keyword")


def test_diverse_alternatives_prefer_new_chapters_then_headings():
    ranked = [
        _candidate("39249056", 90),
        _candidate("39249020", 80),
        _candidate("39241040", 70),
        _candidate("39231000", 60),
        _candidate("69120050", 30),
    ]
    chosen = select_diverse_alternatives(ranked[0], ranked, limit=2)
    assert [c.code for c in chosen] == ["39231000", "69120050"]

    everything = select_diverse_alternatives(ranked[0], ranked)
    assert [c.code for c in everything] == ["39249020", "39241040", "39231000", "69120050"]
