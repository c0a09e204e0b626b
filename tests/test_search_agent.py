# tests/test_search_agent.py
import asyncio

from agents.attribute_agent import AttributeAgent
from agents.search_agent import KEYWORD, SEMANTIC, CandidateSearch
from utils.exceptions import CollaboratorUnavailableError
from utils.tracing import ClassificationTrace
from utils.vectorstore import SemanticHit

from tests.fakes import FakeSemanticClient


def _search(repository, settings, lexicons, description, client=None):
    settings.flags.semantic_search = client is not None
    attrs = AttributeAgent(lexicons).detect(description)
    trace = ClassificationTrace()
    results = asyncio.run(CandidateSearch(repository, settings, client).search(attrs, trace))
    return results, trace


def test_semantic_keeps_best_hit_per_chapter(repository, settings, lexicons):
    client = FakeSemanticClient([
        SemanticHit("6109100012", 0.8),
        SemanticHit("6109100004", 0.75),
        SemanticHit("62052020", 0.3),
        SemanticHit("39249056", 0.1),
        SemanticHit("9999999999", 0.9),
    ])
    results, trace = _search(repository, settings, lexicons, "cotton t-shirt", client)

    assert [r.entry.code for r in results] == ["6109100012", "6109100004", "62052020"]
    assert all(r.source == SEMANTIC for r in results)
    assert results[0].similarity == 0.8
    assert trace.search_path == SEMANTIC
    assert client.queries == ["cotton t-shirt t-shirt tshirt knit apparel"]


def test_semantic_failure_falls_back_to_keywords(repository, settings, lexicons):
    client = FakeSemanticClient(error=CollaboratorUnavailableError("semantic_search", "timed out"))
    results, trace = _search(repository, settings, lexicons, "rubber footwear", client)

    assert trace.search_path == KEYWORD
    assert {"event": "semantic_unavailable", "reason": "timed out"} in trace.events
    assert [r.entry.code for r in results] == ["64029905", "64029931", "64029990"]
    assert all(r.source == KEYWORD for r in results)


def test_low_similarity_hits_fall_back_to_keywords(repository, settings, lexicons):
    client = FakeSemanticClient([SemanticHit("39249056", 0.1)])
    results, trace = _search(repository, settings, lexicons, "plastic planter", client)

    assert trace.search_path == KEYWORD
    assert any(e["event"] == "semantic_empty" for e in trace.events)
    assert "39249056" in [r.entry.code for r in results]


def test_keyword_priorities_start_with_product_headings(repository, settings, lexicons):
    results, trace = _search(repository, settings, lexicons, "cotton t-shirt for boys")

    codes = [r.entry.code for r in results]
    assert codes[:4] == ["61091000", "6109100004", "6109100012", "6109100014"]
    assert "62052020" in codes
    assert trace.events[0]["event"] == "keyword_headings"
    assert trace.events[0]["headings"] == ["6109"]


def test_only_leaf_levels_are_returned(repository, settings, lexicons):
    results, _ = _search(repository, settings, lexicons, "household articles of plastics")
    assert results
    assert all(r.entry.is_leaf_level for r in results)


def test_nothing_found(repository, settings, lexicons):
    results, trace = _search(repository, settings, lexicons, "zzzz qqqq")
    assert results == []
    assert trace.search_path == KEYWORD
