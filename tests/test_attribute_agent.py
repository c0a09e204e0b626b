# tests/test_attribute_agent.py
from agents.attribute_agent import AttributeAgent
from utils.lexicons import NO_PRODUCT_TYPE


def test_detects_material_and_product_type(lexicons):
    attrs = AttributeAgent(lexicons).detect("Cotton T-shirt for boys")
    assert attrs.material == "cotton"
    assert attrs.material_chapters == ("52", "61", "62")
    assert attrs.product_type.type == "t-shirt"
    assert attrs.expected_headings == ("6109",)
    assert "boys" in attrs.terms


def test_longest_product_type_wins(lexicons):
    assert lexicons.product_types.detect("mens tshirt").type == "tshirt"
    assert lexicons.product_types.detect("dress shirt").type in ("shirt", "dress")
    assert lexicons.product_types.detect("gizmo") is NO_PRODUCT_TYPE


def test_user_material_overrides_detection(lexicons):
    attrs = AttributeAgent(lexicons).detect("plastic planter", material_hint="Ceramic")
    assert attrs.material == "ceramic"
    assert "69" in attrs.material_chapters


def test_collaborator_hints_fill_gaps_only(lexicons):
    agent = AttributeAgent(lexicons)
    attrs = agent.detect("boys tee", hint_material="cotton", hint_product_type="t-shirt")
    assert attrs.material == "cotton"
    assert attrs.product_type.type == "t-shirt"

    attrs = agent.detect("plastic planter", hint_material="wood", hint_product_type="bag")
    assert attrs.material == "plastic"
    assert attrs.product_type.type == "planter"


def test_unknown_hint_material_is_ignored(lexicons):
    attrs = AttributeAgent(lexicons).detect("gizmo", hint_material="unobtainium")
    assert attrs.material is None
    assert attrs.material_chapters == ()


def test_enriched_query_appends_product_keywords(lexicons):
    attrs = AttributeAgent(lexicons).detect("cotton t-shirt")
    assert attrs.enriched_query == "cotton t-shirt t-shirt tshirt knit apparel"
    assert AttributeAgent(lexicons).detect("gizmo").enriched_query == "gizmo"


def test_chapter_fallback_description(lexicons):
    assert lexicons.chapters.describe("61").startswith("Articles of apparel")
    assert lexicons.chapters.describe("00") == "Chapter 00"


def test_material_for_chapter(lexicons):
    assert lexicons.materials.material_for_chapter("39") == "plastic"
    assert lexicons.materials.material_for_chapter("69") == "ceramic"
    assert lexicons.materials.material_for_chapter("01") is None
