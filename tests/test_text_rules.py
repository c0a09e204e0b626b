# tests/test_text_rules.py
from utils.text_rules import (
    extract_nouns,
    find_material_conflict,
    is_other_code,
    is_specific_carve_out,
    nouns_overlap_by_prefix,
    nouns_overlap_by_stem,
    strip_trailing_colon,
    tokenize,
    unmentioned_specificity_penalty,
)

ALL_WHITE_TSHIRTS = (
    "T-shirts, all white, short hemmed sleeves, hemmed bottom, crew or round neckline, or V-neck, "
    "with a mitered seam at the center of the V, without pockets, trim or embroidery"
)


def test_tokenize_expands_variants_and_drops_stopwords():
    terms = tokenize("Cotton T-shirt for Boys")
    for expected in ("cotton", "shirt", "boys", "boy", "t-shirt", "tshirt"):
        assert expected in terms
    assert "for" not in terms
    assert len(terms) == len(set(terms))


def test_tokenize_empty():
    assert tokenize("") == []
    assert tokenize("   ") == []


def test_tokenize_singularizes():
    terms = tokenize("ceramic planters and boxes")
    assert "planter" in terms
    assert "box" in terms
    assert "and" not in terms


def test_is_other_code():
    assert is_other_code("Other")
    assert is_other_code("Other:")
    assert is_other_code("Other T-shirts")
    assert is_other_code("Of cotton: other")
    assert is_other_code("Articles nesoi")
    assert not is_other_code("Salad bowls")


def test_is_specific_carve_out():
    assert is_specific_carve_out("Nursing nipples and finger cots")
    assert is_specific_carve_out("Picture frames")
    assert not is_specific_carve_out("Other")
    assert not is_specific_carve_out("Tableware and kitchenware")
    assert not is_specific_carve_out(ALL_WHITE_TSHIRTS)


def test_extract_nouns_strips_boilerplate():
    assert extract_nouns("Other articles of plastics") == ["plastics"]
    assert extract_nouns("Picture frames") == ["picture", "frames"]


def test_noun_overlap_rules():
    assert nouns_overlap_by_stem(["frame"], ["picture", "frames"])
    assert not nouns_overlap_by_stem(["plastic", "planter"], ["picture", "frames"])
    assert nouns_overlap_by_prefix(["shirts"], ["shirting"])
    assert not nouns_overlap_by_prefix(["planter"], ["nursing", "nipples"])


def test_material_conflicts():
    assert find_material_conflict("cotton", "of man-made fibers") == "man-made fibers"
    assert find_material_conflict("polyester", "men's shirts: of cotton") == "cotton"
    assert find_material_conflict("cotton", "of cotton") is None
    assert find_material_conflict("", "of cotton") is None


def test_unmentioned_specificity_is_capped():
    terms = tokenize("cotton t-shirt")
    assert unmentioned_specificity_penalty(ALL_WHITE_TSHIRTS.lower(), terms, "cotton t-shirt") == 40


def test_mentioned_qualifiers_are_not_penalized():
    terms = tokenize("white t-shirt")
    assert unmentioned_specificity_penalty("all white t-shirts", terms, "white t-shirt") == 0
    assert unmentioned_specificity_penalty("printed t-shirts", tokenize("t-shirt"), "t-shirt") == 8


def test_strip_trailing_colon():
    assert strip_trailing_colon("Men's or boys':") == "Men's or boys'"
    assert strip_trailing_colon("Of cotton") == "Of cotton"
