# tests/test_validation_agent.py
import asyncio

from agents.validation_agent import CatchAllValidator
from utils.text_rules import tokenize


def test_other_is_valid_when_every_carve_out_is_ruled_out(repository):
    result = asyncio.run(CatchAllValidator(repository).validate(tokenize("plastic planter"), "3924.90.56"))

    assert result.is_valid_other
    assert [s.description for s in result.excluded_siblings] == ["Nursing nipples and finger cots", "Picture frames"]
    assert result.excluded_siblings[0].code == "3924.90.05"
    assert result.excluded_siblings[0].reason == 'Product is not "nursing, nipples, finger"'


def test_matching_carve_out_invalidates_other(repository):
    result = asyncio.run(CatchAllValidator(repository).validate(tokenize("plastic picture frame"), "39249056"))

    assert not result.is_valid_other
    assert len(result.excluded_siblings) == 1
    assert result.excluded_siblings[0].description == "Picture frames"
    assert result.excluded_siblings[0].reason == 'Product may match "Picture frames"'


def test_other_without_specific_siblings(repository):
    result = asyncio.run(CatchAllValidator(repository).validate(tokenize("cotton shirt"), "62052020"))
    assert result.is_valid_other
    assert result.excluded_siblings == []


def test_sibling_cache_is_filled_per_subheading(repository):
    cache = {}
    validator = CatchAllValidator(repository)
    asyncio.run(validator.validate(tokenize("plastic planter"), "39249056", cache))
    assert [e.code for e in cache["392490"]] == ["39249005", "39249020", "39249056"]


def test_as_dict_uses_camel_case(repository):
    result = asyncio.run(CatchAllValidator(repository).validate(tokenize("plastic planter"), "39249056"))
    payload = result.as_dict()
    assert payload["isValidOther"] is True
    assert payload["excludedSiblings"][1]["code"] == "3924.90.20"
