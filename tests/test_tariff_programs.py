# tests/test_tariff_programs.py
import json

import pytest

from tariff_programs.programs import (
    ADCVDWatchList,
    CountryTariffRegistry,
    Section232Catalog,
    Section301Catalog,
    load_tariff_programs,
)


def test_registry_requires_default_profile():
    with pytest.raises(ValueError):
        CountryTariffRegistry({"profiles": {"CN": {"country_name": "China"}}})


def test_profile_lookup_is_case_insensitive(registry):
    countries = registry.countries
    assert countries.get_profile("cn").country_name == "China"
    assert countries.get_profile(None).is_default
    assert countries.get_profile("ZZ").country_code == "DEFAULT"
    assert countries.has_additional_duties("CN")
    assert not countries.has_additional_duties("SG")


def test_fta_profiles(registry):
    mexico = registry.countries.get_profile("MX")
    assert mexico.has_fta
    assert mexico.exempt_from_baseline
    singapore = registry.countries.get_profile("SG")
    assert singapore.has_fta
    assert not singapore.exempt_from_baseline


def test_section_301_longest_prefix_wins():
    catalog = Section301Catalog({"lists": [
        {"list": "a", "name": "List A", "rate": 25, "chapter99_code": "9903.88.01",
         "entries": [{"prefix": "8541"}]},
        {"list": "b", "name": "List B", "rate": 50, "chapter99_code": "9903.91.01",
         "entries": [{"prefix": "8541.40", "notes": "Solar cells"}]},
    ]})
    assert catalog.match("8541.40.60.00").list_name == "List B"
    assert catalog.match("8541.10.00").rate == 25
    assert catalog.match("8542") is None


def test_section_232_exempt_countries():
    catalog = Section232Catalog({"products": [
        {"product": "Steel", "rate": 25, "chapter99_code": "9903.80.01", "prefixes": ["72", "7323"],
         "exempt_countries": ["gb"]},
    ]})
    match = catalog.match("7323.93.00")
    assert match.product == "Steel"
    assert match.exempt_countries == ["GB"]
    assert catalog.match("3924") is None


def test_adcvd_messages_depend_on_origin(registry):
    affected = registry.adcvd.check("7318150000", "CN")
    assert affected.is_country_affected
    assert "from your origin country" in affected.message

    elsewhere = registry.adcvd.check("7318150000", "DE")
    assert not elsewhere.is_country_affected
    assert "China, Taiwan, India" in elsewhere.message

    assert registry.adcvd.check("3924905650", "CN") is None


def test_adcvd_without_country():
    watch = ADCVDWatchList({"orders": [{"prefix": "7604", "product_category": "Aluminum Extrusions",
                                        "common_countries": ["CN"]}]})
    warning = watch.check("7604.10")
    assert not warning.is_country_affected
    assert warning.lookup_url.startswith("https://")


def test_data_directory_is_pluggable(tmp_path):
    (tmp_path / "country_profiles.json").write_text(json.dumps({
        "profiles": {"DEFAULT": {"country_name": "Everywhere"}},
    }))
    (tmp_path / "section301_lists.json").write_text(json.dumps({"lists": []}))
    (tmp_path / "section232_products.json").write_text(json.dumps({"products": []}))
    (tmp_path / "adcvd_orders.json").write_text(json.dumps({"orders": []}))

    registry = load_tariff_programs(str(tmp_path))
    assert registry.countries.get_profile("CN").country_name == "Everywhere"
    assert registry.countries.baseline is None
    assert registry.section301.match("6402") is None
