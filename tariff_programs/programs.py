# tariff_programs/programs.py
"""
Country tariff profiles and product-specific trade-remedy programs.

Everything here is data driven: the JSON files under tariff_programs/data are
the pluggable source and can be refreshed (or pointed elsewhere through
TARIFF_DATA_DIR) without touching the duty calculator.
"""

import json
import logging
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field

from utils.hts_codes import format_code, normalize_code
from utils.serialization import CamelModel

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_PROFILE_KEY = "DEFAULT"


class BlanketDuty(CamelModel):
    program_name: str
    program_type: str
    rate: float
    chapter99_code: Optional[str] = None
    authority: str = ""
    legal_reference: Optional[str] = None
    effective_date: Optional[date] = None
    applicable: bool = True
    description: str = ""


class TradeAgreement(CamelModel):
    name: str
    indicator: str
    preferential_rate: str = "Free"
    rules_of_origin: str = ""
    exempt_from_baseline: bool = False


class CountryTariffProfile(CamelModel):
    country_code: str
    country_name: str
    trade_status: str = "normal"
    blanket_duties: List[BlanketDuty] = Field(default_factory=list)
    trade_agreements: List[TradeAgreement] = Field(default_factory=list)
    is_default: bool = False

    @property
    def has_fta(self) -> bool:
        return len(self.trade_agreements) > 0

    @property
    def exempt_from_baseline(self) -> bool:
        return any(a.exempt_from_baseline for a in self.trade_agreements)


class BaselineProgram(CamelModel):
    program_name: str
    program_type: str = "ieepa_baseline"
    rate: float
    chapter99_code: Optional[str] = None
    authority: str = ""
    legal_reference: Optional[str] = None
    effective_date: Optional[date] = None
    excluded_countries: List[str] = Field(default_factory=list)
    description: str = ""


def _load_json(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


class CountryTariffRegistry:
    """
    Keyed lookup of country tariff profiles with a mandatory DEFAULT entry.

    Args:
        data: Parsed country_profiles.json content.
    """

    def __init__(self, data: dict):
        profiles = data.get("profiles", {})
        if DEFAULT_PROFILE_KEY not in profiles:
            raise ValueError("Country profile data must define a DEFAULT profile")

        self.profiles: Dict[str, CountryTariffProfile] = {}
        for code, raw in profiles.items():
            self.profiles[code.upper()] = CountryTariffProfile(
                country_code=code.upper(), is_default=code.upper() == DEFAULT_PROFILE_KEY, **raw
            )

        baseline = data.get("baseline")
        self.baseline: Optional[BaselineProgram] = BaselineProgram(**baseline) if baseline else None
        self.section_301_countries = [c.upper() for c in data.get("section_301_countries", [])]
        self.last_verified: Optional[str] = data.get("last_verified")

    @classmethod
    def from_json(cls, path: Path) -> "CountryTariffRegistry":
        return cls(_load_json(path))

    def get_profile(self, country_code: Optional[str]) -> CountryTariffProfile:
        key = (country_code or "").strip().upper()
        profile = self.profiles.get(key)
        if profile is None:
            logger.info("No tariff profile for '%s', using DEFAULT", key)
            return self.profiles[DEFAULT_PROFILE_KEY]
        return profile

    def has_additional_duties(self, country_code: str) -> bool:
        return len(self.get_profile(country_code).blanket_duties) > 0

    def duty_summary(self, country_code: str) -> str:
        profile = self.get_profile(country_code)
        if not profile.blanket_duties and profile.trade_agreements:
            names = ", ".join(a.name for a in profile.trade_agreements)
            return f"Eligible for preferential rates under {names}"
        if profile.blanket_duties:
            total = sum(d.rate for d in profile.blanket_duties if d.applicable)
            names = " + ".join(d.program_name for d in profile.blanket_duties)
            return f"+{total:g}% additional duties ({names})"
        return "Standard MFN rates apply"


class Section301Match(CamelModel):
    list_key: str
    list_name: str
    rate: float
    chapter99_code: str
    prefix: str
    notes: str = ""
    effective_date: Optional[date] = None
    legal_reference: str
    authority: str


class Section301Catalog:
    """Section 301 product lists; the longest matching prefix (down to 4 digits) wins."""

    def __init__(self, data: dict):
        self.legal_reference = data.get("legal_reference", "Trade Act of 1974, Section 301")
        self.authority = data.get("authority", "USTR")
        self._by_prefix: Dict[str, Section301Match] = {}
        for lst in data.get("lists", []):
            for entry in lst.get("entries", []):
                prefix = normalize_code(entry["prefix"])
                self._by_prefix[prefix] = Section301Match(
                    list_key=lst["list"],
                    list_name=lst["name"],
                    rate=entry.get("rate", lst["rate"]),
                    chapter99_code=lst["chapter99_code"],
                    prefix=format_code(prefix),
                    notes=entry.get("notes", ""),
                    effective_date=lst.get("effective_date"),
                    legal_reference=self.legal_reference,
                    authority=self.authority,
                )

    @classmethod
    def from_json(cls, path: Path) -> "Section301Catalog":
        return cls(_load_json(path))

    def match(self, hts_code: str) -> Optional[Section301Match]:
        clean = normalize_code(hts_code)
        for length in range(len(clean), 3, -1):
            found = self._by_prefix.get(clean[:length])
            if found is not None:
                return found
        return None


class Section232Match(CamelModel):
    product: str
    rate: float
    chapter99_code: str
    exempt_countries: List[str] = Field(default_factory=list)
    legal_reference: str
    authority: str


class Section232Catalog:
    def __init__(self, data: dict):
        legal_reference = data.get("legal_reference", "Trade Expansion Act of 1962, Section 232")
        authority = data.get("authority", "Department of Commerce")
        self._rules = []
        for product in data.get("products", []):
            match = Section232Match(
                product=product["product"],
                rate=product["rate"],
                chapter99_code=product["chapter99_code"],
                exempt_countries=[c.upper() for c in product.get("exempt_countries", [])],
                legal_reference=legal_reference,
                authority=authority,
            )
            for prefix in product.get("prefixes", []):
                self._rules.append((normalize_code(prefix), match))
        self._rules.sort(key=lambda rule: len(rule[0]), reverse=True)

    @classmethod
    def from_json(cls, path: Path) -> "Section232Catalog":
        return cls(_load_json(path))

    def match(self, hts_code: str) -> Optional[Section232Match]:
        clean = normalize_code(hts_code)
        for prefix, match in self._rules:
            if clean.startswith(prefix):
                return match
        return None


class ADCVDWarning(CamelModel):
    product_category: str
    message: str
    affected_countries: List[str]
    duty_range: Optional[str] = None
    lookup_url: str
    is_country_affected: bool


class ADCVDWatchList:
    """Anti-dumping / countervailing duty watch list. Advisory only, never a rate."""

    def __init__(self, data: dict):
        self.lookup_url = data.get("lookup_url", "https://aceservices.cbp.dhs.gov/adcvdweb")
        self.country_names: Dict[str, str] = data.get("country_names", {})
        self._orders = sorted(
            data.get("orders", []), key=lambda o: len(normalize_code(o["prefix"])), reverse=True
        )

    @classmethod
    def from_json(cls, path: Path) -> "ADCVDWatchList":
        return cls(_load_json(path))

    def check(self, hts_code: str, country_code: Optional[str] = None) -> Optional[ADCVDWarning]:
        clean = normalize_code(hts_code)
        order = next((o for o in self._orders if clean.startswith(normalize_code(o["prefix"]))), None)
        if order is None:
            return None

        countries = order.get("common_countries", [])
        affected = bool(country_code) and country_code.upper() in countries
        category = order["product_category"]
        if affected:
            message = (
                f"This product category ({category}) has active AD/CVD orders from your origin country. "
                "Additional manufacturer-specific duties of 10% to 500%+ may apply."
            )
        else:
            names = ", ".join(self.country_names.get(c, c) for c in countries[:4])
            message = (
                f"This product category ({category}) has AD/CVD orders from {names}. "
                "If sourcing from these countries, additional duties may apply."
            )
        return ADCVDWarning(
            product_category=category,
            message=message,
            affected_countries=countries,
            duty_range=order.get("duty_range"),
            lookup_url=self.lookup_url,
            is_country_affected=affected,
        )


class TariffProgramRegistry:
    """Bundle of every data source the duty calculator reads."""

    def __init__(self, countries: CountryTariffRegistry, section301: Section301Catalog,
                 section232: Section232Catalog, adcvd: ADCVDWatchList):
        self.countries = countries
        self.section301 = section301
        self.section232 = section232
        self.adcvd = adcvd


@lru_cache(maxsize=4)
def load_tariff_programs(data_dir: Optional[str] = None) -> TariffProgramRegistry:
    base = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    logger.info("Loading tariff program data from %s", base)
    return TariffProgramRegistry(
        countries=CountryTariffRegistry.from_json(base / "country_profiles.json"),
        section301=Section301Catalog.from_json(base / "section301_lists.json"),
        section232=Section232Catalog.from_json(base / "section232_products.json"),
        adcvd=ADCVDWatchList.from_json(base / "adcvd_orders.json"),
    )
