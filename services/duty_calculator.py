# services/duty_calculator.py

import logging
import math
import re
from datetime import date
from typing import List, Optional, Set

from tariff_programs.programs import (
    ADCVDWarning,
    CountryTariffProfile,
    TariffProgramRegistry,
)
from utils.hts_codes import format_code
from utils.serialization import CamelModel

logger = logging.getLogger(__name__)

DISCLAIMER = (
    "These tariff rates are provided for informational purposes only. Actual duties may vary "
    "based on product classification, country of origin determination, and current regulations. "
    "Always verify with a licensed customs broker or CBP."
)

HIGH_TARIFF_THRESHOLD = 25.0

# Merchandise processing fee / harbor maintenance fee
MPF_RATE = 0.003464
MPF_MIN = 27.75
MPF_MAX = 538.40
HMF_RATE = 0.00125

_PERCENT_RE = re.compile(r"(\d+\.?\d*)\s*%")
_SPECIFIC_RE = re.compile(r"(\d+\.?\d*)\s*(¢|\$)\s*/\s*(\w+)")
_NUMERIC_RE = re.compile(r"^\d+\.?\d*$")
_SPECIAL_GROUP_RE = re.compile(r"\(([^)]*)\)")


class ParsedRate(CamelModel):
    text: str
    rate_type: str  # free | ad_valorem | specific | compound
    ad_valorem: float = 0.0
    specific_amount: Optional[float] = None
    specific_unit: Optional[str] = None
    flag: Optional[str] = None


def parse_rate_details(rate_string: Optional[str]) -> ParsedRate:
    """
    Parses a duty rate string (e.g., "5%", "Free", "2.4¢/kg + 5.6%") into a structured format.

    Specific (per-unit) components are recorded but never folded into the ad-valorem figure.
    A string matching none of the patterns is treated as 0% ad valorem and flagged.
    """
    text = (rate_string or "").strip()
    if not text or text.lower().startswith("free"):
        return ParsedRate(text=text or "Free", rate_type="free")

    percent_match = _PERCENT_RE.search(text)
    specific_match = _SPECIFIC_RE.search(text)
    specific_amount = float(specific_match.group(1)) if specific_match else None
    specific_unit = specific_match.group(3) if specific_match else None

    if percent_match:
        return ParsedRate(
            text=text,
            rate_type="compound" if specific_match else "ad_valorem",
            ad_valorem=float(percent_match.group(1)),
            specific_amount=specific_amount,
            specific_unit=specific_unit,
        )
    if specific_match:
        return ParsedRate(
            text=text, rate_type="specific",
            specific_amount=specific_amount, specific_unit=specific_unit,
        )
    # Simple numeric rates are percentages
    if _NUMERIC_RE.match(text):
        return ParsedRate(text=text, rate_type="ad_valorem", ad_valorem=float(text))

    logger.warning("Unparseable duty rate '%s', treating as 0%%", text)
    return ParsedRate(text=text, rate_type="ad_valorem", flag="unparseable")


def parse_rate(rate_string: Optional[str]) -> float:
    """Ad-valorem percentage of a rate string: 16.5 for "16.5%", 0 for "Free"."""
    return parse_rate_details(rate_string).ad_valorem


def special_rate_indicators(special_rates: Optional[str]) -> Set[str]:
    """Program indicators listed in a special-rate column, e.g. "Free (A+,AU,S,SG)" -> {A, AU, S, SG}."""
    indicators: Set[str] = set()
    for group in _SPECIAL_GROUP_RE.findall(special_rates or ""):
        for token in group.split(","):
            token = token.strip().rstrip("+*").upper()
            if token:
                indicators.add(token)
    return indicators


class AdditionalDuty(CamelModel):
    program_name: str
    program_type: str  # section_301 | ieepa_fentanyl | ieepa_reciprocal | ieepa_baseline | section_232 | other
    rate: float
    chapter99_code: Optional[str] = None
    authority: str = ""
    legal_reference: Optional[str] = None
    effective_date: Optional[date] = None
    description: str = ""


class DutyLine(CamelModel):
    label: str
    rate: float
    program_type: str
    legal_reference: Optional[str] = None


class DutyCalculation(CamelModel):
    hts_code: str
    country_code: str
    country_name: str
    trade_status: str
    base_rate: ParsedRate
    base_rate_waived: bool = False
    trade_agreement: Optional[str] = None
    additional_duties: List[AdditionalDuty]
    breakdown: List[DutyLine]
    additional_total: float
    total_rate: float
    unit_value: Optional[float] = None
    estimated_duty: Optional[float] = None
    rate_flag: Optional[str] = None
    adcvd_warning: Optional[ADCVDWarning] = None
    warnings: List[str]
    notes: List[str]
    country_summary: str
    data_freshness: str
    disclaimer: str = DISCLAIMER


class LandedCost(CamelModel):
    unit_value: float
    transport_mode: str
    estimated_duty: float
    merchandise_processing_fee: float
    harbor_maintenance_fee: float
    total_fees: float
    landed_cost: float
    notes: List[str]


def _format_freshness(value: Optional[str]) -> str:
    try:
        as_of = date.fromisoformat(value) if value else date.today()
    except ValueError:
        as_of = date.today()
    return f"As of {as_of.strftime('%B')} {as_of.day}, {as_of.year}"


class DutyStackingCalculator:
    """
    Composes the base MFN rate with every independently applicable additional-duty program.

    Additional programs are always summed. A trade agreement can only ever waive the base
    component, never an additional program.
    """

    def __init__(self, registry: TariffProgramRegistry):
        self.registry = registry

    def _apply_trade_agreement(self, profile: CountryTariffProfile, base: ParsedRate,
                               special_rates: Optional[str], notes: List[str]):
        """Returns the agreement that waives the base rate, if the special-rate column names it."""
        if not profile.trade_agreements:
            return None
        indicators = special_rate_indicators(special_rates)
        for agreement in profile.trade_agreements:
            if agreement.indicator.upper() in indicators:
                return agreement
        if base.ad_valorem > 0:
            agreement = profile.trade_agreements[0]
            notes.append(
                f"This product may qualify for {agreement.name} preferential rates "
                f"({agreement.preferential_rate}) if it meets the rules of origin: {agreement.rules_of_origin}"
            )
        return None

    def calculate(
        self,
        hts_code: str,
        base_rate: Optional[str],
        country_code: Optional[str],
        unit_value: Optional[float] = None,
        special_rates: Optional[str] = None,
    ) -> DutyCalculation:
        """
        Args:
            hts_code: Code in canonical or dotted form.
            base_rate: General (MFN) rate text for the code.
            country_code: ISO-2 origin country; unknown countries use the DEFAULT profile.
            unit_value: Optional shipment value in USD.
            special_rates: Special-rate column text, used to evidence FTA eligibility.

        Returns:
            DutyCalculation with the itemized breakdown and grand total.
        """
        country = (country_code or "").strip().upper()
        countries = self.registry.countries
        profile = countries.get_profile(country)
        base = parse_rate_details(base_rate)

        additional: List[AdditionalDuty] = []
        warnings: List[str] = []
        notes: List[str] = []
        breakdown = [DutyLine(label="Base MFN rate", rate=base.ad_valorem, program_type="base")]

        if base.specific_amount is not None:
            notes.append(
                f"Specific duty component ({base.specific_amount:g}{'¢' if '¢' in base.text else '$'}/"
                f"{base.specific_unit}) is not included in the ad valorem total."
            )

        agreement = self._apply_trade_agreement(profile, base, special_rates, notes)
        if agreement is not None and base.ad_valorem > 0:
            breakdown.append(DutyLine(
                label=f"{agreement.name} base duty waiver",
                rate=-base.ad_valorem,
                program_type="fta_waiver",
            ))

        for duty in profile.blanket_duties:
            if not duty.applicable:
                continue
            additional.append(AdditionalDuty(
                program_name=duty.program_name,
                program_type=duty.program_type,
                rate=duty.rate,
                chapter99_code=duty.chapter99_code,
                authority=duty.authority,
                legal_reference=duty.legal_reference,
                effective_date=duty.effective_date,
                description=duty.description,
            ))

        if country in countries.section_301_countries:
            listing = self.registry.section301.match(hts_code)
            if listing is not None:
                additional.append(AdditionalDuty(
                    program_name=listing.list_name,
                    program_type="section_301",
                    rate=listing.rate,
                    chapter99_code=listing.chapter99_code,
                    authority=listing.authority,
                    legal_reference=listing.legal_reference,
                    effective_date=listing.effective_date,
                    description=f"Section 301 tariff on products from {profile.country_name}. "
                                f"This product is on {listing.list_name} ({listing.notes}).",
                ))
            else:
                notes.append(
                    "This product did not match a Section 301 list entry but may still be listed. "
                    "Verify against the current USTR Section 301 lists."
                )

        baseline = countries.baseline
        has_baseline = any(d.program_type == "ieepa_baseline" for d in additional)
        if baseline is not None and not has_baseline and country not in baseline.excluded_countries:
            if profile.exempt_from_baseline:
                notes.append(
                    f"{profile.trade_agreements[0].name} goods may be exempt from IEEPA when compliant."
                )
            else:
                additional.append(AdditionalDuty(
                    program_name=baseline.program_name,
                    program_type=baseline.program_type,
                    rate=baseline.rate,
                    chapter99_code=baseline.chapter99_code,
                    authority=baseline.authority,
                    legal_reference=baseline.legal_reference,
                    effective_date=baseline.effective_date,
                    description=baseline.description,
                ))
                for fta in profile.trade_agreements:
                    warnings.append(f"{fta.name} waives base duty but {baseline.rate:g}%+ IEEPA still applies!")

        product_232 = self.registry.section232.match(hts_code)
        if product_232 is not None and country not in product_232.exempt_countries:
            additional.append(AdditionalDuty(
                program_name=f"Section 232 {product_232.product}",
                program_type="section_232",
                rate=product_232.rate,
                chapter99_code=product_232.chapter99_code,
                authority=product_232.authority,
                legal_reference=product_232.legal_reference,
                description=f"Section 232 national security tariff on {product_232.product.lower()} products.",
            ))

        for duty in additional:
            breakdown.append(DutyLine(
                label=duty.program_name,
                rate=duty.rate,
                program_type=duty.program_type,
                legal_reference=duty.legal_reference,
            ))

        additional_total = math.fsum(d.rate for d in additional)
        total_rate = round(math.fsum(line.rate for line in breakdown), 4)
        if additional_total > HIGH_TARIFF_THRESHOLD:
            warnings.append(
                f"High tariff alert: {additional_total:g}% in additional duties apply to goods from "
                f"{profile.country_name}."
            )

        estimated_duty = None
        if unit_value is not None:
            estimated_duty = round(unit_value * total_rate / 100, 2)

        logger.info(
            "Duty for %s from %s: base %s%% + additional %s%% = %s%%",
            format_code(hts_code), country or "DEFAULT", base.ad_valorem, additional_total, total_rate,
        )

        return DutyCalculation(
            hts_code=format_code(hts_code),
            country_code=country or profile.country_code,
            country_name=profile.country_name,
            trade_status=profile.trade_status,
            base_rate=base,
            base_rate_waived=agreement is not None,
            trade_agreement=agreement.name if agreement is not None else None,
            additional_duties=additional,
            breakdown=breakdown,
            additional_total=additional_total,
            total_rate=total_rate,
            unit_value=unit_value,
            estimated_duty=estimated_duty,
            rate_flag=base.flag,
            adcvd_warning=self.registry.adcvd.check(hts_code, country),
            warnings=warnings,
            notes=notes,
            country_summary=countries.duty_summary(country),
            data_freshness=_format_freshness(countries.last_verified),
        )

    def calculate_landed_cost(self, calculation: DutyCalculation, unit_value: float,
                              transport_mode: str = "ocean") -> LandedCost:
        """
        Calculates the total landed cost: value + estimated duty + MPF (+ HMF for ocean freight).
        """
        mode = (transport_mode or "ocean").strip().lower()
        duty = round(unit_value * calculation.total_rate / 100, 2)
        mpf = round(min(max(unit_value * MPF_RATE, MPF_MIN), MPF_MAX), 2)
        hmf = round(unit_value * HMF_RATE, 2) if mode == "ocean" else 0.0
        notes = [f"Merchandise processing fee: ${mpf:,.2f}"]
        if hmf:
            notes.append(f"Harbor maintenance fee (ocean freight): ${hmf:,.2f}")
        fees = round(mpf + hmf, 2)
        return LandedCost(
            unit_value=unit_value,
            transport_mode=mode,
            estimated_duty=duty,
            merchandise_processing_fee=mpf,
            harbor_maintenance_fee=hmf,
            total_fees=fees,
            landed_cost=round(unit_value + duty + fees, 2),
            notes=notes,
        )
