# ---------------------------
# File: app/services/duty_service.py
# ---------------------------
# Duty lookups for the API: resolves the code's rate from the catalog when the caller
# does not supply one, then runs the stacking calculator and landed cost.

import logging
from typing import Any, Dict, Optional

from chains.hts_chain import ClassificationEngine
from utils.exceptions import InvalidInputError, UnknownCodeError
from utils.hts_codes import normalize_code, validate_hts_code

logger = logging.getLogger(__name__)


class DutyService:
    def __init__(self, engine: ClassificationEngine):
        self.engine = engine

    async def calculate(self, hts_code: str, country: str, base_rate: Optional[str] = None,
                        special_rates: Optional[str] = None, unit_value: Optional[float] = None,
                        transport_mode: str = "ocean") -> Dict[str, Any]:
        clean = normalize_code(hts_code)
        if not validate_hts_code(hts_code):
            raise InvalidInputError(f"'{hts_code}' is not a valid HTS code")

        if base_rate is None:
            entry = await self.engine.repository.get_by_code(clean)
            if entry is None:
                raise UnknownCodeError(clean)
            base_rate, looked_up_special = await self.engine.resolve_rates(entry)
            special_rates = special_rates or looked_up_special

        calculation = self.engine.calculator.calculate(
            clean, base_rate, country, unit_value=unit_value, special_rates=special_rates,
        )
        landed = None
        if unit_value is not None:
            landed = self.engine.calculator.calculate_landed_cost(calculation, unit_value, transport_mode).to_json_dict()
        return {"duty": calculation.to_json_dict(), "landedCost": landed}

    def country_profile(self, country: str) -> Dict[str, Any]:
        countries = self.engine.registry.countries
        profile = countries.get_profile(country)
        return {
            "profile": profile.to_json_dict(),
            "hasAdditionalDuties": countries.has_additional_duties(country.upper()),
            "summary": countries.duty_summary(country.upper()),
            "lastVerified": countries.last_verified,
        }
