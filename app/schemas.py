# ---------------------------
# File: app/schemas.py
# ---------------------------
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClassifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(..., min_length=1, max_length=2000, description="Free-text product description")
    material: Optional[str] = Field(None, description="Material override, e.g. 'cotton'")
    country_of_origin: Optional[str] = Field(None, alias="countryOfOrigin", description="ISO 3166-1 alpha-2 code")
    unit_value: Optional[float] = Field(None, alias="unitValue", ge=0, description="Shipment value in USD")
    answers: Optional[Dict[str, str]] = Field(None, description="Answers to earlier questions (material, use, value, size)")

    @field_validator("description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description must not be blank")
        return value


class ClassifyResponse(BaseModel):
    success: bool
    primary: Optional[Dict[str, Any]] = None
    alternatives: List[Dict[str, Any]] = []
    showMore: int = 0
    detectedMaterial: Optional[str] = None
    detectedChapters: List[str] = []
    searchTerms: List[str] = []
    needsClarification: Optional[Dict[str, Any]] = None
    conditionalClassification: Optional[Dict[str, Any]] = None
    timing: Dict[str, int] = {}
    trace: Optional[Dict[str, Any]] = None


class JustifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(..., min_length=1, max_length=2000)
    material: Optional[str] = None
    country_of_origin: Optional[str] = Field(None, alias="countryOfOrigin")


class DutyCalculateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hts_code: str = Field(..., alias="htsCode", description="HTS code, dotted or plain digits")
    country_of_origin: str = Field(..., alias="countryOfOrigin", min_length=2, max_length=2)
    base_rate: Optional[str] = Field(None, alias="baseRate", description="General rate text; looked up when omitted")
    special_rates: Optional[str] = Field(None, alias="specialRates")
    unit_value: Optional[float] = Field(None, alias="unitValue", ge=0)
    transport_mode: str = Field("ocean", alias="transportMode", description="ocean / air / truck / rail")


class DutyCalculateResponse(BaseModel):
    duty: Dict[str, Any]
    landedCost: Optional[Dict[str, Any]] = None
