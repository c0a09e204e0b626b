# app/api/duty_router.py
from fastapi import APIRouter, Depends, HTTPException  # type: ignore

from app.schemas import DutyCalculateRequest, DutyCalculateResponse
from app.services.classification_service import get_classification_engine
from app.services.duty_service import DutyService
from chains.hts_chain import ClassificationEngine
from utils.exceptions import InvalidInputError, UnknownCodeError

router_duty = APIRouter(prefix="/api/duty", tags=["duty"])


def get_duty_service(engine: ClassificationEngine = Depends(get_classification_engine)) -> DutyService:
    return DutyService(engine)


@router_duty.post("/calculate", response_model=DutyCalculateResponse)
async def calculate_duty(req: DutyCalculateRequest, duty_svc: DutyService = Depends(get_duty_service)):
    """
    Stack the base rate with every applicable additional program for the origin country.
    Without baseRate the rate is taken from the catalog entry (or its nearest rated ancestor).
    """
    try:
        result = await duty_svc.calculate(
            req.hts_code,
            req.country_of_origin,
            base_rate=req.base_rate,
            special_rates=req.special_rates,
            unit_value=req.unit_value,
            transport_mode=req.transport_mode,
        )
    except UnknownCodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return DutyCalculateResponse(**result)


@router_duty.get("/countries/{country}")
def country_profile(country: str, duty_svc: DutyService = Depends(get_duty_service)):
    return duty_svc.country_profile(country)
