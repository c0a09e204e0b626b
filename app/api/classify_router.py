# app/api/classify_router.py
from fastapi import APIRouter, Depends, HTTPException  # type: ignore

from app.schemas import ClassifyRequest, ClassifyResponse, JustifyRequest
from app.services.classification_service import get_classification_engine
from chains.hts_chain import ClassificationEngine
from utils.exceptions import InvalidInputError
from utils.llm_utils import Justification

router = APIRouter(prefix="/api/classify", tags=["classify"])


@router.post("", response_model=ClassifyResponse)
async def classify_product(req: ClassifyRequest, engine: ClassificationEngine = Depends(get_classification_engine)):
    """
    Classify a product description into an HTS code.
    Low confidence is reported through needsClarification, not as an error.
    """
    try:
        result = await engine.classify(
            req.description,
            material=req.material,
            country=req.country_of_origin,
            unit_value=req.unit_value,
            answers=req.answers,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ClassifyResponse(**result)


@router.post("/justify")
async def justify_classification(req: JustifyRequest,
                                 engine: ClassificationEngine = Depends(get_classification_engine)):
    try:
        justification: Justification = await engine.justify(
            req.description, material=req.material, country=req.country_of_origin
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return justification.to_json_dict()
