# ---------------------------
# File: app/main.py
# ---------------------------
"""
FastAPI application for HTS classification and duty stacking.
Run with: `uvicorn app.main:app --reload`
"""
import logging

from fastapi import FastAPI, HTTPException  # type: ignore
from fastapi.middleware.cors import CORSMiddleware  # type: ignore

from app.api.classify_router import router as classify_router
from app.api.duty_router import router_duty
from app.services.classification_service import get_classification_engine
from utils.settings import get_settings

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="HTS Classification API",
    description="Classifies product descriptions into HTS codes and stacks applicable import duties.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(classify_router)
app.include_router(router_duty)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def startup_event():
    # Warm start: load catalog and program data if configured
    try:
        get_classification_engine()
    except HTTPException as e:
        logger.warning("Classification engine not ready at startup: %s", e.detail)
