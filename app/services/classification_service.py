# app/services/classification_service.py
import logging
from typing import Optional

from fastapi import HTTPException  # type: ignore

from chains.hts_chain import ClassificationEngine, build_engine
from utils.exceptions import HTSEngineError
from utils.settings import get_settings

logger = logging.getLogger(__name__)

# Shared engine so the catalog and program data are loaded once
_engine_singleton: Optional[ClassificationEngine] = None


def get_classification_engine() -> ClassificationEngine:
    global _engine_singleton
    if _engine_singleton is None:
        try:
            _engine_singleton = build_engine(get_settings())
        except HTSEngineError as e:
            raise HTTPException(status_code=503, detail=str(e))
        logger.info("Classification engine initialized")
    return _engine_singleton


def set_classification_engine(engine: Optional[ClassificationEngine]):
    """Replace the shared engine (used by tests and by startup wiring)."""
    global _engine_singleton
    _engine_singleton = engine
