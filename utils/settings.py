# utils/settings.py
"""
Runtime configuration for the classification engine.
Values come from environment variables (a .env file is honoured) with the
documented defaults below.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    try:
        return int(value) if value else default
    except ValueError:
        return default


class ScoringWeights(BaseModel):
    """Every additive constant used by the multi-factor scorer."""

    leading_term: int = 50
    primary_segment_term: int = 35
    keyword_hit: int = 6
    keyword_cap: int = 15
    description_hit: int = 4
    description_cap: int = 10
    keyword_match_cap: int = 60
    segment_match: int = 25
    segment_missing_tariff_line: int = 15

    material_match: int = 30
    material_mismatch: int = 20
    material_conflict: int = 50

    product_type_match: int = 30
    product_type_mismatch: int = 50

    carve_out_match: int = 20
    carve_out_mismatch: int = 40
    other_validated: int = 15
    other_unvalidated: int = 8
    general_specificity: int = 10

    parent_hit: int = 4
    parent_cap: int = 10
    heading_hit: int = 15
    heading_cap: int = 45

    noun_mismatch: int = 40
    unmentioned_cap: int = 40

    other_bonus_base: int = 10
    other_bonus_per_exclusion: int = 3
    other_bonus_cap: int = 25
    other_invalid: int = 25
    other_unverified: int = 5


class FeatureFlags(BaseModel):
    semantic_search: bool = True
    segment_matching: bool = True
    unmentioned_specificity: bool = True
    validate_other_codes: bool = True
    conditional_detection: bool = True
    llm_enrichment: bool = False


class Settings:
    """
    Configuration class for engine settings.
    Supports overriding any threshold through the environment.
    """

    def __init__(self):
        self.catalog_csv: Optional[str] = os.getenv("HTS_CATALOG_CSV")
        self.database_url: Optional[str] = os.getenv("DATABASE_URL")

        self.tariff_data_dir = Path(os.getenv("TARIFF_DATA_DIR", PACKAGE_ROOT / "tariff_programs" / "data"))
        self.lexicon_data_dir = Path(os.getenv("LEXICON_DATA_DIR", PACKAGE_ROOT / "utils" / "data"))

        self.confidence_threshold = _env_int("CONFIDENCE_THRESHOLD", 40)
        self.confidence_floor = _env_int("CONFIDENCE_FLOOR", 15)

        self.primary_similarity_threshold = _env_float("PRIMARY_SIMILARITY_THRESHOLD", 0.4)
        self.diversity_similarity_threshold = _env_float("DIVERSITY_SIMILARITY_THRESHOLD", 0.2)
        self.semantic_search_limit = _env_int("SEMANTIC_SEARCH_LIMIT", 50)
        self.semantic_search_timeout = _env_float("SEMANTIC_SEARCH_TIMEOUT", 5.0)

        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.qdrant_url: Optional[str] = os.getenv("QDRANT_URL")
        self.qdrant_api_key: Optional[str] = os.getenv("QDRANT_API_KEY")
        self.qdrant_collection = os.getenv("QDRANT_COLLECTION", "hts_embeddings")
        self.embedding_model = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

        self.llm_model = os.getenv("LLM_MODEL", "gpt-4o-mini")
        self.llm_timeout = _env_float("LLM_TIMEOUT", 15.0)
        self.llm_max_concurrency = _env_int("LLM_MAX_CONCURRENCY", 8)

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        has_vector_backend = bool(self.openai_api_key and self.qdrant_url)
        self.flags = FeatureFlags(
            semantic_search=_env_bool("SEMANTIC_SEARCH_ENABLED", has_vector_backend),
            segment_matching=_env_bool("SEGMENT_MATCHING_ENABLED", True),
            unmentioned_specificity=_env_bool("UNMENTIONED_SPECIFICITY_ENABLED", True),
            validate_other_codes=_env_bool("VALIDATE_OTHER_CODES", True),
            conditional_detection=_env_bool("CONDITIONAL_DETECTION_ENABLED", True),
            llm_enrichment=_env_bool("LLM_ENABLED", False),
        )
        self.weights = ScoringWeights()


_settings_singleton: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_singleton
    if _settings_singleton is None:
        _settings_singleton = Settings()
    return _settings_singleton
