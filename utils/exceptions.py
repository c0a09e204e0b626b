# utils/exceptions.py
"""
Error taxonomy for the classification and duty pipeline.

Business outcomes (no candidates, low confidence, unparseable rates, unknown
countries) are reported as values in the result envelope. Only the cases
below are raised, and only CollaboratorUnavailableError ever reaches the
engine, which always swallows it after logging.
"""


class HTSEngineError(Exception):
    """Base class for errors raised by this package."""


class InvalidInputError(HTSEngineError):
    """Malformed or empty input rejected before entering the pipeline."""


class UnknownCodeError(HTSEngineError):
    """A code was requested that the repository does not hold."""

    def __init__(self, hts_code: str):
        super().__init__(f"HTS code '{hts_code}' not found in catalog")
        self.hts_code = hts_code


class CollaboratorUnavailableError(HTSEngineError):
    """Semantic search or LLM call failed, timed out or is not configured."""

    def __init__(self, collaborator: str, reason: str):
        super().__init__(f"{collaborator} unavailable: {reason}")
        self.collaborator = collaborator
        self.reason = reason
