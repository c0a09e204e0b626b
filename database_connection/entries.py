# database_connection/entries.py
"""
Domain records handed out by every code repository implementation.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.hts_codes import CODE_LEVELS, LEAF_LEVELS, format_code, normalize_code


class CodeEntry(BaseModel):
    """
    A node of the HTS tree.

    `level` is derived from the code length; a mismatching explicit level is rejected.
    """

    code: str
    level: Optional[str] = None
    description: str = ""
    parent_code: Optional[str] = None
    parent_groupings: List[str] = Field(default_factory=list)
    base_rate: Optional[str] = None
    special_rates: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)

    @field_validator("code", "parent_code", mode="before")
    @classmethod
    def _normalize(cls, value):
        if value is None:
            return None
        clean = normalize_code(str(value))
        return clean or None

    @model_validator(mode="after")
    def _check_hierarchy(self):
        derived = CODE_LEVELS.get(len(self.code or ""))
        if derived is None:
            raise ValueError(f"'{self.code}' is not a 2/4/6/8/10 digit HTS code")
        if self.level is not None and self.level != derived:
            raise ValueError(f"Level '{self.level}' does not match code length of '{self.code}'")
        self.level = derived
        if self.parent_code is not None:
            if len(self.parent_code) >= len(self.code) or not self.code.startswith(self.parent_code):
                raise ValueError(f"Parent '{self.parent_code}' is not a prefix of '{self.code}'")
        return self

    @property
    def code_formatted(self) -> str:
        return format_code(self.code)

    @property
    def chapter(self) -> str:
        return self.code[:2]

    @property
    def heading(self) -> Optional[str]:
        return self.code[:4] if len(self.code) >= 4 else None

    @property
    def is_leaf_level(self) -> bool:
        return self.level in LEAF_LEVELS


class KeywordFilter(BaseModel):
    """Restrictions applied to a keyword search; empty lists mean unrestricted."""

    chapters: List[str] = Field(default_factory=list)
    headings: List[str] = Field(default_factory=list)
    levels: List[str] = Field(default_factory=list)
    limit: int = 50
