# database_connection/models.py
"""
SQLAlchemy ORM model for the HTS code catalog.
Defines the hts_codes table consumed by the SQL code repository.
"""

from sqlalchemy import JSON, Column, Integer, String, Text
from sqlalchemy.orm import declarative_base

from database_connection.entries import CodeEntry

# Create base class for declarative models
Base = declarative_base()


class HTSCodeRecord(Base):
    """
    One node of the HTS tree (chapter through statistical suffix).
    """
    __tablename__ = 'hts_codes'

    id = Column(Integer, primary_key=True, autoincrement=True)

    code = Column(String(10), nullable=False, unique=True, index=True)  # digits only
    code_formatted = Column(String(13), nullable=False)
    level = Column(String(20), nullable=False, index=True)
    parent_code = Column(String(10), nullable=True, index=True)

    description = Column(Text, nullable=False, default="")
    parent_groupings = Column(JSON, nullable=False, default=list)  # indent labels without a code

    base_rate = Column(String(200), nullable=True)
    special_rates = Column(Text, nullable=True)

    keywords = Column(JSON, nullable=False, default=list)
    keyword_text = Column(Text, nullable=False, default="")  # " kw1 kw2 " for LIKE '% kw %'

    chapter = Column(String(2), nullable=False, index=True)
    heading = Column(String(4), nullable=True, index=True)

    @classmethod
    def from_entry(cls, entry: CodeEntry) -> "HTSCodeRecord":
        keywords = [k.lower() for k in entry.keywords]
        return cls(
            code=entry.code,
            code_formatted=entry.code_formatted,
            level=entry.level,
            parent_code=entry.parent_code,
            description=entry.description,
            parent_groupings=list(entry.parent_groupings),
            base_rate=entry.base_rate,
            special_rates=entry.special_rates,
            keywords=keywords,
            keyword_text=f" {' '.join(keywords)} " if keywords else "",
            chapter=entry.chapter,
            heading=entry.heading,
        )

    def to_entry(self) -> CodeEntry:
        return CodeEntry(
            code=self.code,
            level=self.level,
            description=self.description or "",
            parent_code=self.parent_code,
            parent_groupings=list(self.parent_groupings or []),
            base_rate=self.base_rate,
            special_rates=self.special_rates,
            keywords=list(self.keywords or []),
        )

    def __repr__(self):
        return f"<HTSCodeRecord(code='{self.code_formatted}', description='{(self.description or '')[:50]}...')>"
