# database_connection/repository.py
"""
Code repository: the read-only lookups the classification engine needs over the
hierarchical HTS catalog. Two implementations share one async interface:

- InMemoryCodeRepository: a pandas DataFrame built from catalog rows (CSV or entries)
- SqlCodeRepository: async SQLAlchemy over the hts_codes table
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from database_connection.entries import CodeEntry, KeywordFilter
from database_connection.models import HTSCodeRecord
from utils.hts_codes import normalize_code

logger = logging.getLogger(__name__)

DESCRIPTION_TERMS = 3


def _ancestor_prefixes(code: str) -> List[str]:
    return [code[:n] for n in (2, 4, 6, 8) if n < len(code)]


class CodeRepository(ABC):
    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[CodeEntry]:
        ...

    @abstractmethod
    async def get_by_codes(self, codes: Sequence[str]) -> List[CodeEntry]:
        """Entries for the given codes, in the order requested; unknown codes are skipped."""

    @abstractmethod
    async def get_children(self, parent_code: str) -> List[CodeEntry]:
        ...

    @abstractmethod
    async def get_by_prefix(self, prefix: str) -> List[CodeEntry]:
        ...

    @abstractmethod
    async def search_by_keyword(self, terms: Sequence[str],
                                filters: Optional[KeywordFilter] = None) -> List[CodeEntry]:
        """
        Entries whose keyword list shares a term, or whose description contains one of
        the first three terms. With no terms only the filters apply. Ordered by code.
        """

    @abstractmethod
    async def get_ancestors(self, code: str) -> List[CodeEntry]:
        """Ancestors ordered root to leaf, excluding the entry itself."""


class InMemoryCodeRepository(CodeRepository):
    """
    Catalog held in a pandas DataFrame, indexed by canonical code.
    """

    def __init__(self, entries: Iterable[CodeEntry]):
        by_code: Dict[str, CodeEntry] = {}
        for entry in entries:
            by_code[entry.code] = entry

        # Derive missing parents from the nearest existing prefix
        for code, entry in list(by_code.items()):
            if entry.parent_code is None and len(code) > 2:
                parent = next((p for p in reversed(_ancestor_prefixes(code)) if p in by_code), None)
                if parent is not None:
                    by_code[code] = entry.model_copy(update={"parent_code": parent})

        self._entries = by_code
        self.df = pd.DataFrame(
            [
                {
                    "code": e.code,
                    "level": e.level,
                    "parent_code": e.parent_code or "",
                    "chapter": e.chapter,
                    "heading": e.heading or "",
                    "description_lower": e.description.lower(),
                    "keywords": frozenset(k.lower() for k in e.keywords),
                }
                for e in by_code.values()
            ],
            columns=["code", "level", "parent_code", "chapter", "heading", "description_lower", "keywords"],
        )
        if not self.df.empty:
            self.df = self.df.sort_values("code").reset_index(drop=True)
        logger.info("In-memory code repository loaded with %d entries", len(self.df))

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "InMemoryCodeRepository":
        from utils.preprocessing import load_catalog_entries

        return cls(load_catalog_entries(path))

    def __len__(self):
        return len(self._entries)

    def _codes_to_entries(self, codes: Iterable[str]) -> List[CodeEntry]:
        return [self._entries[c] for c in codes]

    async def get_by_code(self, code: str) -> Optional[CodeEntry]:
        return self._entries.get(normalize_code(code))

    async def get_by_codes(self, codes: Sequence[str]) -> List[CodeEntry]:
        found = []
        for code in codes:
            entry = self._entries.get(normalize_code(code))
            if entry is not None:
                found.append(entry)
        return found

    async def get_children(self, parent_code: str) -> List[CodeEntry]:
        clean = normalize_code(parent_code)
        rows = self.df[self.df["parent_code"] == clean]
        return self._codes_to_entries(rows["code"])

    async def get_by_prefix(self, prefix: str) -> List[CodeEntry]:
        clean = normalize_code(prefix)
        rows = self.df[self.df["code"].str.startswith(clean)]
        return self._codes_to_entries(rows["code"])

    async def search_by_keyword(self, terms: Sequence[str],
                                filters: Optional[KeywordFilter] = None) -> List[CodeEntry]:
        filters = filters or KeywordFilter()
        if self.df.empty:
            return []

        mask = pd.Series(True, index=self.df.index)
        if filters.chapters:
            mask &= self.df["chapter"].isin(filters.chapters)
        if filters.headings:
            mask &= self.df["heading"].isin(filters.headings)
        if filters.levels:
            mask &= self.df["level"].isin(filters.levels)

        lowered = [t.lower() for t in terms if t]
        if lowered:
            term_set = set(lowered)
            matched = self.df["keywords"].apply(lambda kws: not term_set.isdisjoint(kws))
            for term in lowered[:DESCRIPTION_TERMS]:
                matched |= self.df["description_lower"].str.contains(term, regex=False)
            mask &= matched

        rows = self.df[mask].head(filters.limit)
        return self._codes_to_entries(rows["code"])

    async def get_ancestors(self, code: str) -> List[CodeEntry]:
        clean = normalize_code(code)
        entry = self._entries.get(clean)
        chain: List[CodeEntry] = []
        if entry is None:
            return [self._entries[p] for p in _ancestor_prefixes(clean) if p in self._entries]

        parent_code = entry.parent_code
        while parent_code:
            parent = self._entries.get(parent_code)
            if parent is None:
                break
            chain.append(parent)
            parent_code = parent.parent_code
        chain.reverse()
        return chain


class SqlCodeRepository(CodeRepository):
    """
    Catalog stored in the hts_codes table, read through an async session factory.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _fetch(self, statement) -> List[CodeEntry]:
        async with self.session_factory() as session:
            result = await session.execute(statement)
            return [record.to_entry() for record in result.scalars().all()]

    async def add_entries(self, entries: Iterable[CodeEntry]):
        async with self.session_factory() as session:
            session.add_all([HTSCodeRecord.from_entry(e) for e in entries])
            await session.commit()

    async def get_by_code(self, code: str) -> Optional[CodeEntry]:
        found = await self._fetch(select(HTSCodeRecord).where(HTSCodeRecord.code == normalize_code(code)))
        return found[0] if found else None

    async def get_by_codes(self, codes: Sequence[str]) -> List[CodeEntry]:
        clean = [normalize_code(c) for c in codes]
        if not clean:
            return []
        found = await self._fetch(select(HTSCodeRecord).where(HTSCodeRecord.code.in_(clean)))
        by_code = {e.code: e for e in found}
        return [by_code[c] for c in clean if c in by_code]

    async def get_children(self, parent_code: str) -> List[CodeEntry]:
        return await self._fetch(
            select(HTSCodeRecord)
            .where(HTSCodeRecord.parent_code == normalize_code(parent_code))
            .order_by(HTSCodeRecord.code)
        )

    async def get_by_prefix(self, prefix: str) -> List[CodeEntry]:
        return await self._fetch(
            select(HTSCodeRecord)
            .where(HTSCodeRecord.code.like(f"{normalize_code(prefix)}%"))
            .order_by(HTSCodeRecord.code)
        )

    async def search_by_keyword(self, terms: Sequence[str],
                                filters: Optional[KeywordFilter] = None) -> List[CodeEntry]:
        filters = filters or KeywordFilter()
        statement = select(HTSCodeRecord)
        if filters.chapters:
            statement = statement.where(HTSCodeRecord.chapter.in_(filters.chapters))
        if filters.headings:
            statement = statement.where(HTSCodeRecord.heading.in_(filters.headings))
        if filters.levels:
            statement = statement.where(HTSCodeRecord.level.in_(filters.levels))

        lowered = [t.lower() for t in terms if t]
        if lowered:
            conditions = [HTSCodeRecord.keyword_text.like(f"% {t} %") for t in lowered]
            conditions += [
                func.lower(HTSCodeRecord.description).like(f"%{t}%") for t in lowered[:DESCRIPTION_TERMS]
            ]
            statement = statement.where(or_(*conditions))

        return await self._fetch(statement.order_by(HTSCodeRecord.code).limit(filters.limit))

    async def get_ancestors(self, code: str) -> List[CodeEntry]:
        prefixes = _ancestor_prefixes(normalize_code(code))
        if not prefixes:
            return []
        found = await self._fetch(select(HTSCodeRecord).where(HTSCodeRecord.code.in_(prefixes)))
        return sorted(found, key=lambda e: len(e.code))
