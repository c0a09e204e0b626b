# utils/vectorstore.py
import argparse
import asyncio
import logging
import uuid
from typing import Iterable, List, NamedTuple, Optional

from openai import OpenAI
from qdrant_client import QdrantClient
from qdrant_client.http import models as qdrant_models

from database_connection.entries import CodeEntry
from utils.exceptions import CollaboratorUnavailableError
from utils.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class SemanticHit(NamedTuple):
    code: str
    similarity: float


def embedding_text(entry: CodeEntry) -> str:
    """Text embedded for a catalog entry: groupings then description, with heading context."""
    parts = [f"heading:{entry.heading}"] if entry.heading else []
    parts.extend(g.rstrip(":") for g in entry.parent_groupings)
    parts.append(entry.description)
    return " | ".join(p for p in parts if p)


class SemanticSearchClient:
    """
    Similarity search over catalog embeddings stored in Qdrant.

    Clients are created lazily so a missing configuration only surfaces as
    CollaboratorUnavailableError at call time, never at import.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._openai: Optional[OpenAI] = None
        self._qdrant: Optional[QdrantClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.openai_api_key and self.settings.qdrant_url)

    def _get_openai(self) -> OpenAI:
        if self._openai is None:
            self._openai = OpenAI(api_key=self.settings.openai_api_key)
        return self._openai

    def get_qdrant_client(self) -> QdrantClient:
        if self._qdrant is None:
            self._qdrant = QdrantClient(
                url=self.settings.qdrant_url, api_key=self.settings.qdrant_api_key, timeout=60
            )
        return self._qdrant

    def embed_texts(self, texts: List[str], batch_size: int = 64) -> List[List[float]]:
        vectors = []
        for i in range(0, len(texts), batch_size):
            chunk = texts[i: i + batch_size]
            resp = self._get_openai().embeddings.create(model=self.settings.embedding_model, input=chunk)
            for item in resp.data:
                vectors.append(item.embedding)
        return vectors

    def ensure_collection_and_indexes(self, vector_size: int = 1536):
        qdrant = self.get_qdrant_client()
        collection = self.settings.qdrant_collection
        existing = [c.name for c in qdrant.get_collections().collections]

        if collection not in existing:
            qdrant.create_collection(
                collection_name=collection,
                vectors_config=qdrant_models.VectorParams(size=vector_size, distance=qdrant_models.Distance.COSINE),
            )
            # Payload indexes for fast filtering
            for field_name in ["hts_code", "chapter", "heading"]:
                qdrant.create_payload_index(
                    collection_name=collection,
                    field_name=field_name,
                    field_schema=qdrant_models.PayloadSchemaType.KEYWORD,
                )

    def index_entries(self, entries: Iterable[CodeEntry], chunk_size: int = 64) -> int:
        """Embed leaf-level catalog entries and upsert them. Returns number of points written."""
        leaves = [e for e in entries if e.is_leaf_level]
        if not leaves:
            return 0

        vectors = self.embed_texts([embedding_text(e) for e in leaves])
        self.ensure_collection_and_indexes(len(vectors[0]))

        points = [
            qdrant_models.PointStruct(
                id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"hts:{entry.code}")),
                vector=vector,
                payload={
                    "hts_code": entry.code,
                    "chapter": entry.chapter,
                    "heading": entry.heading,
                    "text": embedding_text(entry),
                },
            )
            for entry, vector in zip(leaves, vectors)
        ]
        qdrant = self.get_qdrant_client()
        for i in range(0, len(points), chunk_size):
            qdrant.upsert(collection_name=self.settings.qdrant_collection, points=points[i:i + chunk_size], wait=True)
        logger.info("Indexed %d catalog entries into %s", len(points), self.settings.qdrant_collection)
        return len(points)

    def _search_sync(self, text: str, limit: int) -> List[SemanticHit]:
        vec = self.embed_texts([text])[0]
        response = self.get_qdrant_client().query_points(
            collection_name=self.settings.qdrant_collection,
            query=vec,
            limit=limit,
            with_payload=True,
        )
        hits = []
        for point in response.points:
            code = str((point.payload or {}).get("hts_code", ""))
            if code:
                hits.append(SemanticHit(code=code, similarity=float(point.score)))
        return hits

    async def similarity_search(self, text: str, limit: int = 50) -> List[SemanticHit]:
        """
        Args:
            text: Query text (already enriched with product-type keywords).
            limit: Maximum hits.

        Returns:
            Hits ordered by similarity, best first.

        Raises:
            CollaboratorUnavailableError: not configured, timed out or failed.
        """
        if not self.is_configured:
            raise CollaboratorUnavailableError("semantic_search", "OPENAI_API_KEY / QDRANT_URL not set")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._search_sync, text, limit),
                timeout=self.settings.semantic_search_timeout,
            )
        except asyncio.TimeoutError as e:
            raise CollaboratorUnavailableError("semantic_search", "timed out") from e
        except Exception as e:
            raise CollaboratorUnavailableError("semantic_search", str(e)) from e


def build_vectorstore(catalog_csv: str, settings: Optional[Settings] = None) -> int:
    """Embeds the leaf entries of a catalog CSV and uploads them to Qdrant. Returns number of points."""
    from utils.preprocessing import load_catalog_entries

    client = SemanticSearchClient(settings)
    if not client.is_configured:
        raise CollaboratorUnavailableError("semantic_search", "OPENAI_API_KEY / QDRANT_URL not set")
    return client.index_entries(load_catalog_entries(catalog_csv))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Index a catalog CSV into the Qdrant collection")
    parser.add_argument("catalog", help="Catalog CSV produced by utils.preprocessing")
    args = parser.parse_args()
    logger.info("Indexed %d points", build_vectorstore(args.catalog))
