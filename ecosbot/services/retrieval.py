"""
Vector retrieval over the course material index

Questions are embedded with OpenAI and matched against a Pinecone index whose
vectors carry ``text`` and ``source`` metadata. Retrieval is best-effort:
when Pinecone or OpenAI is not configured, or a call fails, ``search`` returns
an empty list and the answer is generated without context.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from pinecone import Pinecone

from ..core.cache import RetrievalCache
from ..core.config import AppConfig
from ..core.logging_setup import sanitize_for_logs

logger = logging.getLogger(__name__)


class VectorRetriever:
    """OpenAI embeddings + Pinecone query, cached per question."""

    def __init__(self, config: AppConfig, cache: Optional[RetrievalCache] = None):
        self.default_index = config.pinecone_index_name
        self.namespace = config.pinecone_namespace
        self.embedding_model = config.embedding_model
        self.top_k = config.retrieval_top_k
        self.cache = cache
        self._indexes: Dict[str, Any] = {}
        self._pinecone = None
        self._openai = None

        if not config.pinecone_api_key or not config.openai_api_key:
            logger.warning("Pinecone or OpenAI key missing, retrieval disabled")
            return

        try:
            self._pinecone = Pinecone(api_key=config.pinecone_api_key)
            self._openai = AsyncOpenAI(api_key=config.openai_api_key)
            logger.info(f"Vector retrieval enabled on index: {self.default_index}")
        except Exception as e:
            logger.error(f"Error initializing Pinecone, retrieval disabled: {e}")
            self._pinecone = None
            self._openai = None

    @property
    def enabled(self) -> bool:
        return self._pinecone is not None and self._openai is not None

    def _index(self, name: str):
        if name not in self._indexes:
            self._indexes[name] = self._pinecone.Index(name)
        return self._indexes[name]

    async def _embed(self, text: str) -> List[float]:
        response = await self._openai.embeddings.create(
            model=self.embedding_model,
            input=text,
            encoding_format="float",
        )
        return response.data[0].embedding

    async def search(
        self,
        question: str,
        index_name: Optional[str] = None,
        top_k: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return up to ``top_k`` passages: [{"content": str, "source": str|None}]
        """
        if not self.enabled:
            return []

        index_name = index_name or self.default_index
        if self.cache is not None:
            cached = self.cache.get(question, index_name)
            if cached is not None:
                return cached

        try:
            vector = await self._embed(question)
            result = await asyncio.to_thread(
                self._index(index_name).query,
                vector=vector,
                top_k=top_k or self.top_k,
                include_metadata=True,
                namespace=self.namespace,
            )
        except Exception as e:
            logger.error(
                f"Vector search failed for {sanitize_for_logs(question)}: {e}",
                extra={"index": index_name}
            )
            return []

        passages = []
        for match in result.matches or []:
            metadata = match.metadata or {}
            text = metadata.get("text")
            if isinstance(text, str) and text:
                source = metadata.get("source")
                passages.append({
                    "content": text,
                    "source": source if isinstance(source, str) else None,
                })

        if self.cache is not None:
            self.cache.set(question, index_name, passages)
        return passages
