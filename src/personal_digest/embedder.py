import logging
from typing import List, Optional, Sequence

from .errors import ProviderError
from .models import ContentItem
from .providers import EmbeddingProvider, with_timeout

logger = logging.getLogger(__name__)


class Embedder:
    def __init__(self, provider: EmbeddingProvider, batch_size: int = 0, timeout: Optional[float] = None):
        """
        Turns items into vectors through an embedding provider.

        ``batch_size`` of 0 sends every text in a single request.
        """
        self.provider = provider
        self.batch_size = batch_size
        self.timeout = timeout

    def _batches(self, texts: List[str]) -> List[List[str]]:
        if self.batch_size <= 0:
            return [texts]
        return [texts[i:i + self.batch_size] for i in range(0, len(texts), self.batch_size)]

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        vectors: List[List[float]] = []
        for batch in self._batches(texts):
            try:
                result = await with_timeout(self.provider.embed(batch), self.timeout, "embeddings")
            except ProviderError:
                raise
            except Exception as exc:
                raise ProviderError(f"Embedding call failed: {exc}", provider="embeddings") from exc
            if len(result) != len(batch):
                raise ProviderError(
                    f"Embedding provider returned {len(result)} vectors for {len(batch)} texts",
                    provider="embeddings",
                )
            vectors.extend([float(x) for x in vec] for vec in result)

        dims = {len(v) for v in vectors}
        if len(dims) != 1 or 0 in dims:
            raise ProviderError(f"Inconsistent embedding dimensions: {sorted(dims)}", provider="embeddings")
        logger.debug("Embedded %d texts (dim=%d)", len(vectors), dims.pop())
        return vectors

    async def embed_items(self, items: Sequence[ContentItem]) -> List[List[float]]:
        """Embeds each item as ``[sourceType] text``, preserving order."""
        return await self.embed_texts([item.labelled_text for item in items])
