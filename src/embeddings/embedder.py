"""
Embedding service adapter.

Rows are embedded one request per text; a batch issues all requests at
once and waits for every one of them, so batch latency follows the
slowest single call.
"""

import asyncio
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

from src.core.exceptions import EmbeddingError
from src.observability.logger import get_logger

logger = get_logger(__name__)


class Embedder(Protocol):
    """Text -> vector function with a fixed output width."""

    async def embed(self, text: str) -> list[float]:
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        ...


class OpenAIEmbedder:
    """
    Embedder backed by the OpenAI embeddings endpoint.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        max_concurrency: int | None = None,
    ):
        """
        Initialize embedder.

        Args:
            client: Async OpenAI client
            model: Embedding model name
            dimensions: Expected vector width (must match rows.embedding)
            max_concurrency: Optional cap on in-flight requests per batch
        """
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    @classmethod
    def from_settings(cls, settings) -> "OpenAIEmbedder":
        client = AsyncOpenAI(api_key=settings.require_embedding_key())
        return cls(client, model=settings.embedding_model, dimensions=settings.embedding_dimensions)

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: If the request fails or the vector has the wrong width
        """
        if not text:
            raise EmbeddingError("Cannot embed empty text")

        try:
            if self._semaphore is not None:
                async with self._semaphore:
                    response = await self.client.embeddings.create(model=self.model, input=text)
            else:
                response = await self.client.embeddings.create(model=self.model, input=text)
        except OpenAIError as e:
            raise EmbeddingError(f"Embedding generation failed: {e}") from e

        vector = list(response.data[0].embedding)
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimensions}"
            )
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts concurrently, returning vectors in input order.

        Raises:
            EmbeddingError: If any request fails
        """
        if not texts:
            logger.warning("embed_batch: No documents provided.")
            return []

        logger.info(f"Generating {len(texts)} embeddings...", extra={"batch_size": len(texts)})
        vectors = await asyncio.gather(*(self.embed(text) for text in texts))
        logger.info(f"Generated {len(vectors)} embeddings.")
        return list(vectors)

    async def close(self) -> None:
        await self.client.close()
