"""Embedding gateway for chunks and queries.

Wraps the Gemini client with:
- Dimension validation against the configured model
- Bounded retry with backoff for transient failures (single embeds only)
- Order-preserving, bounded-concurrency batch embedding where one failed
  item never affects its siblings
"""
import asyncio
from typing import List, Optional, Sequence

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from aionus import config
from aionus.errors import ConfigurationError, UpstreamError
from aionus.gemini_client import GeminiClient, gemini_client
from aionus.rag.models import EmbeddingResult

logger = structlog.get_logger()


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.transient


class EmbeddingGateway:
    """Turns text into fixed-dimension vectors via the embedding provider."""

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        concurrency: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        """Initialize the gateway.

        Args:
            client: Gemini client (defaults to the module-level client)
            model: Embedding model id (default from config)
            dimension: Expected vector size (default from config)
            concurrency: Max in-flight calls during batch embedding (default from config)
            max_attempts: Attempts per embed, including the first (default from config)
        """
        self.client = client or gemini_client
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.concurrency = concurrency or config.EMBEDDING_CONCURRENCY
        self.max_attempts = max_attempts or config.EMBED_MAX_ATTEMPTS

    def _ensure_configured(self) -> None:
        if not self.client.configured:
            raise ConfigurationError("Embedding service not configured: GEMINI_API_KEY is missing")
        if not self.model:
            raise ConfigurationError("Embedding service not configured: EMBEDDING_MODEL is missing")

    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Args:
            text: Chunk or query text

        Returns:
            Vector of exactly ``self.dimension`` floats

        Raises:
            ConfigurationError: If no credential is configured (no call is made)
            UpstreamError: If the provider fails after retries or returns a
                vector of the wrong size
        """
        self._ensure_configured()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=config.RETRY_INITIAL_WAIT,
                max=config.RETRY_MAX_WAIT,
                jitter=config.RETRY_INITIAL_WAIT,
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=lambda state: logger.warning(
                "embedding_retry",
                attempt=state.attempt_number,
                max_attempts=self.max_attempts,
                error=str(state.outcome.exception()),
            ),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                vector = await self.client.embed_content(
                    text, model=self.model, dimension=self.dimension
                )

        if len(vector) != self.dimension:
            logger.error(
                "embedding_dimension_mismatch",
                expected=self.dimension,
                got=len(vector),
                model=self.model,
            )
            raise UpstreamError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(vector)}"
            )

        return [float(v) for v in vector]

    async def embed_result(self, text: str) -> EmbeddingResult:
        """Embed a single text, reporting failure as a value.

        Configuration and provider errors land in ``EmbeddingResult.error``;
        cancellation still propagates.
        """
        try:
            return EmbeddingResult(vector=await self.embed(text))
        except Exception as e:
            return EmbeddingResult(error=e)

    async def embed_batch(self, texts: Sequence[str]) -> List[EmbeddingResult]:
        """Embed many texts concurrently.

        Args:
            texts: Texts to embed

        Returns:
            One EmbeddingResult per input, in input order

        Raises:
            ConfigurationError: If no credential is configured (no call is made)
        """
        self._ensure_configured()

        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_one(index: int, text: str) -> EmbeddingResult:
            async with semaphore:
                result = await self.embed_result(text)
            if not result.ok:
                logger.warning(
                    "batch_item_embedding_failed",
                    index=index,
                    error=str(result.error),
                    error_type=type(result.error).__name__,
                    text_preview=text[:100],
                )
            return result

        results = await asyncio.gather(
            *(embed_one(i, text) for i, text in enumerate(texts))
        )

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "embeddings_batch_generated",
            batch_size=len(texts),
            failed=failed,
            concurrency=self.concurrency,
        )

        return list(results)


# Singleton instance for convenience
_gateway_instance: Optional[EmbeddingGateway] = None


def get_embedding_gateway() -> EmbeddingGateway:
    """Get a singleton embedding gateway with default config."""
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = EmbeddingGateway()
    return _gateway_instance
