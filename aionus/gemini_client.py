"""Gemini REST client wrapper with error handling."""
from typing import List, Optional

import httpx
import structlog

from aionus import config
from aionus.errors import ConfigurationError, UpstreamError

logger = structlog.get_logger()


class GeminiClient:
    """Async client for the Gemini embedding endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key (defaults to config.GEMINI_API_KEY)
            base_url: API base URL (defaults to config.GEMINI_BASE_URL)
            timeout: Per-request timeout in seconds (defaults to config.HTTP_TIMEOUT)
            transport: Optional httpx transport, used by tests to fake the network
        """
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else config.GEMINI_API_KEY

    @property
    def base_url(self) -> str:
        return (self._base_url or config.GEMINI_BASE_URL).rstrip("/")

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else config.HTTP_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def embed_content(
        self,
        text: str,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
    ) -> List[float]:
        """Generate an embedding vector for a piece of text.

        Args:
            text: Text to embed
            model: Embedding model id (defaults to config.EMBEDDING_MODEL)
            dimension: Requested vector size (defaults to config.EMBEDDING_DIMENSION)

        Returns:
            Embedding vector

        Raises:
            ConfigurationError: If no API key or model is configured
            UpstreamError: On HTTP errors, timeouts or an unexpected body
        """
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")

        model = model or config.EMBEDDING_MODEL
        if not model:
            raise ConfigurationError("EMBEDDING_MODEL is not configured")
        dimension = dimension or config.EMBEDDING_DIMENSION

        payload = {
            "model": f"models/{model}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": dimension,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                logger.debug(
                    "gemini_embedding_request",
                    model=model,
                    text_length=len(text),
                )

                response = await client.post(
                    f"{self.base_url}/v1beta/models/{model}:embedContent",
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
                response.raise_for_status()

                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("gemini_embedding_timeout", model=model, timeout=self.timeout)
            raise UpstreamError(f"Embedding request timed out: {e}", timed_out=True) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                "gemini_embedding_http_error",
                status_code=status_code,
                body=e.response.text[:200],
            )
            raise UpstreamError(
                f"Embedding API returned HTTP {status_code}", status_code=status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error("gemini_connection_error", error=str(e), base_url=self.base_url)
            raise UpstreamError(f"Embedding API unreachable: {e}") from e
        except ValueError as e:
            logger.error("gemini_embedding_invalid_json", error=str(e))
            raise UpstreamError(
                "Embedding API returned invalid JSON", status_code=response.status_code
            ) from e

        values = (data.get("embedding") or {}).get("values") if isinstance(data, dict) else None
        if not isinstance(values, list) or not values:
            raise UpstreamError(
                "Embedding API response has no embedding values",
                status_code=response.status_code,
            )

        logger.debug(
            "gemini_embedding_response",
            model=model,
            dimension=len(values),
        )

        return values


# Global client instance
gemini_client = GeminiClient()
