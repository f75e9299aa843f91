"""
Embedding Client

This module implements the embedding client used by the pipeline and the
query server. It calls the OpenAI embeddings API (or any compatible
provider) and is responsible for:

- Requesting vectors at the configured dimensionality
- Network and transport error isolation
- Strict response validation (shape and length)

The class holds no per-request state and is safe to share across
concurrent requests.
"""

from __future__ import annotations

from typing import List, Optional, Sequence
import logging
import httpx

from ..config import settings
from ..core.errors import ConfigurationError, EmbeddingError

logger = logging.getLogger("semse.embedder")


def compose_document_text(title: str, body: str) -> str:
    """Single composite text for a document: title heading, then body."""
    return f"<h1>{title}</h1>\n{body}"


class Embedder:
    """
    Asynchronous embedding generator.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Override for the API key. Defaults to settings.openai_api_key.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        dimensions : Optional[int]
            Requested vector length. Defaults to settings.dimensions.

        base_url : Optional[str]
            API root. Defaults to settings.openai_base_url.

        timeout : float
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests.
        """
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        if not self.api_key:
            raise ConfigurationError("No API key configured for the embedding service.")

        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.dimensions
        self.url = f"{(base_url or settings.openai_base_url).rstrip('/')}/embeddings"
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts in one request.

        Returns
        -------
        List[List[float]]
            One vector per input text, in input order.

        Raises
        ------
        EmbeddingError
            If the request fails or the response is malformed.
        """
        if not texts:
            return []

        payload = {
            "model": self.model,
            "input": list(texts),
            "encoding_format": "float",
            "dimensions": self.dimensions,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): batch size=%d, error=%s",
                    type(exc).__name__,
                    len(texts),
                    str(exc),
                )
                raise EmbeddingError(
                    f"Embedding generation failed: {type(exc).__name__}"
                ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not JSON.") from exc

        embeddings = self._extract_embeddings(data)
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}."
            )
        return embeddings

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text."""
        return (await self.embed([text]))[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embeddings(self, data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            if len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding at index {index} has {len(emb)} dimensions, "
                    f"expected {self.dimensions}."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
