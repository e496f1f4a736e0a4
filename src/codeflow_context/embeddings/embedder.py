"""
Embedding Client

This module implements the embedding provider used by both ingestion and
retrieval. It talks to the OpenAI embeddings API or any compatible server
(local inference servers commonly expose the same `/embeddings` route).
It is responsible for:

- Efficient batching of text inputs
- Network and transport error isolation
- Strict response validation (never a silent zero vector)

The class is stateless and safe to reuse across requests.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings

logger = logging.getLogger("codeflow.embedder")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class Embedder:
    """
    Asynchronous embedding generator for single texts and batches.

    This class performs no caching; the vector index is the persistent
    cache of chunk embeddings.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the API key. Defaults to
            settings.embedding_api_key (may be empty for local servers).

        model : Optional[str]
            Optional override for embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Full URL of the embeddings endpoint. Defaults to settings.embedding_base_url.

        timeout : Optional[float]
            HTTP timeout for each request. Defaults to settings.embedding_timeout.
        """
        self.api_key = api_key if api_key is not None else settings.embedding_api_key_value()
        self.model = model or settings.embedding_model
        self.base_url = str(base_url or settings.embedding_base_url)
        self.timeout = timeout or settings.embedding_timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_one(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises
        ------
        EmbeddingError
            If the text is blank or the provider fails.
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed blank text.")

        embeddings = await self.embed([text])
        if len(embeddings) != 1:
            raise EmbeddingError(
                f"Expected 1 embedding, provider returned {len(embeddings)}."
            )
        return embeddings[0]

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        batch_size : int
            Maximum batch size per request. Helps avoid API token/size limits.

        Returns
        -------
        List[List[float]]
            A flat list of embeddings, each an array of floats, in input order.

        Raises
        ------
        EmbeddingError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                }

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                embeddings = self._extract_embeddings(response.json())
                if len(embeddings) != len(batch):
                    raise EmbeddingError(
                        f"Provider returned {len(embeddings)} embeddings for {len(batch)} inputs."
                    )
                all_embeddings.extend(embeddings)

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI-compatible providers return:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are ordered by their `index` field when present.

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure or a degenerate vector.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        if all(isinstance(r, dict) and isinstance(r.get("index"), int) for r in records):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not emb or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be a non-empty float list."
                )

            if not any(emb):
                raise EmbeddingError(f"Zero embedding vector at index {index}.")

            embeddings.append([float(x) for x in emb])

        return embeddings
