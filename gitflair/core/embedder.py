import os
from enum import Enum
from typing import List, Optional

import httpx

from gitflair.config import EMBEDDING
from gitflair.core.errors import EmbeddingError, EmbeddingQuotaError, EmptyEmbeddingError

DEFAULT_API_URL = "https://generativelanguage.googleapis.com/v1beta"


class EmbeddingIntent(str, Enum):
    """Query vectors and document vectors are not interchangeable."""

    QUERY = "query"
    DOCUMENT = "document"


def _task_for(intent: EmbeddingIntent) -> str:
    if intent is EmbeddingIntent.QUERY:
        return EMBEDDING["task_query"]
    return EMBEDDING["task_doc"]


def raise_for_provider_error(resp: httpx.Response, what: str, error_cls, quota_cls) -> None:
    """Map a failed Gemini response to the matching error class.

    Quota/rate exhaustion (429 or RESOURCE_EXHAUSTED) is raised as quota_cls
    and never retried here.
    """
    if resp.is_success:
        return

    status = ""
    detail = resp.text[:300]
    try:
        error = resp.json().get("error", {})
        status = error.get("status", "")
        detail = error.get("message", detail)
    except ValueError:
        pass

    if resp.status_code == 429 or status == "RESOURCE_EXHAUSTED":
        raise quota_cls(
            f"{what} quota exceeded: {detail}",
            hint="The model provider is rate limiting requests. Wait a minute and try again.",
        )
    raise error_cls(f"{what} request failed ({resp.status_code}): {detail}")


class Embedder:
    def __init__(
        self,
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        api_url: Optional[str] = None,
    ):
        self._api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self._api_key:
            raise RuntimeError("Missing GEMINI_API_KEY environment variable")

        self._api_url = (api_url or os.getenv("GEMINI_API_URL", DEFAULT_API_URL)).rstrip("/")
        self._http = http or httpx.Client(timeout=httpx.Timeout(60.0, connect=20.0))
        self.model = EMBEDDING["model"]
        self.batch_size = EMBEDDING["batch_size"]
        self.dimensions = EMBEDDING["dimensions"]

    def _headers(self) -> dict:
        return {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
        }

    def _request(self, text: str, intent: EmbeddingIntent) -> dict:
        return {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
            "taskType": _task_for(intent),
            "outputDimensionality": self.dimensions,
        }

    def _post(self, action: str, payload: dict) -> dict:
        url = f"{self._api_url}/models/{self.model}:{action}"
        try:
            resp = self._http.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        raise_for_provider_error(resp, "Embedding", EmbeddingError, EmbeddingQuotaError)
        return resp.json()

    def _embed_batch(self, batch: List[str], intent: EmbeddingIntent) -> List[List[float]]:
        body = self._post(
            "batchEmbedContents",
            {"requests": [self._request(text, intent) for text in batch]},
        )
        data = body.get("embeddings", [])
        if len(data) != len(batch):
            raise EmbeddingError(
                f"Embedding response size mismatch: sent {len(batch)}, got {len(data)}"
            )

        embeddings: List[List[float]] = []
        for item in data:
            vec = item.get("values") or []
            if not isinstance(vec, list):
                raise EmbeddingError("Unexpected embeddings response format")
            embeddings.append(vec)
        return embeddings

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed documents in batches, preserving input order.

        An entry may come back empty; callers decide what to drop.
        """
        all_embeddings: List[List[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            print(f"[EMBED] Sending batch {i // self.batch_size + 1}: {len(batch)} chunks", flush=True)
            all_embeddings.extend(self._embed_batch(batch, EmbeddingIntent.DOCUMENT))

        return all_embeddings

    def embed_query(self, query: str) -> List[float]:
        """Embed a single query."""
        body = self._post(
            "embedContent",
            self._request(query, EmbeddingIntent.QUERY),
        )
        vec = (body.get("embedding") or {}).get("values") or []
        if not vec:
            raise EmptyEmbeddingError("No embedding returned for query")
        return vec
