from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from gitflair.config import RETRIEVAL
from gitflair.core.embedder import Embedder
from gitflair.core.errors import EmbeddingError
from gitflair.core.vector_store import VectorStore
from gitflair.ingestion.base import Chunk

CONTEXT_SEPARATOR = "\n\n---\n\n"


class RetrievalState(str, Enum):
    MATCHED = "matched"
    NOTHING_INDEXED = "nothing_indexed"   # the repository has no stored chunks
    NO_MATCH = "no_match"                 # chunks exist, none above the threshold


@dataclass
class RetrievalResult:
    state: RetrievalState
    indexed_count: int
    chunks: List[Chunk] = field(default_factory=list)


def build_context(chunks: List[Chunk]) -> str:
    """Concatenate chunks in retrieval order with path and line range headers."""
    return CONTEXT_SEPARATOR.join(
        f"File: {c.file_path} (Lines {c.start_line}-{c.end_line})\nContent:\n{c.text}"
        for c in chunks
    )


class Retriever:
    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        top_k: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.top_k = top_k or RETRIEVAL["top_k"]
        self.score_threshold = score_threshold if score_threshold is not None else RETRIEVAL["score_threshold"]

    def embed_question(self, question: str) -> List[float]:
        embedding = self.embedder.embed_query(question)
        if not embedding:
            raise EmbeddingError("Failed to generate query embedding")
        return embedding

    def retrieve(self, repo_id: str, query_embedding: List[float]) -> RetrievalResult:
        count = self.vector_store.count_fragments(repo_id)
        print(
            f"[ASK] Repo {repo_id}: {count} chunks in store, "
            f"query embedding dims: {len(query_embedding)}",
            flush=True,
        )
        if count == 0:
            return RetrievalResult(state=RetrievalState.NOTHING_INDEXED, indexed_count=0)

        chunks = self.vector_store.similarity_search(
            repo_id,
            query_embedding,
            threshold=self.score_threshold,
            limit=self.top_k,
        )
        print(f"[ASK] Search returned {len(chunks)} matching chunks", flush=True)

        if not chunks:
            return RetrievalResult(state=RetrievalState.NO_MATCH, indexed_count=count)
        return RetrievalResult(state=RetrievalState.MATCHED, indexed_count=count, chunks=chunks)
