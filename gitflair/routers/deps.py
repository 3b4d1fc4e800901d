"""Component wiring for the HTTP layer.

Each provider builds its component once per process. Tests swap them out
with ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Callable

from gitflair.core.db import init_db, make_engine, make_session_factory
from gitflair.core.embedder import Embedder
from gitflair.core.ingestor import RepoIngestor
from gitflair.core.llm import LLMWrapper
from gitflair.core.query_engine import QueryEngine
from gitflair.core.records import RecordStore
from gitflair.core.retriever import Retriever
from gitflair.core.vector_store import VectorStore
from gitflair.ingestion.github_repo import GitHubRepoSource


@lru_cache(maxsize=None)
def get_records() -> RecordStore:
    engine = make_engine()
    init_db(engine)
    return RecordStore(make_session_factory(engine))


@lru_cache(maxsize=None)
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache(maxsize=None)
def get_vector_store() -> VectorStore:
    return VectorStore()


@lru_cache(maxsize=None)
def get_generator() -> LLMWrapper:
    return LLMWrapper()


@lru_cache(maxsize=None)
def get_ingestor() -> RepoIngestor:
    return RepoIngestor(
        source=GitHubRepoSource(),
        embedder=get_embedder(),
        vector_store=get_vector_store(),
        records=get_records(),
    )


@lru_cache(maxsize=None)
def get_query_engine() -> QueryEngine:
    return QueryEngine(
        retriever=Retriever(get_embedder(), get_vector_store()),
        generator=get_generator(),
        records=get_records(),
    )


def get_embedder_factory() -> Callable[[], Embedder]:
    """Deferred embedder, so a missing API key can be reported instead of raised."""
    return get_embedder
