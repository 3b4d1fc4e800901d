from gitflair.core.embedder import Embedder
from gitflair.core.vector_store import VectorStore
from gitflair.core.llm import LLMWrapper
from gitflair.core.retriever import Retriever

__all__ = ["Embedder", "VectorStore", "LLMWrapper", "Retriever"]
