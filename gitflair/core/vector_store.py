import math
import os
from typing import Any, Dict, List, Optional

from pymilvus import MilvusClient, MilvusException

from gitflair.config import VECTOR_DB
from gitflair.core.errors import DimensionMismatchError, StorageError
from gitflair.ingestion.base import Chunk

OUTPUT_FIELDS = ["repo_id", "file_path", "content", "start_line", "end_line", "language"]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _repo_filter(repo_id: str) -> str:
    return f'repo_id == "{_escape(repo_id)}"'


class VectorStore:
    """Code chunks and their embeddings in a Milvus collection.

    Chunk metadata lives in dynamic fields next to the vector, so search
    hits carry everything needed to cite file and line range.
    """

    def __init__(
        self,
        client: Optional[MilvusClient] = None,
        collection_name: Optional[str] = None,
        dimensions: Optional[int] = None,
    ):
        if client is None:
            client = MilvusClient(
                uri=os.getenv("MILVUS_URI", "./tmp/milvus.db"),
                token=os.getenv("MILVUS_TOKEN", ""),
            )
        self.client = client
        self.collection_name = collection_name or VECTOR_DB["collection_chunks"]
        self.dimensions = dimensions or VECTOR_DB["dimensions"]
        # Width of the collection as created; may differ from self.dimensions
        # if the embedding model changed since the first index.
        self.stored_dimensions = self.dimensions
        self._create_collection()

    def _create_collection(self):
        """Create the collection if it doesn't exist, else read its vector width."""
        try:
            if not self.client.has_collection(self.collection_name):
                self.client.create_collection(
                    collection_name=self.collection_name,
                    dimension=self.dimensions,
                    metric_type=VECTOR_DB["distance"],
                    id_type="str",
                    auto_id=True,
                    max_length=65535,
                )
            else:
                stored = self._describe_dimensions()
                if stored is not None:
                    self.stored_dimensions = stored
            self.client.load_collection(self.collection_name)
        except MilvusException as e:
            raise StorageError(f"Cannot open vector collection {self.collection_name}: {e}") from e

        if self.stored_dimensions != self.dimensions:
            print(
                f"[STORE] Collection {self.collection_name} holds {self.stored_dimensions}-dim vectors "
                f"but embeddings are {self.dimensions}-dim. Re-index required.",
                flush=True,
            )

    def _describe_dimensions(self) -> Optional[int]:
        info = self.client.describe_collection(self.collection_name)
        for f in info.get("fields", []):
            dim = (f.get("params") or {}).get("dim")
            if dim is not None:
                return int(dim)
        return None

    def _check_dimensions(self, width: int):
        if self.stored_dimensions != self.dimensions:
            raise DimensionMismatchError(self.stored_dimensions, self.dimensions)
        if width != self.stored_dimensions:
            raise DimensionMismatchError(self.stored_dimensions, width)

    def insert_fragments(self, chunks: List[Chunk]) -> int:
        """Insert a batch of embedded chunks in a single call.

        Every row is validated before anything is written, so the batch
        either lands whole or not at all.
        """
        if not chunks:
            return 0

        data = []
        for chunk in chunks:
            if not chunk.repo_id:
                raise StorageError(f"Chunk from {chunk.file_path} has no repo_id")
            if not chunk.text or not chunk.text.strip():
                raise StorageError(f"Empty chunk text in {chunk.file_path}")
            self._check_dimensions(len(chunk.embedding))
            if any(math.isnan(v) or math.isinf(v) for v in chunk.embedding):
                raise StorageError(f"NaN/Inf in embedding for {chunk.file_path}")
            data.append({
                "vector": chunk.embedding,
                "repo_id": chunk.repo_id,
                "file_path": chunk.file_path[:1024],
                "content": chunk.text[:32000],        # Milvus varchar cap
                "start_line": chunk.start_line,
                "end_line": chunk.end_line,
                "language": chunk.language,
            })

        try:
            self.client.insert(collection_name=self.collection_name, data=data)
            self.client.flush(collection_name=self.collection_name)
        except MilvusException as e:
            raise StorageError(f"Insert into {self.collection_name} failed: {e}") from e

        return len(data)

    def delete_fragments(self, repo_id: str) -> int:
        """Remove every chunk of a repository; returns how many went."""
        try:
            res = self.client.delete(
                collection_name=self.collection_name,
                filter=_repo_filter(repo_id),
            )
            self.client.flush(collection_name=self.collection_name)
        except MilvusException as e:
            raise StorageError(f"Delete on {self.collection_name} failed: {e}") from e
        # Newer clients report a count, older ones the deleted primary keys
        if isinstance(res, dict):
            return int(res.get("delete_count", 0))
        return len(res or [])

    def count_fragments(self, repo_id: str) -> int:
        try:
            res = self.client.query(
                collection_name=self.collection_name,
                filter=_repo_filter(repo_id),
                output_fields=["count(*)"],
            )
        except MilvusException as e:
            raise StorageError(f"Count on {self.collection_name} failed: {e}") from e
        if not res:
            return 0
        return int(res[0].get("count(*)", 0))

    def similarity_search(
        self,
        repo_id: str,
        query_embedding: List[float],
        threshold: float,
        limit: int,
    ) -> List[Chunk]:
        """Top `limit` chunks of a repository with cosine similarity above threshold."""
        self._check_dimensions(len(query_embedding))

        try:
            search_results = self.client.search(
                collection_name=self.collection_name,
                data=[query_embedding],
                limit=limit,
                filter=_repo_filter(repo_id),
                anns_field="vector",
                search_params={"metric_type": VECTOR_DB["distance"]},
                output_fields=OUTPUT_FIELDS,
            )
        except MilvusException as e:
            raise StorageError(f"Search on {self.collection_name} failed: {e}") from e

        hits = search_results[0] if search_results else []
        results = []
        for hit in hits:
            score = float(hit.get("distance", 0.0))
            if score <= threshold:
                continue
            results.append(self._to_chunk(hit, score))

        results.sort(key=lambda c: c.similarity, reverse=True)
        return results[:limit]

    @staticmethod
    def _to_chunk(hit: Dict[str, Any], score: float) -> Chunk:
        # Search hits expose fields via hit["entity"] or directly on the hit dict
        entity = hit.get("entity") if isinstance(hit.get("entity"), dict) else hit
        return Chunk(
            text=entity.get("content", ""),
            file_path=entity.get("file_path", ""),
            start_line=int(entity.get("start_line", 1)),
            end_line=int(entity.get("end_line", 1)),
            language=entity.get("language", "text"),
            repo_id=entity.get("repo_id"),
            similarity=score,
        )
