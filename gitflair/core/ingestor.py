from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from gitflair.config import INGESTION, QUOTAS
from gitflair.core.errors import (
    EmbeddingError,
    IngestionError,
    RepositoryQuotaExceeded,
    StorageError,
    ValidationError,
)
from gitflair.core.embedder import Embedder
from gitflair.core.models import utcnow
from gitflair.core.records import RecordStore
from gitflair.core.vector_store import VectorStore
from gitflair.ingestion.base import ContentSource, RepoFile
from gitflair.ingestion.code import CodeChunker
from gitflair.ingestion.github_repo import parse_github_url


@dataclass
class IngestResult:
    repo_id: str
    files_processed: int
    chunks_stored: int = 0
    skipped: bool = False   # True when the freshness window short-circuited


class RepoIngestor:
    """Fetch → chunk → embed → store for one repository.

    The repository quota is an admission check made once before any work;
    two concurrent first-time requests from the same user can both pass it.
    """

    def __init__(
        self,
        source: ContentSource,
        embedder: Embedder,
        vector_store: VectorStore,
        records: RecordStore,
        chunker: Optional[CodeChunker] = None,
        max_repos: Optional[int] = None,
        file_concurrency: Optional[int] = None,
        freshness: Optional[timedelta] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.source = source
        self.embedder = embedder
        self.vector_store = vector_store
        self.records = records
        self.chunker = chunker or CodeChunker()
        self.max_repos = max_repos or QUOTAS["max_repos_per_user"]
        self.file_concurrency = file_concurrency or INGESTION["file_concurrency"]
        self.freshness = freshness or timedelta(hours=INGESTION["freshness_hours"])
        self.now = now

    def ingest(self, url: str, user_id: str) -> IngestResult:
        if not url or not url.strip():
            raise ValidationError("URL is required")
        if not user_id:
            raise ValidationError("User id is required")
        ref = parse_github_url(url)
        if ref is None:
            raise ValidationError("Invalid GitHub URL")

        # 1. Reuse the existing repository, skipping work if recently indexed
        repo = self.records.find_repository(ref.url, user_id)
        reindex = repo is not None
        if repo is not None:
            if repo.indexed_at and repo.indexed_at > self.now() - self.freshness:
                print(f"[INGEST] {ref.full_name} indexed at {repo.indexed_at}, skipping", flush=True)
                return IngestResult(repo_id=repo.id, files_processed=0, skipped=True)
        else:
            # 2. Quota gate before the row exists
            if self.records.count_repositories(user_id) >= self.max_repos:
                raise RepositoryQuotaExceeded(self.max_repos)
            repo = self.records.create_repository(ref.url, user_id, ref.repo, ref.full_name)

        repo_id = repo.id

        # 3. Fetch contents
        files = self.source.list_supported_files(ref.owner, ref.repo)
        print(f"[INGEST] {ref.full_name}: {len(files)} files to process", flush=True)

        # Wholesale re-index: the previous chunks go once the new contents are in hand
        if reindex:
            removed = self.vector_store.delete_fragments(repo_id)
            print(f"[INGEST] {ref.full_name}: removed {removed} stale chunks", flush=True)

        # 4. Chunk, embed and store, a few files at a time
        chunks_stored = 0
        pool = ThreadPoolExecutor(max_workers=self.file_concurrency, thread_name_prefix="ingest")
        try:
            futures = [pool.submit(self._process_file, repo_id, f) for f in files]
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    for pending in not_done:
                        pending.cancel()
                    raise future.exception()
            chunks_stored = sum(f.result() for f in futures)
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

        # 5. Stamp the index time
        self.records.mark_indexed(repo_id, self.now())
        print(f"[INGEST] {ref.full_name}: done, {chunks_stored} chunks from {len(files)} files", flush=True)

        return IngestResult(repo_id=repo_id, files_processed=len(files), chunks_stored=chunks_stored)

    def _process_file(self, repo_id: str, file: RepoFile) -> int:
        chunks = self.chunker.chunk(file.content, file.path, language=file.language)
        chunks = [c for c in chunks if c.text.strip()]
        if not chunks:
            return 0

        embeddings = self.embedder.embed_documents([c.text for c in chunks])
        if len(embeddings) != len(chunks):
            raise EmbeddingError(
                f"Embedder returned {len(embeddings)} vectors for {len(chunks)} chunks of {file.path}"
            )
        if embeddings:
            print(
                f"[INGEST] {file.path}: {len(embeddings)} embeddings, "
                f"{len(embeddings[0])} dimensions each",
                flush=True,
            )

        # Vectors come back in input order; pair by position
        ready = []
        for chunk, embedding in zip(chunks, embeddings):
            if not embedding:
                continue
            chunk.repo_id = repo_id
            chunk.embedding = embedding
            ready.append(chunk)

        if not ready:
            return 0

        try:
            inserted = self.vector_store.insert_fragments(ready)
        except StorageError as e:
            print(f"[INGEST] FAILED to insert {len(ready)} chunks for {file.path}: {e}", flush=True)
            raise IngestionError(file.path, e) from e

        print(f"[INGEST] Inserted {inserted} chunks for {file.path}", flush=True)
        return inserted
