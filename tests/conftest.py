import math
import re
import threading
import time
import zlib
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from gitflair.core.db import init_db, make_engine, make_session_factory
from gitflair.core.errors import StorageError
from gitflair.core.ingestor import RepoIngestor
from gitflair.core.query_engine import QueryEngine
from gitflair.core.records import RecordStore
from gitflair.core.retriever import Retriever
from gitflair.ingestion.base import ContentSource, RepoFile
from gitflair.ingestion.code import detect_language

DIMS = 512
REPO_URL = "https://github.com/acme/webapp"

_TOKEN = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")


def tokens(text):
    return [t.lower() for t in _TOKEN.findall(text)]


def bag_of_words(text, dims=DIMS):
    vec = [0.0] * dims
    for tok in tokens(text):
        vec[zlib.crc32(tok.encode("utf-8")) % dims] += 1.0
    norm = math.sqrt(sum(v * v for v in vec))
    return [v / norm for v in vec] if norm else vec


def cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if not na or not nb:
        return 0.0
    return dot / (na * nb)


class FakeEmbedder:
    """Hashed bag-of-words vectors; records every call."""

    def __init__(self, dims=DIMS, delay=0.0):
        self.dims = dims
        self.delay = delay          # seconds each document batch takes
        self.query_calls = []
        self.document_calls = []
        self.empty_for = set()      # texts that come back with an empty vector
        self.query_error = None
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def embed_query(self, text):
        self.query_calls.append(text)
        if self.query_error is not None:
            raise self.query_error
        return bag_of_words(text, self.dims)

    def embed_documents(self, texts):
        with self._lock:
            self.document_calls.append(list(texts))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
        finally:
            with self._lock:
                self.in_flight -= 1
        return [[] if t in self.empty_for else bag_of_words(t, self.dims) for t in texts]


class FakeVectorStore:
    def __init__(self):
        self.rows = []
        self.insert_calls = []
        self.delete_calls = []
        self.fail_for_paths = set()
        self._lock = threading.Lock()

    def insert_fragments(self, chunks):
        with self._lock:
            self.insert_calls.append(list(chunks))
            if any(c.file_path in self.fail_for_paths for c in chunks):
                raise StorageError("expected 512 dimensions, not 768")
            self.rows.extend(chunks)
        return len(chunks)

    def delete_fragments(self, repo_id):
        with self._lock:
            self.delete_calls.append(repo_id)
            before = len(self.rows)
            self.rows = [c for c in self.rows if c.repo_id != repo_id]
            return before - len(self.rows)

    def count_fragments(self, repo_id):
        return sum(1 for c in self.rows if c.repo_id == repo_id)

    def similarity_search(self, repo_id, query_embedding, threshold, limit):
        scored = []
        for c in self.rows:
            if c.repo_id != repo_id:
                continue
            score = cosine(query_embedding, c.embedding)
            if score > threshold:
                scored.append(replace(c, similarity=score, embedding=[]))
        scored.sort(key=lambda c: c.similarity, reverse=True)
        return scored[:limit]


class FakeGenerator:
    def __init__(self, answer="The login flow lives in `auth/login.go`."):
        self.answer = answer
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        return self.answer


class FakeSource(ContentSource):
    def __init__(self, files):
        self.files = files
        self.calls = []

    def list_supported_files(self, owner, repo):
        self.calls.append((owner, repo))
        return [
            RepoFile(path=path, content=content, language=detect_language(path))
            for path, content in self.files.items()
        ]


class Clock:
    def __init__(self, start=datetime(2026, 1, 1, 12, 0, 0)):
        self.current = start

    def __call__(self):
        # Every read moves time forward so history rows never tie
        self.current += timedelta(seconds=1)
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


LOGIN_GO = """package auth

// LoginHandler handles the login form.
func LoginHandler(w http.ResponseWriter, r *http.Request) {
	user := r.FormValue("user")
	login(user)
}
"""

STORE_GO = """package db

func SaveRecord(rec Record) error {
	return insert(rec)
}
"""


@pytest.fixture
def records():
    engine = make_engine("sqlite://")
    init_db(engine)
    return RecordStore(make_session_factory(engine))


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def source():
    return FakeSource({"auth/login.go": LOGIN_GO, "db/store.go": STORE_GO})


@pytest.fixture
def ingestor(source, embedder, vector_store, records, clock):
    return RepoIngestor(
        source=source,
        embedder=embedder,
        vector_store=vector_store,
        records=records,
        now=clock,
    )


@pytest.fixture
def engine(embedder, vector_store, generator, records, clock):
    return QueryEngine(
        retriever=Retriever(embedder, vector_store),
        generator=generator,
        records=records,
        now=clock,
    )
